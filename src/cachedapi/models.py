"""Canonical Pydantic models shared across all cachedapi modules.

The models fall into two groups:

**Request/cache models** -- produced and consumed at runtime:
    :class:`RequestContext`, :class:`RequestOptions`, :class:`CacheEntry`,
    and :class:`CacheStats`.

**Configuration models** -- serialised as JSON in the user's config
directory:
    :class:`RequestConfig`, :class:`CacheConfig`,
    :class:`CoordinationConfig`, :class:`InvalidationConfig`, and
    :class:`ClientConfig`.

All models use Pydantic v2. Context fields accept the camelCase names used
by the backend (``userId``, ``instituteId``, ...) as well as snake_case.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

CONTEXT_FIELDS: tuple[str, ...] = (
    "user_id",
    "institute_id",
    "class_id",
    "subject_id",
    "role",
)
"""Context attributes in canonical order."""

CONTEXT_PARAM_ALIASES: dict[str, tuple[str, ...]] = {
    "user_id": ("userId", "user_id"),
    "institute_id": ("instituteId", "institute_id"),
    "class_id": ("classId", "class_id"),
    "subject_id": ("subjectId", "subject_id"),
    "role": ("role",),
}
"""Query parameter names that carry a context attribute."""


# --- Request models ---


class RequestContext(BaseModel):
    """Tenant/user scoping bundle attached to a request.

    Used for cache partitioning (two users may legitimately see different
    data for the same endpoint and params) and for scoped invalidation
    (clear-by-user, clear-by-institute, mutation purges).

    Example::

        RequestContext(user_id="U1", institute_id="I1")
        RequestContext.model_validate({"userId": "U1"})
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    institute_id: Optional[str] = Field(default=None, alias="instituteId")
    class_id: Optional[str] = Field(default=None, alias="classId")
    subject_id: Optional[str] = Field(default=None, alias="subjectId")
    role: Optional[str] = None

    def scope(self) -> dict[str, str]:
        """Return the populated fields as a plain dict."""
        return {
            name: value
            for name in CONTEXT_FIELDS
            if (value := getattr(self, name)) is not None
        }

    def is_empty(self) -> bool:
        return not self.scope()

    def overlaps(self, other: RequestContext | dict[str, str]) -> bool:
        """Return ``True`` unless some field is set on both sides with different values.

        An empty context overlaps every context.
        """
        theirs = other.scope() if isinstance(other, RequestContext) else other
        for name, value in self.scope().items():
            if name in theirs and theirs[name] != value:
                return False
        return True


class RequestOptions(BaseModel):
    """Per-call options recognised by the coordinator's read and write operations."""

    ttl: float = Field(default=30, gt=0, description="Time to live in minutes")
    force_refresh: bool = Field(
        default=False, description="Bypass cooldown and cache, always dispatch"
    )
    use_stale_while_revalidate: bool = Field(
        default=True,
        description="Serve stale entries immediately and refresh in the background",
    )
    context: RequestContext = Field(default_factory=RequestContext)

    @property
    def ttl_seconds(self) -> float:
        return self.ttl * 60


class CacheEntry(BaseModel):
    """A cached read result.

    ``stored_at`` is a reading of the coordinator's monotonic clock (seconds),
    not a wall-clock timestamp. The entry is fresh iff
    ``now < stored_at + ttl_seconds``; stale entries remain usable under
    stale-while-revalidate semantics.
    """

    key: str
    endpoint: str
    params: dict[str, str] = Field(default_factory=dict)
    context: RequestContext = Field(default_factory=RequestContext)
    value: Any = None
    stored_at: float
    ttl_seconds: float
    tags: frozenset[str] = Field(default_factory=frozenset)

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl_seconds

    def is_fresh(self, now: float, ttl_factor: float = 1.0) -> bool:
        """Judge freshness at *now*, optionally stretching the ttl by *ttl_factor*."""
        return now < self.stored_at + self.ttl_seconds * ttl_factor

    def scope(self) -> dict[str, str]:
        """Return the entry's context, completed with same-named request params.

        A read cached as ``get("/classes", {"instituteId": "I1"})`` with no
        explicit context is still scoped to institute ``I1``.
        """
        scope = self.context.scope()
        for name in CONTEXT_FIELDS:
            if name in scope:
                continue
            for alias in CONTEXT_PARAM_ALIASES[name]:
                if alias in self.params:
                    scope[name] = self.params[alias]
                    break
        return scope


class CacheStats(BaseModel):
    """Read-only cache introspection returned by ``stats()``."""

    backend: str
    entry_count: int = 0
    fresh_count: int = 0
    stale_count: int = 0
    hits: int = 0
    misses: int = 0
    writes: int = 0
    evictions: int = 0
    invalidations: int = 0
    pending_count: int = 0
    cooldown_count: int = 0
    background_count: int = 0


# --- Configuration models ---


class RequestConfig(BaseModel):
    """HTTP transport settings applied to every dispatch."""

    timeout: float = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(
        default=0,
        ge=0,
        description="Retry attempts for 5xx and connection errors (0 = never retry)",
    )


class CacheConfig(BaseModel):
    """Cache Store settings."""

    backend: Literal["memory", "disk"] = Field(
        default="memory", description="Cache Store backend: memory or disk"
    )
    max_entries: int = Field(
        default=500, gt=0, description="Entries kept before TTL-aware eviction"
    )
    default_ttl_minutes: float = Field(
        default=30, gt=0, description="TTL used when a call does not pass one"
    )


class CoordinationConfig(BaseModel):
    """Cooldown and background revalidation timing."""

    cooldown_seconds: float = Field(
        default=1.0, ge=0, description="Minimum interval between dispatches of one key"
    )
    cooldown_margin_seconds: float = Field(
        default=1.0, ge=0, description="Extra time before a cooldown mark is dropped"
    )
    revalidate_delay_seconds: float = Field(
        default=0.1, ge=0, description="Debounce before a background refresh dispatches"
    )


class InvalidationConfig(BaseModel):
    """Resource tagging rules for mutation-driven invalidation.

    ``rules`` maps an fnmatch-style endpoint pattern to extra resource
    tags. Every endpoint is also tagged with its first path segment.

    Example::

        InvalidationConfig(rules={"/institute-classes*": ["classes"]})
    """

    rules: dict[str, list[str]] = Field(default_factory=dict)


class ClientConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/cachedapi/config.json``.

    Loaded and saved by :func:`~cachedapi.config.load_config` and
    :func:`~cachedapi.config.save_config`. See
    :func:`~cachedapi.config.resolve_config` for the precedence chain.
    """

    model_config = ConfigDict(extra="allow")

    base_url: Optional[str] = Field(default=None, description="Primary API base URL")
    secondary_base_url: Optional[str] = Field(
        default=None, description="Organisation API base URL"
    )
    use_secondary: bool = Field(
        default=False, description="Dispatch against the secondary base URL"
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    coordination: CoordinationConfig = Field(default_factory=CoordinationConfig)
    invalidation: InvalidationConfig = Field(default_factory=InvalidationConfig)
