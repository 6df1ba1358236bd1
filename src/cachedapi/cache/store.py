"""Cache Store contract and the in-memory implementation.

The store maps a request key plus a context partition to a
:class:`~cachedapi.models.CacheEntry`. It does not judge freshness --
stale entries are still useful to the coordinator under
stale-while-revalidate -- and it never raises on a missing key.

Caching is a performance optimisation, not a correctness dependency:
any backend failure degrades to "absent" on read and is logged and
ignored on write.

See Also:
    :class:`~cachedapi.cache.disk.DiskCacheStore` -- the persistent backend.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any, Callable, Optional

from cachedapi.keys import context_fingerprint
from cachedapi.models import CacheEntry, CacheStats, RequestContext

logger = logging.getLogger(__name__)

EntryPredicate = Callable[[CacheEntry], bool]
Clock = Callable[[], float]


def scope_predicate(name: str, value: str) -> EntryPredicate:
    """Match entries whose :meth:`~cachedapi.models.CacheEntry.scope` has ``name == value``."""
    return lambda entry: entry.scope().get(name) == value


class CacheStore(ABC):
    """Base class for Cache Store backends.

    Subclasses implement the storage primitives (:meth:`_load`,
    :meth:`_store`, :meth:`_delete`, :meth:`_entries`, :meth:`_clear`);
    the public contract, hit/miss counters and scoped clears live here.

    Args:
        clock: Monotonic clock used to stamp ``stored_at``. Must be the
            same clock the coordinator judges freshness with.
    """

    backend = "abstract"

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._hits = 0
        self._misses = 0
        self._writes = 0
        self._evictions = 0
        self._invalidations = 0

    # ------------------------------------------------------------------ #
    # Public contract
    # ------------------------------------------------------------------ #

    def get_entry(
        self, key: str, context: Optional[RequestContext] = None
    ) -> Optional[CacheEntry]:
        """Return the full entry for *key* in *context*'s partition, or ``None``."""
        try:
            entry = self._load(self._storage_key(key, context))
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            entry = None
        if entry is None:
            self._misses += 1
        else:
            self._hits += 1
        return entry

    def get(self, key: str, context: Optional[RequestContext] = None) -> Any:
        """Return the cached value for *key*, or ``None`` when absent."""
        entry = self.get_entry(key, context)
        return None if entry is None else entry.value

    def set(
        self,
        key: str,
        value: Any,
        context: Optional[RequestContext] = None,
        ttl_seconds: float = 1800,
        *,
        endpoint: Optional[str] = None,
        params: Optional[dict[str, str]] = None,
        tags: Iterable[str] = (),
    ) -> None:
        """Upsert an entry, resetting ``stored_at`` to now.

        Args:
            key: The request key.
            value: Opaque payload.
            context: Partition the entry belongs to.
            ttl_seconds: Freshness window.
            endpoint: Normalised endpoint path (defaults to the key's path part).
            params: Canonical params the key was built from.
            tags: Resource tags used by mutation-driven invalidation.
        """
        entry = CacheEntry(
            key=key,
            endpoint=endpoint or key.split("?", 1)[0],
            params=params or {},
            context=context or RequestContext(),
            value=value,
            stored_at=self._clock(),
            ttl_seconds=ttl_seconds,
            tags=frozenset(tags),
        )
        try:
            self._store(self._storage_key(key, context), entry)
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)
            return
        self._writes += 1

    def invalidate(self, predicate: EntryPredicate) -> int:
        """Remove every entry matching *predicate*.

        Returns:
            The number of entries removed (``0`` on backend failure).
        """
        return len(self.invalidate_keys(predicate))

    def invalidate_keys(self, predicate: EntryPredicate) -> list[str]:
        """Remove every entry matching *predicate* and return their request keys.

        A key appears once per removed partition, so the same request key
        cached for two users is listed twice.
        """
        removed: list[str] = []
        try:
            doomed = [(sk, entry.key) for sk, entry in self._entries() if predicate(entry)]
            for storage_key, key in doomed:
                self._delete(storage_key)
                removed.append(key)
        except Exception as exc:
            logger.warning("Cache invalidation failed: %s", exc)
        self._invalidations += len(removed)
        if removed:
            logger.debug("Invalidated %d cache entries", len(removed))
        return removed

    def clear_all(self) -> None:
        try:
            self._clear()
        except Exception as exc:
            logger.warning("Cache clear failed: %s", exc)

    def clear_by_user(self, user_id: str) -> int:
        """Remove every entry scoped to *user_id*, by context or by ``userId`` param."""
        return self.invalidate(scope_predicate("user_id", user_id))

    def clear_by_institute(self, institute_id: str) -> int:
        """Remove every entry scoped to *institute_id*, by context or by param."""
        return self.invalidate(scope_predicate("institute_id", institute_id))

    def stats(self) -> CacheStats:
        """Return entry counts and hit/miss counters."""
        now = self._clock()
        fresh = stale = 0
        try:
            for _, entry in self._entries():
                if entry.is_fresh(now):
                    fresh += 1
                else:
                    stale += 1
        except Exception as exc:
            logger.warning("Cache stats unavailable: %s", exc)
        return CacheStats(
            backend=self.backend,
            entry_count=fresh + stale,
            fresh_count=fresh,
            stale_count=stale,
            hits=self._hits,
            misses=self._misses,
            writes=self._writes,
            evictions=self._evictions,
            invalidations=self._invalidations,
        )

    def close(self) -> None:
        """Release backend resources. No-op by default."""

    # ------------------------------------------------------------------ #
    # Backend primitives
    # ------------------------------------------------------------------ #

    @staticmethod
    def _storage_key(key: str, context: Optional[RequestContext]) -> str:
        return f"{key}#{context_fingerprint(context)}"

    @abstractmethod
    def _load(self, storage_key: str) -> Optional[CacheEntry]: ...

    @abstractmethod
    def _store(self, storage_key: str, entry: CacheEntry) -> None: ...

    @abstractmethod
    def _delete(self, storage_key: str) -> None: ...

    @abstractmethod
    def _entries(self) -> list[tuple[str, CacheEntry]]: ...

    @abstractmethod
    def _clear(self) -> None: ...


class MemoryCacheStore(CacheStore):
    """Per-process cache held in a dict.

    When more than ``max_entries`` entries are stored, entries past their
    expiry are evicted first, then those closest to expiring.

    Args:
        max_entries: Upper bound on stored entries.
        clock: Monotonic clock used to stamp and age entries.
    """

    backend = "memory"

    def __init__(self, max_entries: int = 500, clock: Clock = time.monotonic) -> None:
        super().__init__(clock)
        self._max_entries = max_entries
        self._data: dict[str, CacheEntry] = {}

    def _load(self, storage_key: str) -> Optional[CacheEntry]:
        return self._data.get(storage_key)

    def _store(self, storage_key: str, entry: CacheEntry) -> None:
        self._data[storage_key] = entry
        if len(self._data) > self._max_entries:
            self._evict(protect=storage_key)

    def _delete(self, storage_key: str) -> None:
        self._data.pop(storage_key, None)

    def _entries(self) -> list[tuple[str, CacheEntry]]:
        return list(self._data.items())

    def _clear(self) -> None:
        self._data.clear()

    def _evict(self, protect: str) -> None:
        now = self._clock()
        expired = [sk for sk, e in self._data.items() if not e.is_fresh(now) and sk != protect]
        for storage_key in expired:
            del self._data[storage_key]
            self._evictions += 1
        overflow = len(self._data) - self._max_entries
        if overflow <= 0:
            return
        by_expiry = sorted(
            (sk for sk in self._data if sk != protect),
            key=lambda sk: self._data[sk].expires_at,
        )
        for storage_key in by_expiry[:overflow]:
            del self._data[storage_key]
            self._evictions += 1
        logger.debug("Evicted cache entries down to %d", len(self._data))
