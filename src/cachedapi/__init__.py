"""cachedapi -- response caching and request coordination for HTTP APIs.

This package sits between application code and a remote JSON API. Reads
are served from a cache when safe, concurrent identical reads share one
network dispatch, repeated reads of the same resource are throttled, stale
data is refreshed in the background, and mutations purge the cached reads
they could have changed.

Typical usage::

    from cachedapi import create_coordinator

    async with create_coordinator() as api:
        classes = await api.get("/classes", {"instituteId": "I1"}, ttl=60)
        await api.post("/institute-classes", {"name": "7B"}, institute_id="I1")

Modules:
    client: The :class:`RequestCoordinator` and its HTTP transport.
    cache: Cache Store implementations (memory and disk).
    coordination: Pending-operation and cooldown registries.
    invalidation: Mutation-driven invalidation predicates.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
"""

__version__ = "0.1.0"

from cachedapi.client.coordinator import RequestCoordinator, create_coordinator  # noqa: E402
from cachedapi.models import RequestContext, RequestOptions  # noqa: E402

__all__ = [
    "RequestCoordinator",
    "RequestContext",
    "RequestOptions",
    "create_coordinator",
    "__version__",
]
