"""HTTP client layer for cachedapi.

Classes:
    :class:`RequestCoordinator` -- caching, deduplicating, throttling front
        for reads and invalidating front for writes.
    :class:`HttpTransport` -- :class:`httpx.AsyncClient` wrapper that
        resolves base URL and bearer token per request and maps errors.

Example::

    from cachedapi.client import create_coordinator

    async with create_coordinator(config) as api:
        data = await api.get("/classes", {"instituteId": "I1"})
"""

from cachedapi.client.coordinator import RequestCoordinator, create_coordinator
from cachedapi.client.transport import HttpTransport

__all__ = ["HttpTransport", "RequestCoordinator", "create_coordinator"]
