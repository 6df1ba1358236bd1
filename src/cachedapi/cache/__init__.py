"""Cache Store backends for cachedapi.

This package provides :class:`CacheStore`, the contract the
:class:`~cachedapi.client.coordinator.RequestCoordinator` reads and writes
through, and two backends:

* :class:`MemoryCacheStore` -- per-process dict, the library default.
* :class:`DiskCacheStore` -- :mod:`diskcache` directory, used by the CLI.

The backend is selected by the ``cache.backend`` setting of
:class:`~cachedapi.models.CacheConfig`.
"""

from cachedapi.cache.disk import DiskCacheStore
from cachedapi.cache.store import CacheStore, MemoryCacheStore

__all__ = ["CacheStore", "DiskCacheStore", "MemoryCacheStore"]
