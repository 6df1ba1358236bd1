"""Disk-backed Cache Store.

Uses :mod:`diskcache` to persist cache entries on the filesystem so that
a cache outlives a single CLI invocation. Entries are stored as pickled
:class:`~cachedapi.models.CacheEntry` objects keyed by request key and
context partition.

Freshness is still judged by the coordinator; diskcache's own ``expire``
is only a garbage-collection horizon set to a multiple of the entry's
ttl so that stale entries remain available for stale-while-revalidate.

Every diskcache call is wrapped by :class:`~cachedapi.cache.store.CacheStore`
so that an unreadable or locked cache directory degrades to a miss.

Note:
    ``stored_at`` comes from the configured clock. The default
    :func:`time.time` keeps ages meaningful across processes, which a
    monotonic clock does not guarantee.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import diskcache

from cachedapi.cache.store import CacheStore, Clock
from cachedapi.models import CacheEntry, CacheStats

logger = logging.getLogger(__name__)

_RETENTION_FACTOR = 4
"""diskcache expiry horizon, as a multiple of each entry's ttl."""


class DiskCacheStore(CacheStore):
    """Cache Store persisted in a :class:`diskcache.Cache` directory.

    Args:
        cache_dir: Root directory for the cache. A ``responses/``
            subdirectory is created inside it.
        max_entries: Soft upper bound; expired entries, then those
            closest to expiry, are dropped once it is exceeded.
        clock: Clock used to stamp entries (wall clock by default).

    Example::

        from cachedapi.cache import DiskCacheStore

        store = DiskCacheStore("/tmp/api-cache")
        store.set("/classes?{}", [{"id": 1}], ttl_seconds=600)
        hit = store.get("/classes?{}")
    """

    backend = "disk"

    def __init__(
        self,
        cache_dir: str | Path,
        max_entries: int = 500,
        clock: Clock = time.time,
    ) -> None:
        super().__init__(clock)
        self._cache_dir = Path(cache_dir)
        self._max_entries = max_entries
        self._cache: Optional[diskcache.Cache] = None
        try:
            self._cache = diskcache.Cache(str(self._cache_dir / "responses"))
        except Exception as exc:
            logger.warning("Disk cache unavailable at %s: %s", self._cache_dir, exc)

    @property
    def directory(self) -> Path:
        return self._cache_dir / "responses"

    def _require(self) -> diskcache.Cache:
        if self._cache is None:
            raise OSError(f"disk cache at {self.directory} is not open")
        return self._cache

    def _load(self, storage_key: str) -> Optional[CacheEntry]:
        entry = self._require().get(storage_key)
        return entry if isinstance(entry, CacheEntry) else None

    def _store(self, storage_key: str, entry: CacheEntry) -> None:
        cache = self._require()
        cache.set(storage_key, entry, expire=entry.ttl_seconds * _RETENTION_FACTOR)
        if len(cache) > self._max_entries:
            self._evictions += cache.expire()
            overflow = len(cache) - self._max_entries
            if overflow > 0:
                self._evict_oldest(cache, overflow, protect=storage_key)

    def _delete(self, storage_key: str) -> None:
        self._require().delete(storage_key)

    def _entries(self) -> list[tuple[str, CacheEntry]]:
        cache = self._require()
        entries = []
        for storage_key in list(cache.iterkeys()):
            entry = cache.get(storage_key)
            if isinstance(entry, CacheEntry):
                entries.append((storage_key, entry))
        return entries

    def _clear(self) -> None:
        self._require().clear()

    def _evict_oldest(self, cache: diskcache.Cache, count: int, protect: str) -> None:
        candidates = sorted(
            (e for e in self._entries() if e[0] != protect),
            key=lambda item: item[1].expires_at,
        )
        for storage_key, _ in candidates[:count]:
            cache.delete(storage_key)
            self._evictions += 1

    def stats(self) -> CacheStats:
        stats = super().stats()
        return stats.model_copy(update={"backend": f"disk:{self.directory}"})

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        if self._cache is not None:
            self._cache.close()
            self._cache = None
