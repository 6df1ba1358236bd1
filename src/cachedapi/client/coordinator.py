"""Request coordinator -- the public caching and deduplication surface.

:class:`RequestCoordinator` sits between application code and
:class:`~cachedapi.client.transport.HttpTransport`. For a read it consults,
in order, the cooldown registry, the Cache Store and the pending-operation
registry before falling through to a real network dispatch. Writes always
dispatch and, on success, purge the cached reads the mutation could have
changed.

Per request key the flow is::

    get() --> in cooldown? --yes--> cached under 2x ttl? --> value
      |                               |-- in flight? --> shared result
      |                               '-- CooldownExhaustedError
      '-no--> cached & fresh? --> value
              cached & stale? --> value + background refresh (SWR)
              miss / forced   --> pending registry --> dispatch --> cache

All state (cache, pending operations, cooldown marks, background tasks)
is owned by one coordinator instance bound to one event loop. Construct
one per application (or per test) with :func:`create_coordinator`.

Example::

    async with create_coordinator(config, token_store=TokenStore()) as api:
        classes = await api.get("/classes", {"instituteId": "I1"}, ttl=60)
        await api.post("/institute-classes", {"name": "7B"}, institute_id="I1")
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional

import httpx

from cachedapi.auth.token_store import MemoryTokenStore
from cachedapi.cache import CacheStore, DiskCacheStore, MemoryCacheStore
from cachedapi.cache.store import EntryPredicate, scope_predicate
from cachedapi.client.response import extract_payload
from cachedapi.client.transport import HttpTransport
from cachedapi.coordination import CooldownRegistry, PendingRegistry
from cachedapi.exceptions import AuthFailureError, CooldownExhaustedError
from cachedapi.invalidation import ResourceTagger, mutation_predicate
from cachedapi.keys import canonicalize_params, make_request_key, normalize_endpoint
from cachedapi.models import (
    CONTEXT_FIELDS,
    CacheEntry,
    CacheStats,
    ClientConfig,
    RequestContext,
    RequestOptions,
)

logger = logging.getLogger(__name__)

_OPTION_FIELDS = ("ttl", "force_refresh", "use_stale_while_revalidate")

_COOLDOWN_TTL_FACTOR = 2.0
"""Multiple of the caller's ttl within which a cached read is served while throttled."""


class RequestCoordinator:
    """Caching, deduplicating, throttling front for an HTTP API.

    Options may be passed as a :class:`~cachedapi.models.RequestOptions`
    instance, as keyword arguments (``ttl``, ``force_refresh``,
    ``use_stale_while_revalidate``, ``context``, ``user_id``,
    ``institute_id``, ``class_id``, ``subject_id``, ``role``), or both --
    keywords override the instance.

    Args:
        transport: The HTTP transport used for every dispatch.
        store: Cache Store. Defaults to a :class:`MemoryCacheStore` sharing
            this coordinator's clock. A store supplied here must stamp
            entries with the same clock.
        token_store: Credential store cleared on ``401``. Defaults to the
            transport's store.
        config: Client configuration (cache, coordination and
            invalidation settings).
        clock: Clock returning seconds, used for freshness and cooldown.
    """

    def __init__(
        self,
        transport: HttpTransport,
        store: Optional[CacheStore] = None,
        token_store: Optional[MemoryTokenStore] = None,
        config: Optional[ClientConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or ClientConfig()
        self._transport = transport
        self._clock = clock
        self._store = (
            store
            if store is not None
            else MemoryCacheStore(self._config.cache.max_entries, clock=clock)
        )
        self._token_store = token_store if token_store is not None else transport.token_store
        coordination = self._config.coordination
        self._pending = PendingRegistry()
        self._cooldown = CooldownRegistry(
            window=coordination.cooldown_seconds,
            margin=coordination.cooldown_margin_seconds,
            clock=clock,
        )
        self._tagger = ResourceTagger(self._config.invalidation.rules)
        self._background: set[asyncio.Task[Any]] = set()
        # Bumped by every invalidation; dispatches that started earlier
        # must not write their (possibly pre-mutation) result.
        self._epoch = 0
        # Shape of each running read, so invalidation predicates can match
        # requests that have no cache entry yet.
        self._inflight: dict[str, CacheEntry] = {}

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> RequestCoordinator:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Wait for background refreshes and preloads, then release resources."""
        await self.wait_for_background()
        await self._transport.aclose()
        self._store.close()

    async def wait_for_background(self) -> None:
        """Wait until every background refresh and preload has settled."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def transport(self) -> HttpTransport:
        return self._transport

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        options: Optional[RequestOptions] = None,
        **overrides: Any,
    ) -> Any:
        """Read *endpoint*, serving from cache when safe.

        Args:
            endpoint: API path, e.g. ``"/classes"``.
            params: Query parameters. ``None`` values are ignored.
            options: Request options; see the class docstring for keywords.

        Returns:
            The decoded payload (fresh from the network, or cached).

        Raises:
            CooldownExhaustedError: The key was dispatched within the
                cooldown window and nothing usable is cached or in flight.
            NotConfiguredError: No base URL is configured.
            AuthFailureError: The API answered 401.
            NetworkFailureError: Any other failed dispatch.
        """
        opts = self._resolve_options(options, overrides)
        path = normalize_endpoint(endpoint)
        canonical = canonicalize_params(params)
        key = make_request_key(path, canonical)
        context = opts.context

        if not opts.force_refresh and self._cooldown.is_in_cooldown(key):
            logger.debug("Request in cooldown period: %s", key)
            entry = self._store.get_entry(key, context)
            stretched = opts.ttl_seconds * _COOLDOWN_TTL_FACTOR
            if entry is not None and self._clock() < entry.stored_at + stretched:
                return entry.value
            if key in self._pending:
                return await asyncio.shield(self._pending.get_or_create(key, _never))
            raise CooldownExhaustedError(key, self._cooldown.remaining(key))

        if not opts.force_refresh:
            entry = self._store.get_entry(key, context)
            if entry is not None:
                if entry.is_fresh(self._clock()):
                    logger.debug("Cache hit: %s", key)
                    return entry.value
                if opts.use_stale_while_revalidate:
                    logger.debug("Serving stale entry, revalidating: %s", key)
                    self._spawn(self._revalidate(key, path, canonical, opts))
                    return entry.value
                logger.debug("Stale entry without revalidation, refetching: %s", key)

        future = self._pending.get_or_create(
            key, lambda: self._dispatch_read(key, path, canonical, opts)
        )
        return await asyncio.shield(future)

    async def _dispatch_read(
        self,
        key: str,
        path: str,
        params: dict[str, str],
        opts: RequestOptions,
    ) -> Any:
        self._cooldown.mark(key)
        epoch = self._epoch
        tags = self._tagger.tags_for(path)
        running = CacheEntry(
            key=key,
            endpoint=path,
            params=params,
            context=opts.context,
            stored_at=self._clock(),
            ttl_seconds=opts.ttl_seconds,
            tags=tags,
        )
        self._inflight[key] = running
        logger.debug("API request: GET %s context=%s", key, opts.context.scope())
        try:
            response = await self._send("GET", path, opts.context, params=params)
        finally:
            if self._inflight.get(key) is running:
                del self._inflight[key]
        payload = extract_payload(response)
        if epoch == self._epoch:
            self._store.set(
                key,
                payload,
                opts.context,
                opts.ttl_seconds,
                endpoint=path,
                params=params,
                tags=tags,
            )
        else:
            logger.debug("Cache invalidated while in flight, not storing: %s", key)
        logger.info("API request successful: %s", path)
        return payload

    async def _revalidate(
        self,
        key: str,
        path: str,
        params: dict[str, str],
        opts: RequestOptions,
    ) -> None:
        """Refresh *key* in the background; failures are logged and discarded."""
        try:
            await asyncio.sleep(self._config.coordination.revalidate_delay_seconds)
            future = self._pending.get_or_create(
                key, lambda: self._dispatch_read(key, path, params, opts)
            )
            await asyncio.shield(future)
            logger.debug("Background revalidation complete: %s", path)
        except Exception as exc:
            logger.warning("Background revalidation failed for %s: %s", path, exc)

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    async def post(
        self,
        endpoint: str,
        body: Any = None,
        options: Optional[RequestOptions] = None,
        **overrides: Any,
    ) -> Any:
        """Send a POST and invalidate affected cached reads on success."""
        return await self._mutate("POST", endpoint, body, options, overrides)

    async def put(
        self,
        endpoint: str,
        body: Any = None,
        options: Optional[RequestOptions] = None,
        **overrides: Any,
    ) -> Any:
        """Send a PUT and invalidate affected cached reads on success."""
        return await self._mutate("PUT", endpoint, body, options, overrides)

    async def patch(
        self,
        endpoint: str,
        body: Any = None,
        options: Optional[RequestOptions] = None,
        **overrides: Any,
    ) -> Any:
        """Send a PATCH and invalidate affected cached reads on success."""
        return await self._mutate("PATCH", endpoint, body, options, overrides)

    async def delete(
        self,
        endpoint: str,
        options: Optional[RequestOptions] = None,
        **overrides: Any,
    ) -> Any:
        """Send a DELETE and invalidate affected cached reads on success."""
        return await self._mutate("DELETE", endpoint, None, options, overrides)

    async def _mutate(
        self,
        method: str,
        endpoint: str,
        body: Any,
        options: Optional[RequestOptions],
        overrides: dict[str, Any],
    ) -> Any:
        """Dispatch a mutation. Never cached, never coalesced.

        On failure nothing is invalidated and the error propagates unchanged.
        """
        opts = self._resolve_options(options, overrides)
        path = normalize_endpoint(endpoint)
        logger.debug("%s request: %s context=%s", method, path, opts.context.scope())
        response = await self._send(method, path, opts.context, json_body=body)
        payload = extract_payload(response)
        removed = self.invalidate_for_mutation(path, opts.context)
        logger.info("%s successful, %d cache entries invalidated: %s", method, removed, path)
        return payload

    def invalidate_for_mutation(
        self, endpoint: str, context: Optional[RequestContext] = None
    ) -> int:
        """Purge cached reads that a mutation of *endpoint* under *context* could change.

        Matching reads still in flight are detached and every affected key
        leaves cooldown, so the next ``get`` for it dispatches afresh.

        Returns:
            The number of cache entries removed.
        """
        tags = self._tagger.tags_for(endpoint)
        return self._purge(mutation_predicate(tags, context or RequestContext()))

    def _purge(self, predicate: EntryPredicate) -> int:
        self._epoch += 1
        removed = self._store.invalidate_keys(predicate)
        released = set(removed)
        for key, running in list(self._inflight.items()):
            if predicate(running):
                del self._inflight[key]
                self._pending.discard(key)
                released.add(key)
                logger.debug("Detached in-flight request: %s", key)
        for key in released:
            self._cooldown.forget(key)
        return len(removed)

    # ------------------------------------------------------------------ #
    # Cache inspection and management
    # ------------------------------------------------------------------ #

    def has_cache(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        context: RequestContext | dict[str, Any] | None = None,
    ) -> bool:
        """Return ``True`` if an entry (fresh or stale) is cached. Never dispatches."""
        return self.get_cached_only(endpoint, params, context) is not None

    def get_cached_only(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        context: RequestContext | dict[str, Any] | None = None,
    ) -> Any:
        """Return the cached value, or ``None`` when absent. Never dispatches."""
        key = make_request_key(endpoint, params)
        entry = self._store.get_entry(key, _coerce_context(context))
        return None if entry is None else entry.value

    def preload(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        options: Optional[RequestOptions] = None,
        **overrides: Any,
    ) -> None:
        """Warm the cache for *endpoint* in the background.

        Must be called from a running event loop. Failures are logged and
        discarded; :meth:`wait_for_background` waits for completion.
        """
        opts = self._resolve_options(options, overrides).model_copy(
            update={"force_refresh": False}
        )
        self._spawn(self._preload(endpoint, params, opts))

    async def _preload(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]],
        opts: RequestOptions,
    ) -> None:
        try:
            await self.get(endpoint, params, opts)
            logger.debug("Preloaded: %s", endpoint)
        except Exception as exc:
            logger.warning("Preload failed for %s: %s", endpoint, exc)

    def clear_pending_requests(self) -> None:
        """Forget in-flight operations and cooldown marks.

        In-flight dispatches are not cancelled; their callers still
        receive their results.
        """
        logger.debug("Clearing all pending requests")
        self._pending.clear()
        self._cooldown.clear()

    def get_cache_stats(self) -> CacheStats:
        return self._store.stats().model_copy(
            update={
                "pending_count": len(self._pending),
                "cooldown_count": len(self._cooldown),
                "background_count": len(self._background),
            }
        )

    def clear_all_cache(self) -> None:
        """Drop every cached entry, in-flight read and cooldown mark."""
        self._epoch += 1
        self._store.clear_all()
        self._inflight.clear()
        self._pending.clear()
        self._cooldown.clear()
        logger.info("Cleared all cache entries")

    def clear_user_cache(self, user_id: str) -> int:
        removed = self._purge(scope_predicate("user_id", user_id))
        logger.info("Cleared %d cache entries for user %s", removed, user_id)
        return removed

    def clear_institute_cache(self, institute_id: str) -> int:
        removed = self._purge(scope_predicate("institute_id", institute_id))
        logger.info("Cleared %d cache entries for institute %s", removed, institute_id)
        return removed

    def use_secondary_base_url(self, use: bool) -> None:
        """Dispatch against the secondary (organisation) API."""
        self._transport.use_secondary_base_url(use)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _send(
        self,
        method: str,
        path: str,
        context: RequestContext,
        params: Optional[dict[str, str]] = None,
        json_body: Any = None,
    ) -> httpx.Response:
        try:
            return await self._transport.request(
                method, path, params=params, json_body=json_body
            )
        except AuthFailureError:
            self._handle_auth_failure(context)
            raise

    def _handle_auth_failure(self, context: RequestContext) -> None:
        """Clear the stored credential and the caller's cache partition."""
        for name in self._transport.credential_names():
            try:
                self._token_store.delete(name)
            except OSError as exc:
                logger.warning("Could not clear credential %s: %s", name, exc)
        logger.warning("Authorization failed; stored credential cleared")
        if context.user_id:
            self.clear_user_cache(context.user_id)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _resolve_options(
        self, options: Optional[RequestOptions], overrides: dict[str, Any]
    ) -> RequestOptions:
        unknown = set(overrides) - set(_OPTION_FIELDS) - set(CONTEXT_FIELDS) - {"context"}
        if unknown:
            raise TypeError(f"Unexpected request option(s): {', '.join(sorted(unknown))}")

        base = options
        if base is None:
            base = RequestOptions(ttl=self._config.cache.default_ttl_minutes)
        if not overrides:
            return base

        data = base.model_dump(exclude={"context"})
        data.update({k: overrides[k] for k in _OPTION_FIELDS if k in overrides})
        context = base.context
        if "context" in overrides:
            context = _coerce_context(overrides["context"])
        scoped = {k: overrides[k] for k in CONTEXT_FIELDS if overrides.get(k) is not None}
        if scoped:
            context = context.model_copy(update=scoped)
        data["context"] = context
        return RequestOptions.model_validate(data)


async def _never() -> None:  # pragma: no cover
    raise AssertionError("producer invoked for a key that is already pending")


def _coerce_context(context: RequestContext | dict[str, Any] | None) -> RequestContext:
    if context is None:
        return RequestContext()
    if isinstance(context, RequestContext):
        return context
    return RequestContext.model_validate(context)


def create_coordinator(
    config: Optional[ClientConfig] = None,
    *,
    token_store: Optional[MemoryTokenStore] = None,
    store: Optional[CacheStore] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Callable[[], float]] = None,
) -> RequestCoordinator:
    """Build a :class:`RequestCoordinator` from configuration.

    Args:
        config: Client configuration; defaults to :class:`ClientConfig`.
        token_store: Credential store shared by the transport and the
            coordinator. Defaults to an empty :class:`MemoryTokenStore`.
        store: Cache Store; when omitted one is built from
            ``config.cache.backend`` (the disk backend lives under
            :func:`~cachedapi.config.get_cache_dir`).
        http_transport: Optional :class:`httpx.AsyncBaseTransport`.
        clock: Clock for freshness and cooldown. Defaults to
            :func:`time.time` for the disk backend (entries outlive the
            process) and :func:`time.monotonic` otherwise.
    """
    config = config or ClientConfig()
    if clock is None:
        clock = time.time if config.cache.backend == "disk" else time.monotonic
    if store is None:
        if config.cache.backend == "disk":
            from cachedapi.config import get_cache_dir

            store = DiskCacheStore(get_cache_dir(), config.cache.max_entries, clock=clock)
        else:
            store = MemoryCacheStore(config.cache.max_entries, clock=clock)
    transport = HttpTransport(config, token_store, transport=http_transport)
    return RequestCoordinator(transport, store=store, config=config, clock=clock)
