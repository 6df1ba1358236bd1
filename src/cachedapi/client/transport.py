"""Asynchronous HTTP transport used by the request coordinator.

This module provides :class:`HttpTransport`, a thin wrapper around
:class:`httpx.AsyncClient` that resolves the base URL and bearer token on
every dispatch, retries 5xx and connection errors only when configured to,
and maps failures onto the :mod:`cachedapi.exceptions` hierarchy.

The transport knows nothing about caching. Credential clearing on ``401``
is the coordinator's job; the transport only raises
:class:`~cachedapi.exceptions.AuthFailureError`.

See Also:
    :class:`~cachedapi.client.coordinator.RequestCoordinator` -- the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from cachedapi.auth.token_store import (
    ACCESS_TOKEN,
    BASE_URL,
    ORG_ACCESS_TOKEN,
    SECONDARY_BASE_URL,
    MemoryTokenStore,
)
from cachedapi.exceptions import AuthFailureError, NetworkFailureError, NotConfiguredError
from cachedapi.keys import normalize_endpoint
from cachedapi.models import ClientConfig

logger = logging.getLogger(__name__)


class HttpTransport:
    """Asynchronous HTTP transport for API calls.

    Can be used as an async context manager; otherwise the underlying
    :class:`httpx.AsyncClient` is created on first use and released by
    :meth:`aclose`.

    Args:
        config: Client configuration (base URLs and request settings).
        token_store: Store the bearer token and base URL overrides are read
            from on every request.
        transport: Optional :class:`httpx.AsyncBaseTransport`, e.g. an
            :class:`httpx.MockTransport` in tests.

    Example::

        async with HttpTransport(config, store) as transport:
            response = await transport.request("GET", "/classes", params={"page": 1})
    """

    def __init__(
        self,
        config: ClientConfig,
        token_store: Optional[MemoryTokenStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._token_store = token_store if token_store is not None else MemoryTokenStore()
        self._transport = transport
        self._use_secondary = config.use_secondary
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> HttpTransport:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Base URL and headers
    # ------------------------------------------------------------------ #

    @property
    def token_store(self) -> MemoryTokenStore:
        return self._token_store

    @property
    def using_secondary(self) -> bool:
        return self._use_secondary

    def use_secondary_base_url(self, use: bool) -> None:
        """Switch dispatches to the secondary (organisation) base URL and token."""
        self._use_secondary = use
        logger.info(
            "Switched to %s base URL: %s",
            "secondary" if use else "primary",
            self.resolve_base_url() or "<not configured>",
        )

    def resolve_base_url(self) -> str:
        """Return the active base URL, or ``""`` when none is configured.

        A value written to the token store wins over the configuration.
        """
        if self._use_secondary:
            stored = self._token_store.get(SECONDARY_BASE_URL)
            configured = self._config.secondary_base_url
        else:
            stored = self._token_store.get(BASE_URL)
            configured = self._config.base_url
        return (stored or configured or "").rstrip("/")

    def build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._token_store.get(ACCESS_TOKEN)
        if self._use_secondary:
            token = self._token_store.get(ORG_ACCESS_TOKEN) or token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.debug("No access token available; sending unauthenticated request")
        return headers

    def credential_names(self) -> tuple[str, ...]:
        """Token-store entries to clear when the API rejects the credential."""
        if self._use_secondary:
            return (ACCESS_TOKEN, ORG_ACCESS_TOKEN)
        return (ACCESS_TOKEN,)

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[Any] = None,
    ) -> httpx.Response:
        """Send a request and return the successful response.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            endpoint: Path appended to the active base URL.
            params: Query parameters; ``None`` values are dropped.
            json_body: JSON-serialisable body.

        Returns:
            The 2xx :class:`httpx.Response`.

        Raises:
            NotConfiguredError: No base URL is configured.
            AuthFailureError: On 401.
            NetworkFailureError: On any other non-2xx status, or on a
                transport error after all retries.
        """
        base = self.resolve_base_url()
        if not base:
            raise NotConfiguredError(
                "Backend URL not configured. Set base_url in the config or "
                "CACHEDAPI_BASE_URL in the environment."
            )

        url = f"{base}{normalize_endpoint(endpoint)}"
        query = {k: v for k, v in (params or {}).items() if v is not None}
        logger.debug("%s %s params=%s", method, url, query)

        response = await self._execute_with_retry(method, url, query, json_body)
        self._map_response_error(method, url, response)
        return response

    async def _execute_with_retry(
        self,
        method: str,
        url: str,
        params: dict[str, Any],
        json_body: Any,
    ) -> httpx.Response:
        """Execute the request, retrying with exponential backoff when configured.

        Retries on 5xx status codes and connection / timeout errors up to
        ``max_retries`` times. The delay doubles each attempt: 1 s, 2 s, 4 s, ...
        """
        client = self._ensure_client()
        max_retries = self._config.request.max_retries

        for attempt in range(max_retries + 1):
            try:
                kwargs: dict[str, Any] = {
                    "method": method,
                    "url": url,
                    "headers": self.build_headers(),
                    "params": params,
                }
                if json_body is not None:
                    kwargs["json"] = json_body

                response = await client.request(**kwargs)

                if response.status_code >= 500 and attempt < max_retries:
                    delay = 2 ** attempt
                    logger.debug(
                        "Server error %s, retrying in %ss (attempt %d/%d)",
                        response.status_code, delay, attempt + 1, max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue

                return response

            except httpx.TransportError as exc:
                if attempt < max_retries:
                    delay = 2 ** attempt
                    logger.debug(
                        "Connection error: %s, retrying in %ss (attempt %d/%d)",
                        exc, delay, attempt + 1, max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise NetworkFailureError(
                    f"Request failed after {max_retries + 1} attempt(s): {exc}"
                ) from exc

        raise NetworkFailureError("Request failed after all retries")  # pragma: no cover

    def _map_response_error(self, method: str, url: str, response: httpx.Response) -> None:
        """Raise a typed exception for non-2xx responses."""
        status = response.status_code
        if 200 <= status < 300:
            return

        text = response.text[:200] if response.content else ""
        logger.error("%s %s failed with HTTP %s: %s", method, url, status, text)
        message = f"HTTP {status}: {response.reason_phrase or text}".rstrip(": ")

        if status == 401:
            raise AuthFailureError(message, status_code=status, text=text)
        raise NetworkFailureError(message, status_code=status, text=text)

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            config = self._config.request
            self._client = httpx.AsyncClient(
                timeout=config.timeout,
                verify=config.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client
