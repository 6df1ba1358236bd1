"""Pending-operation registry -- the sole deduplication mechanism.

Maps a request key to the single in-flight :class:`asyncio.Future`
producing that key's value. Every caller asking for a key while it is
registered receives the same future, so racing callers resolve to the
exact same network dispatch and observe the same result or error.

The coordinator runs on one event loop and the check-then-insert in
:meth:`PendingRegistry.get_or_create` contains no ``await``, so it is
atomic with respect to other coroutines without a lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, Callable

logger = logging.getLogger(__name__)

Producer = Callable[[], Awaitable[Any]]


class PendingRegistry:
    """Registry of in-flight operations keyed by request key.

    Entries are removed unconditionally once their operation settles,
    successfully or not, so a failed dispatch is never left "stuck" and
    the next caller dispatches afresh.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[Any]] = {}

    def get_or_create(self, key: str, producer: Producer) -> asyncio.Future[Any]:
        """Return the in-flight future for *key*, starting *producer* if there is none.

        Args:
            key: The request key.
            producer: Zero-argument coroutine function performing the dispatch.
                Only invoked when no operation is registered for *key*.

        Returns:
            The shared future. Await it through :func:`asyncio.shield` so
            one caller's cancellation does not cancel the dispatch for
            everyone else.
        """
        existing = self._pending.get(key)
        if existing is not None:
            logger.debug("Reusing pending request: %s", key)
            return existing

        future = asyncio.ensure_future(producer())
        self._pending[key] = future
        future.add_done_callback(lambda done: self._settle(key, done))
        return future

    def _settle(self, key: str, future: asyncio.Future[Any]) -> None:
        # A clear() followed by a new dispatch may have replaced the entry.
        if self._pending.get(key) is future:
            del self._pending[key]
        if not future.cancelled() and future.exception() is not None:
            logger.debug("Pending request failed: %s", key)

    def discard(self, key: str) -> bool:
        """Detach *key*'s in-flight operation without cancelling it.

        Callers already awaiting it still get its result; the next
        :meth:`get_or_create` for *key* starts a new operation.

        Returns:
            ``True`` if an operation was registered for *key*.
        """
        return self._pending.pop(key, None) is not None

    def clear(self) -> None:
        """Forget all in-flight operations without cancelling them."""
        self._pending.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)
