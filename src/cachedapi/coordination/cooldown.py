"""Cooldown registry -- per-key dispatch rate limiting.

Records when a request key was last dispatched so that UI re-renders
firing the same read repeatedly do not turn into a request storm. This
only throttles the non-forced read path; it is not a correctness
mechanism.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class CooldownRegistry:
    """Map of request key to last dispatch time.

    A mark removes itself ``window + margin`` seconds after it was set:
    through :meth:`asyncio.loop.call_later` when an event loop is running,
    and lazily on the next access otherwise.

    Args:
        window: Seconds during which a key counts as "in cooldown".
        margin: Extra seconds before the mark is dropped.
        clock: Monotonic clock returning seconds.
    """

    def __init__(
        self,
        window: float = 1.0,
        margin: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window
        self._margin = margin
        self._clock = clock
        self._marks: dict[str, float] = {}

    @property
    def window(self) -> float:
        return self._window

    def is_in_cooldown(self, key: str) -> bool:
        """Return ``True`` iff *key* was dispatched less than ``window`` seconds ago."""
        last = self._marks.get(key)
        if last is None:
            return False
        elapsed = self._clock() - last
        if elapsed >= self._window + self._margin:
            self._forget(key, last)
        return elapsed < self._window

    def remaining(self, key: str) -> float:
        """Seconds left in *key*'s cooldown window, ``0.0`` when not throttled."""
        last = self._marks.get(key)
        if last is None:
            return 0.0
        return max(0.0, self._window - (self._clock() - last))

    def mark(self, key: str) -> None:
        """Record a dispatch of *key* now and schedule the mark's removal."""
        stamp = self._clock()
        self._marks[key] = stamp
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_later(self._window + self._margin, self._forget, key, stamp)

    def forget(self, key: str) -> None:
        """Drop *key*'s mark so its next read may dispatch immediately."""
        self._marks.pop(key, None)

    def _forget(self, key: str, stamp: float) -> None:
        # Only drop the mark this timer was scheduled for, never a newer one.
        if self._marks.get(key) == stamp:
            del self._marks[key]

    def clear(self) -> None:
        self._marks.clear()

    def __len__(self) -> int:
        return len(self._marks)
