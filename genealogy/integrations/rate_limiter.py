"""
Sliding-window request budget for the lookup client.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque
import logging

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


class SlidingWindowRateLimiter:
    """
    Allows at most `max_per_window` acquisitions in any trailing window.

    When the budget is spent, `acquire` sleeps until the oldest request
    leaves the window. One instance is shared by every call made through a
    client, so concurrent batches draw from the same budget.
    """

    def __init__(
        self,
        max_per_window: int = 60,
        window_seconds: float = WINDOW_SECONDS,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self.enabled = enabled
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()

    def _evict(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    async def acquire(self) -> None:
        if not self.enabled:
            return

        async with self._lock:
            now = self._clock()
            self._evict(now)

            if len(self._timestamps) >= self.max_per_window:
                wait = self.window_seconds - (now - self._timestamps[0])
                if wait > 0:
                    logger.warning(f"Rate limit reached, waiting {wait:.1f}s")
                    await self._sleep(wait)
                now = self._clock()
                self._evict(now)

            self._timestamps.append(now)

    @property
    def in_window(self) -> int:
        self._evict(self._clock())
        return len(self._timestamps)
