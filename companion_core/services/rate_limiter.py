from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable

logger = logging.getLogger("companion_core.services")


class SlidingWindowRateLimiter:
    """At most `max_requests` acquisitions in any `window_seconds` span."""

    def __init__(
        self,
        max_requests: int = 60,
        window_seconds: float = 60.0,
        *,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if int(max_requests) < 1:
            raise ValueError("max_requests must be >= 1")
        if float(window_seconds) <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_requests = int(max_requests)
        self.window_seconds = float(window_seconds)
        self._monotonic = monotonic
        self._sleep = sleep
        self._stamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _expire(self, now: float) -> None:
        while self._stamps and now - self._stamps[0] >= self.window_seconds:
            self._stamps.popleft()

    def remaining(self) -> int:
        self._expire(self._monotonic())
        return self.max_requests - len(self._stamps)

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = self._monotonic()
                self._expire(now)
                if len(self._stamps) < self.max_requests:
                    self._stamps.append(now)
                    return
                wait = self.window_seconds - (now - self._stamps[0])
                logger.debug("Generation rate limit reached; waiting %.2fs", wait)
                await self._sleep(max(wait, 0.01))
