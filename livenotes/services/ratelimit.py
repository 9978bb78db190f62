from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional


class RateLimiter:
    """Global minimum spacing between outbound model calls.

    Spacing is measured from the *end* of the previous call, across every
    provider and every chunk task. ``slot()`` holds a lock from the wait until
    the call has finished, so concurrent callers (a queue task and a provider
    test) go through one at a time.
    """

    def __init__(
        self,
        min_interval_s: float = 5.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval_s = min_interval_s
        self.clock = clock
        self.sleep = sleep
        self._last_end: Optional[float] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def remaining(self) -> float:
        if self._last_end is None:
            return 0.0
        return max(0.0, self.min_interval_s - (self.clock() - self._last_end))

    async def wait(self) -> None:
        delay = self.remaining()
        if delay > 0:
            await self.sleep(delay)

    def mark_done(self) -> None:
        self._last_end = self.clock()

    def _loop_lock(self) -> asyncio.Lock:
        # one lock per running event loop
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        async with self._loop_lock():
            await self.wait()
            try:
                yield
            finally:
                self.mark_done()
