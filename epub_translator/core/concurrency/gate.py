"""
Bounded concurrency gate for outbound backend requests.

Unlike a bare ``asyncio.Semaphore``, admission is strictly FIFO: a freed slot
is handed directly to the oldest waiter, so a late caller can never overtake
a queued one.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque

from epub_translator.config import MAX_CONCURRENT_REQUESTS

logger = logging.getLogger(__name__)


class ConcurrencyGate:
    """Runs at most ``max_concurrent`` gated tasks at a time."""

    def __init__(self, max_concurrent: int = MAX_CONCURRENT_REQUESTS):
        if max_concurrent <= 0:
            raise ValueError("max_concurrent must be positive")
        self.max_concurrent = max_concurrent
        self._running = 0
        self._waiters: Deque[asyncio.Future] = deque()
        self.peak_running = 0

    @property
    def running(self) -> int:
        return self._running

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def run(self, task: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Execute ``task(*args, **kwargs)`` once a slot is free.

        The slot is released after the task finishes, whether it returned or
        raised, and the next queued waiter is admitted.
        """
        await self._acquire()
        try:
            return await task(*args, **kwargs)
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._running < self.max_concurrent and not self._waiters:
            self._running += 1
            self.peak_running = max(self.peak_running, self._running)
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was already handed over; pass it on
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise
        # The releasing task transferred its slot, _running is unchanged

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._running -= 1
