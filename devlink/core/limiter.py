"""
Bounded-parallelism primitive with FIFO wake-up order
"""
import asyncio
from collections import deque
from typing import Deque


class ConcurrencyLimiter:
    """
    Async counting limiter.

    `acquire()` suspends until one of `limit` permits is free; `release()`
    hands the permit to the oldest waiter. A waiter cancelled while queued
    leaves the queue, and one cancelled just after being handed a permit
    passes it on.
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        self._limit = limit
        self._available = limit
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        """Number of permits currently held"""
        return self._limit - self._available

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        if self._available > 0 and not self.waiting:
            self._available -= 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Permit was handed over before the cancellation landed
                self.release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        if self._available >= self._limit:
            raise RuntimeError("ConcurrencyLimiter released too many times")
        self._available += 1

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        self.release()
