"""Async helpers for the crawler and fetcher: retry policy, crawl frontier, rate limiting"""

import asyncio
import itertools
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar


T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Retry an awaitable on a fixed set of exception types

    ``retries`` counts extra attempts, so ``retries=2`` means at most three
    calls. The delay doubles (``backoff``) after every failed attempt.
    """
    retries: int = 2
    delay: float = 0.5
    backoff: float = 2.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        on_retry: Optional[Callable[[int, BaseException], None]] = None
    ) -> T:
        delay = self.delay
        attempt = 0
        while True:
            try:
                return await func()
            except self.retry_on as e:
                attempt += 1
                if attempt > self.retries:
                    raise
                if on_retry:
                    on_retry(attempt, e)
                if delay > 0:
                    await asyncio.sleep(delay)
                delay *= self.backoff


class Frontier:
    """
    Crawl frontier ordered by (depth, sequence)

    Shallow URLs come out first; URLs at the same depth come out in the
    order they were discovered.
    """

    def __init__(self):
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self._sequence = itertools.count()

    def push(self, url: str, depth: int):
        self._queue.put_nowait((depth, next(self._sequence), url))

    async def pop(self) -> Tuple[int, str]:
        """Next (depth, url), waiting while the frontier is empty"""
        depth, _, url = await self._queue.get()
        return depth, url

    def task_done(self):
        self._queue.task_done()

    async def drained(self):
        """Return once every pushed URL has been marked done"""
        await self._queue.join()

    def __len__(self) -> int:
        return self._queue.qsize()


class RateLimiter:
    """Token bucket of capacity one: requests are spaced at least 1/rate seconds apart"""

    def __init__(self, rate: float):
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self._interval = 1.0 / rate
        self._next_slot = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self):
        """Wait for the next free request slot"""
        async with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self._interval
        if slot > now:
            await asyncio.sleep(slot - now)
