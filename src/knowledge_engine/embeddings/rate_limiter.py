"""
Concurrency and request-rate limiting for the embedding provider.

One RateLimiter instance is shared by every EmbeddingClient in the process so
the in-flight bound and the rolling request window hold globally.
"""

import time
import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Dict, Optional


class RateLimiter:
    """Bounds concurrent requests and requests per rolling time window.

    Used as an async context manager around each provider request:
    entering waits for a concurrency slot, then delays dispatch until the
    rolling window has room.
    """

    def __init__(self, max_concurrent: int = 5, max_requests: int = 300, period: float = 60.0,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        """Initialize rate limiter.

        Args:
            max_concurrent: Maximum requests in flight
            max_requests: Maximum requests started per period
            period: Length of the rolling window in seconds
            clock: Monotonic clock, injectable for tests
            sleep: Awaitable sleep, injectable for tests
        """
        if max_concurrent < 1 or max_requests < 1 or period <= 0:
            raise ValueError("rate limiter bounds must be positive")
        self.max_concurrent = max_concurrent
        self.max_requests = max_requests
        self.period = period
        self._clock = clock
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._window_lock = asyncio.Lock()
        self._started: deque = deque()
        self.in_flight = 0
        self.total_requests = 0
        self.total_wait_time = 0.0

    @classmethod
    def from_config(cls, embeddings_config: Optional[Dict[str, Any]] = None) -> 'RateLimiter':
        config = embeddings_config or {}
        return cls(
            max_concurrent=config.get('max_concurrent_requests', 5),
            max_requests=config.get('rate_limit_requests', 300),
            period=config.get('rate_limit_period', 60.0)
        )

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        try:
            await self._wait_for_window()
        except BaseException:
            self._semaphore.release()
            raise
        self.in_flight += 1

    def release(self) -> None:
        self.in_flight -= 1
        self._semaphore.release()

    async def __aenter__(self) -> 'RateLimiter':
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()

    async def _wait_for_window(self) -> None:
        async with self._window_lock:
            while True:
                now = self._clock()
                while self._started and now - self._started[0] >= self.period:
                    self._started.popleft()
                if len(self._started) < self.max_requests:
                    self._started.append(now)
                    self.total_requests += 1
                    return

                wait = self.period - (now - self._started[0])
                self.total_wait_time += wait
                logging.info(f"Embedding rate limit reached ({self.max_requests}/{self.period:.0f}s), "
                             f"delaying dispatch by {wait:.2f}s")
                await self._sleep(wait)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'max_concurrent': self.max_concurrent,
            'max_requests': self.max_requests,
            'period': self.period,
            'in_flight': self.in_flight,
            'requests_in_window': len(self._started),
            'total_requests': self.total_requests,
            'total_wait_time': self.total_wait_time
        }


class NoopRateLimiter:
    """Limiter that never waits, for tests and local providers."""

    def __init__(self):
        self.in_flight = 0
        self.max_in_flight = 0
        self.total_requests = 0

    async def __aenter__(self) -> 'NoopRateLimiter':
        self.in_flight += 1
        self.total_requests += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.in_flight -= 1

    def get_stats(self) -> Dict[str, Any]:
        return {'in_flight': self.in_flight, 'total_requests': self.total_requests,
                'max_in_flight': self.max_in_flight}
