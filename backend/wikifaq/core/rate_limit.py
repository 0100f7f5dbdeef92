"""
Request rate limiting for outbound LLM calls.

Two sliding-window limiters with the same ``acquire()`` contract:
- RequestRateLimiter: in-process, for a single worker
- RedisRequestRateLimiter: shared across processes through Redis

``acquire()`` waits until the call fits inside the window instead of
rejecting it; the pipeline would only retry anyway.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Optional

from redis.asyncio import Redis

from wikifaq.core.config import Settings
from wikifaq.db.redis import RedisRateLimiter

logger = logging.getLogger(__name__)


class RequestRateLimiter:
    """At most ``max_requests`` acquisitions in any ``window_seconds`` span."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._stamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _evict(self, now: float) -> None:
        while self._stamps and self._stamps[0] <= now - self.window_seconds:
            self._stamps.popleft()

    @property
    def in_window(self) -> int:
        self._evict(self._clock())
        return len(self._stamps)

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._stamps) < self.max_requests:
                    self._stamps.append(now)
                    return
                wait = self._stamps[0] + self.window_seconds - now
                logger.debug(f"Rate limit reached, waiting {wait:.2f}s")
                await self._sleep(max(wait, 0.0))


class RedisRequestRateLimiter:
    """Shared limiter; every worker process draws from the same window."""

    def __init__(
        self,
        redis: Redis,
        max_requests: int,
        window_seconds: int,
        key: str = "llm",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.limiter = RedisRateLimiter(redis)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.key = key
        self._sleep = sleep

    async def acquire(self) -> None:
        while True:
            allowed, count = await self.limiter.is_allowed(
                self.key, self.max_requests, self.window_seconds
            )
            if allowed:
                return
            wait = await self.limiter.seconds_until_free(self.key, self.window_seconds)
            logger.debug(
                f"Shared rate limit reached ({count}/{self.max_requests}), waiting {wait:.2f}s"
            )
            # Short floor so a clock skew between hosts cannot spin
            await self._sleep(max(wait, 0.05))


def build_rate_limiter(settings: Settings, redis: Optional[Redis] = None):
    """Return the configured limiter, or None when limiting is disabled."""
    if not settings.LLM_RATE_LIMIT_ENABLED:
        return None
    if settings.LLM_RATE_LIMIT_BACKEND == "redis":
        if redis is None:
            raise ValueError("Redis client is required for the redis rate limit backend")
        return RedisRequestRateLimiter(
            redis,
            settings.LLM_RATE_LIMIT_REQUESTS,
            settings.LLM_RATE_LIMIT_WINDOW_SECONDS,
        )
    return RequestRateLimiter(
        settings.LLM_RATE_LIMIT_REQUESTS,
        settings.LLM_RATE_LIMIT_WINDOW_SECONDS,
    )
