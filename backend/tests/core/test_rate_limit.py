"""
Tests for the LLM request rate limiters.
"""

from unittest.mock import AsyncMock

import pytest

from wikifaq.core.config import Settings
from wikifaq.core.rate_limit import (
    RedisRequestRateLimiter,
    RequestRateLimiter,
    build_rate_limiter,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


class TestRequestRateLimiter:

    async def test_allows_up_to_limit_without_waiting(self):
        clock = FakeClock()
        limiter = RequestRateLimiter(3, 60, clock=clock, sleep=clock.sleep)

        for _ in range(3):
            await limiter.acquire()

        assert clock.now == 0.0
        assert limiter.in_window == 3

    async def test_waits_for_oldest_request_to_leave_window(self):
        clock = FakeClock()
        limiter = RequestRateLimiter(2, 60, clock=clock, sleep=clock.sleep)

        await limiter.acquire()
        clock.now = 10.0
        await limiter.acquire()
        await limiter.acquire()

        # The first request (t=0) leaves the window at t=60
        assert clock.now == 60.0
        assert limiter.in_window == 2

    def test_rejects_zero_requests(self):
        with pytest.raises(ValueError):
            RequestRateLimiter(0, 60)


class TestRedisRequestRateLimiter:

    async def test_retries_until_allowed(self):
        sleeps = []

        async def sleep(seconds):
            sleeps.append(seconds)

        limiter = RedisRequestRateLimiter(AsyncMock(), max_requests=5, window_seconds=60, sleep=sleep)
        limiter.limiter = AsyncMock()
        limiter.limiter.is_allowed.side_effect = [(False, 5), (True, 5)]
        limiter.limiter.seconds_until_free.return_value = 3.5

        await limiter.acquire()

        assert sleeps == [3.5]
        assert limiter.limiter.is_allowed.await_count == 2


class TestBuildRateLimiter:

    def test_disabled_returns_none(self):
        settings = Settings(DATABASE_URL="sqlite+aiosqlite://", LLM_RATE_LIMIT_ENABLED=False)
        assert build_rate_limiter(settings) is None

    def test_memory_backend(self):
        settings = Settings(
            DATABASE_URL="sqlite+aiosqlite://",
            LLM_RATE_LIMIT_ENABLED=True,
            LLM_RATE_LIMIT_BACKEND="memory",
            LLM_RATE_LIMIT_REQUESTS=7,
        )
        limiter = build_rate_limiter(settings)
        assert isinstance(limiter, RequestRateLimiter)
        assert limiter.max_requests == 7

    def test_redis_backend_requires_client(self):
        settings = Settings(
            DATABASE_URL="sqlite+aiosqlite://",
            LLM_RATE_LIMIT_ENABLED=True,
            LLM_RATE_LIMIT_BACKEND="redis",
        )
        with pytest.raises(ValueError):
            build_rate_limiter(settings)
