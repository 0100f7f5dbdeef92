"""
Redis connection management.

Provides async Redis connection for:
- Celery broker/backend
- Shared LLM rate limiting across worker processes
"""

import logging
import time
from typing import Optional

from redis.asyncio import ConnectionPool, Redis

logger = logging.getLogger(__name__)


async def create_redis(redis_url: str) -> Redis:
    """
    Create a Redis client backed by its own connection pool and ping it.

    Raises:
        redis.exceptions.ConnectionError: If Redis is unreachable
    """
    logger.info("Initializing Redis connection pool")

    pool = ConnectionPool.from_url(
        redis_url,
        decode_responses=True,
        max_connections=20,
        socket_connect_timeout=5,
        socket_keepalive=True,
    )
    client = Redis(connection_pool=pool)

    try:
        await client.ping()
        logger.info("Redis connection successful")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        await client.aclose()
        raise

    return client


async def check_redis_health(client: Optional[Redis]) -> bool:
    """Return True if Redis answers a ping."""
    if client is None:
        return False
    try:
        return await client.ping() is True
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return False


# ========================================
# Rate Limiting Helper
# ========================================

class RedisRateLimiter:
    """
    Sliding window counter stored in a Redis sorted set.

    One member per admitted request, scored by its timestamp.
    """

    def __init__(self, redis: Redis, prefix: str = "rate_limit"):
        self.redis = redis
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def is_allowed(
        self,
        key: str,
        max_requests: int,
        window_seconds: int
    ) -> tuple[bool, int]:
        """
        Check if request is allowed under rate limit, recording it if so.

        Returns:
            (is_allowed, current_count)
        """
        now = time.time()
        window_start = now - window_seconds
        rate_key = self._key(key)

        await self.redis.zremrangebyscore(rate_key, 0, window_start)
        current_count = await self.redis.zcard(rate_key)

        if current_count < max_requests:
            await self.redis.zadd(rate_key, {f"{now:.6f}": now})
            await self.redis.expire(rate_key, window_seconds)
            return (True, current_count + 1)
        return (False, current_count)

    async def seconds_until_free(self, key: str, window_seconds: int) -> float:
        """Seconds until the oldest admitted request leaves the window."""
        oldest = await self.redis.zrange(self._key(key), 0, 0, withscores=True)
        if not oldest:
            return 0.0
        _, score = oldest[0]
        return max(0.0, score + window_seconds - time.time())
