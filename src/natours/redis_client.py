"""Redis connection — backs the per-IP rate limiter.

Learn: Redis is optional. If it can't be reached at startup the app
still serves requests and the rate limiter lets everything through
(get_redis() returns None).
"""

from typing import Optional

import redis.asyncio as aioredis

from natours.config import settings

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis(url: Optional[str] = None) -> aioredis.Redis:
    """Initialize the Redis connection pool and verify it answers."""
    global _redis
    client = aioredis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    _redis = client
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> Optional[aioredis.Redis]:
    """The shared connection, or None when Redis is not in use."""
    return _redis


def set_redis(client: Optional[aioredis.Redis]) -> None:
    """Swap the shared connection (tests plug in a fake here)."""
    global _redis
    _redis = client
