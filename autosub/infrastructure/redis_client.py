"""
Redis connection pool shared by the fallback store and the
reconciliation lock.  Responses are decoded to ``str`` so stored
records come back as JSON text.
"""

import redis.asyncio as aioredis

from autosub.config import settings

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


async def get_redis() -> aioredis.Redis:
    return aioredis.Redis(connection_pool=_pool)


async def close_redis() -> None:
    await _pool.disconnect()
