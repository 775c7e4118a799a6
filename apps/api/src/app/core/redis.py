"""
Redis Connection

The rate limiter keeps its sliding windows in Redis when a connection is
available. Without one, limits fall back to process memory, so Redis is
optional outside production.
"""

import logging

from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from app.core.config import settings

logger = logging.getLogger(__name__)

# Set by init_redis once the server answered a PING
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Connect to ``settings.redis_url``; raises if the server does not answer."""
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=settings.store_operation_timeout_seconds,
    )
    await client.ping()
    redis_client = client
    return redis_client


async def redis_status() -> str:
    """Live status for the readiness probe: connected, unreachable or disabled."""
    if redis_client is None:
        return "disabled"
    try:
        await redis_client.ping()
    except RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        return "unreachable"
    return "connected"


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
