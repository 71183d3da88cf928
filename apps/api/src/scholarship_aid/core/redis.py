"""
Redis Configuration

Shared async Redis client. Used by the rate limiter on payment action
endpoints; Redis is optional and the API keeps serving without it.
"""

import logging

from redis.asyncio import Redis, from_url

from scholarship_aid.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Initialize the Redis connection.

    Called from the application lifespan on startup.
    """
    global redis_client
    redis_client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await redis_client.ping()
    logger.info("Redis connection established")
    return redis_client


async def get_redis() -> Redis | None:
    """Return the shared client, or None when Redis is not initialized."""
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
