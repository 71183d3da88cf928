"""
Rate Limiting Module

Sliding-window rate limiting for mutating payment and distribution endpoints.
Uses the shared Redis client when it is available and falls back to
in-memory storage otherwise (per-process only).
"""

import logging
import time

from fastapi import HTTPException, status

from scholarship_aid.core import redis as redis_module

logger = logging.getLogger(__name__)

# In-memory fallback: {key: [timestamp, ...]}
_memory_store: dict[str, list[float]] = {}


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "success": False,
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "details": {"retry_after_seconds": window_seconds},
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _check_rate_limit_redis(client, key: str, limit: int, window_seconds: int) -> bool:
    """
    Check rate limit using a Redis sorted set as a sliding window.

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    now = time.time()
    window_start = now - window_seconds

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, window_start)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)

    results = await pipe.execute()
    current_count = results[1]

    return current_count < limit


def _check_rate_limit_memory(key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()
    window_start = now - window_seconds

    entries = [ts for ts in _memory_store.get(key, []) if ts > window_start]
    if len(entries) >= limit:
        _memory_store[key] = entries
        return False

    entries.append(now)
    _memory_store[key] = entries
    return True


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check if a request is within rate limits.

    Args:
        key: Unique key for this rate limit (e.g., "payments:bulk-process:<user id>")
        limit: Maximum requests allowed in the window
        window_seconds: Time window in seconds

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    client = redis_module.redis_client

    if client is not None:
        try:
            return await _check_rate_limit_redis(client, key, limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_rate_limit_memory(key, limit, window_seconds)


async def enforce_rate_limit(action: str, user_id, limit: int, window_seconds: int) -> None:
    """
    Enforce a per-user limit for an action.

    Raises:
        RateLimitExceeded: If the caller exceeded the limit
    """
    key = f"rate_limit:{action}:{user_id}"
    if not await check_rate_limit(key, limit, window_seconds):
        logger.warning(
            f"Rate limit exceeded for user {user_id} on '{action}': {limit}/{window_seconds}s"
        )
        raise RateLimitExceeded(limit, window_seconds)


__all__ = [
    "check_rate_limit",
    "enforce_rate_limit",
    "RateLimitExceeded",
]
