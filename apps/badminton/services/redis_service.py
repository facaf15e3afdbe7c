"""
Redis service providing a shared Redis client singleton.

Redis is optional: it is only used when REDIS_URL is set, and callers fall
back to process-local state when get_redis_client() returns None.

Usage:
    from badminton.services.redis_service import get_redis_client

    async def my_function():
        redis = await get_redis_client()
        if redis:
            await redis.set("key", "value")
"""

import logging
import os
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

# Connection settings
SOCKET_CONNECT_TIMEOUT = 2
SOCKET_TIMEOUT = 5

# Global Redis client (singleton)
_redis_client: Optional[Redis] = None


def get_redis_url() -> Optional[str]:
    return os.getenv("REDIS_URL") or None


async def get_redis_client() -> Optional[Redis]:
    """
    Get or create the Redis client singleton.

    Returns:
        Redis client, or None if REDIS_URL is unset or the server is unreachable
    """
    global _redis_client

    url = get_redis_url()
    if not url:
        return None

    if _redis_client is not None:
        return _redis_client

    try:
        client = Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=SOCKET_CONNECT_TIMEOUT,
            socket_timeout=SOCKET_TIMEOUT,
        )
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"Failed to connect to Redis: {e}")
        return None

    _redis_client = client
    logger.info("Connected to Redis")
    return _redis_client


async def close_redis_connection() -> None:
    """
    Close the Redis connection. Called from the FastAPI lifespan on shutdown.
    """
    global _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("Closed Redis connection")
        except RedisError as e:
            logger.warning(f"Error closing Redis connection: {e}")
        finally:
            _redis_client = None


async def redis_set_if_absent(key: str, value: str, expiry_seconds: int) -> Optional[bool]:
    """
    SET key value NX EX expiry_seconds.

    Returns:
        True if the key was set, False if it already existed, None if Redis
        is unavailable
    """
    client = await get_redis_client()
    if client is None:
        return None
    try:
        return bool(await client.set(key, value, nx=True, ex=expiry_seconds))
    except RedisError as e:
        logger.warning(f"Redis SET NX error for key {key}: {e}")
        return None


async def redis_ttl(key: str) -> Optional[int]:
    """Remaining TTL in seconds, None if unknown or Redis is unavailable."""
    client = await get_redis_client()
    if client is None:
        return None
    try:
        ttl = await client.ttl(key)
    except RedisError as e:
        logger.warning(f"Redis TTL error for key {key}: {e}")
        return None
    return ttl if ttl and ttl > 0 else None


async def redis_delete(key: str) -> bool:
    client = await get_redis_client()
    if client is None:
        return False
    try:
        await client.delete(key)
        return True
    except RedisError as e:
        logger.warning(f"Redis DELETE error for key {key}: {e}")
        return False
