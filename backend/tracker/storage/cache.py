"""Redis connection layer for the durable cache medium.

Holds one process-wide connection pool. Every operation degrades to a
no-op (logged at WARNING) when Redis is unreachable, so callers can fall
back to the in-process backend.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from tracker.config import get_settings

logger = logging.getLogger(__name__)

# Global connection pool
_pool: ConnectionPool | None = None
_client: redis.Redis | None = None


# =============================================================================
# Connection management
# =============================================================================

async def init_cache(url: str | None = None) -> bool:
    """Initialize Redis connection pool.

    Args:
        url: Redis URL (defaults to settings.redis_url)

    Returns:
        True if Redis answered PING
    """
    global _pool, _client

    if _client is not None:
        return True

    url = url or get_settings().redis_url
    _pool = ConnectionPool.from_url(
        url,
        max_connections=20,
        decode_responses=False,  # We handle encoding ourselves with orjson
    )
    _client = redis.Redis(connection_pool=_pool)

    try:
        await _client.ping()
        logger.info(f"Redis connected: {url}")
        return True
    except (redis.ConnectionError, OSError) as e:
        logger.warning(f"Redis connection failed: {e}. Falling back to memory cache.")
        await _client.aclose()
        await _pool.disconnect()
        _client = None
        _pool = None
        return False


async def close_cache() -> None:
    """Close Redis connection pool."""
    global _pool, _client

    if _client is not None:
        await _client.aclose()
        _client = None

    if _pool is not None:
        await _pool.disconnect()
        _pool = None

    logger.info("Redis connection closed")


def is_cache_available() -> bool:
    """Check if cache is available."""
    return _client is not None


# =============================================================================
# Basic operations
# =============================================================================

async def get(key: str) -> bytes | None:
    """Get a raw value, or None if missing or Redis is unavailable."""
    if _client is None:
        return None

    try:
        return await _client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis GET error: {e}")
        return None


async def set(key: str, value: bytes, ttl_ms: int | None = None) -> bool:
    """Set a raw value in one atomic SET.

    Args:
        key: Cache key
        value: Raw bytes to store
        ttl_ms: Time-to-live in milliseconds (None for no expiry)

    Returns:
        True if successful, False otherwise
    """
    if _client is None:
        return False

    try:
        await _client.set(key, value, px=ttl_ms if ttl_ms else None)
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis SET error: {e}")
        return False


async def delete(key: str) -> bool:
    """Delete a key. Returns True if the command ran."""
    if _client is None:
        return False

    try:
        await _client.delete(key)
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis DELETE error: {e}")
        return False


async def delete_pattern(pattern: str) -> int:
    """Delete all keys matching a pattern.

    Args:
        pattern: Key pattern (e.g., "tracker:*")

    Returns:
        Number of keys deleted
    """
    if _client is None:
        return 0

    try:
        keys = []
        async for key in _client.scan_iter(match=pattern):
            keys.append(key)

        if keys:
            return await _client.delete(*keys)
        return 0
    except redis.RedisError as e:
        logger.warning(f"Redis DELETE pattern error: {e}")
        return 0


async def ping() -> bool:
    """Check if Redis is responsive."""
    if _client is None:
        return False

    try:
        return await _client.ping()
    except redis.RedisError:
        return False
