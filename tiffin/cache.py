"""Shared Redis client for short-TTL read caching.

The cache is strictly optional: with no REDIS_URL configured, or with Redis
unreachable, reads fall through to the database and writes are dropped.
"""

import logging

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from tiffin.config import get_settings

logger = logging.getLogger(__name__)

_client: AsyncRedis | None = None


def subscription_status_key(kitchen_id: int) -> str:
    return f"subscription:status:{kitchen_id}"


def plans_key(region: str) -> str:
    return f"plans:{region}"


def get_redis() -> AsyncRedis | None:
    """Return the shared Redis client, creating it lazily. None if Redis is not configured."""
    global _client
    if _client is None:
        settings = get_settings()
        if not settings.redis_url:
            return None
        _client = AsyncRedis.from_url(settings.redis_url, decode_responses=True)
    return _client


async def close_cache() -> None:
    """Close the shared client. Call during app shutdown."""
    global _client
    if _client:
        await _client.aclose()
        _client = None


async def get_cached(key: str) -> str | None:
    redis = get_redis()
    if redis is None:
        return None
    try:
        return await redis.get(key)
    except RedisError as e:
        logger.debug("Cache read failed for %s: %s", key, e)
        return None


async def set_cached(key: str, value: str, ttl_seconds: int) -> None:
    redis = get_redis()
    if redis is None:
        return
    try:
        await redis.setex(key, ttl_seconds, value)
    except RedisError as e:
        logger.debug("Cache write failed for %s: %s", key, e)


async def invalidate(*keys: str) -> None:
    """Delete cache entries. Staleness is bounded by the TTL if this fails."""
    redis = get_redis()
    if redis is None or not keys:
        return
    try:
        await redis.delete(*keys)
    except RedisError as e:
        logger.warning("Cache invalidation failed for %s: %s", ", ".join(keys), e)
