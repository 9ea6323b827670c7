"""
Redis client utilities for wacore.

Provides lazy-initialized Redis client to avoid import-time connections.
"""

import functools

import redis

from wacore.settings import get_settings


@functools.lru_cache()
def get_redis_url() -> str:
    """Get Redis URL from settings."""
    return get_settings().REDIS_URL


@functools.lru_cache()
def get_redis_client() -> redis.Redis:
    """
    Get Redis client (cached).

    This function lazily initializes the Redis client to avoid import-time connections.
    """
    url = get_redis_url()
    return redis.from_url(url, decode_responses=True)
