"""
Cache factory with backend switching.

Provides a single factory function that creates the cache backend named by
configuration, so call sites never depend on a concrete backend.
"""
from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis

from ..settings import Settings
from .base import Cache
from .memory import MemoryCache
from .redis import RedisCache


def make_cache(settings: Settings, *, redis_client: Optional[aioredis.Redis] = None) -> Cache:
    """
    Create a cache backend based on settings.

    Args:
        settings: Client configuration
        redis_client: Existing redis client to use instead of connecting to
            settings.redis_url

    Returns:
        Cache backend

    Settings:
        cache_backend: Backend to use
            - "memory" (default): MemoryCache, per process
            - "redis": RedisCache, shared across processes

    Raises:
        ValueError: If cache_backend names an unknown backend
    """
    if settings.cache_backend == "memory":
        return MemoryCache(settings.tag_ttl_s, max_entries=settings.memory_max_entries)
    elif settings.cache_backend == "redis":
        if redis_client is not None:
            return RedisCache(redis_client, settings.tag_ttl_s, prefix=settings.redis_prefix)
        return RedisCache.from_url(
            settings.redis_url, settings.tag_ttl_s, prefix=settings.redis_prefix
        )
    else:
        raise ValueError(
            f"Unknown cache_backend: {settings.cache_backend}. "
            f"Supported values: memory, redis"
        )


__all__ = ["make_cache"]
