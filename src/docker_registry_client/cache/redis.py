"""
Shared manifest cache backed by redis.

Lets several client instances reuse each other's resolutions. Tag-keyed
entries are written with a server-side TTL (``SET ... PX``); digest-pinned
entries are written without one.
"""
from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..errors import CacheError
from ..settings import DEFAULT_REDIS_PREFIX

logger = logging.getLogger(__name__)

__all__ = ["RedisCache"]


class RedisCache:
    """Cache backend over a ``redis.asyncio`` client."""

    def __init__(self, client: aioredis.Redis, ttl_s: float = 300.0, *,
                 prefix: str = DEFAULT_REDIS_PREFIX, owns_client: bool = False):
        """
        Initialize the cache.

        Args:
            client: Connected redis.asyncio client
            ttl_s: Lifetime of unpinned entries in seconds
            prefix: Namespace prepended to every key
            owns_client: Close the client in ``aclose()``
        """
        if ttl_s <= 0:
            raise ValueError(f"ttl_s must be positive, got {ttl_s}")
        self.client = client
        self.ttl_s = ttl_s
        self.prefix = prefix
        self._owns_client = owns_client

    @classmethod
    def from_url(cls, url: str, ttl_s: float = 300.0, *,
                 prefix: str = DEFAULT_REDIS_PREFIX) -> RedisCache:
        """Create a cache with its own connection pool for ``url``."""
        return cls(aioredis.from_url(url), ttl_s, prefix=prefix, owns_client=True)

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> Optional[bytes]:
        try:
            value = await self.client.get(self._key(key))
        except RedisError as e:
            raise CacheError(f"Redis GET failed for {key}: {e}") from e
        if isinstance(value, str):
            # Client created with decode_responses=True
            return value.encode()
        return value

    async def put(self, key: str, value: bytes, *, pinned: bool) -> None:
        try:
            if pinned:
                await self.client.set(self._key(key), value)
            else:
                await self.client.set(self._key(key), value, px=int(self.ttl_s * 1000))
        except RedisError as e:
            raise CacheError(f"Redis SET failed for {key}: {e}") from e

    async def invalidate(self, key: str) -> None:
        try:
            await self.client.delete(self._key(key))
        except RedisError as e:
            raise CacheError(f"Redis DEL failed for {key}: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
