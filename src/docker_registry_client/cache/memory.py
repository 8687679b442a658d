"""
In-process manifest cache.

Entries live in a recency-ordered dict. Tag-keyed entries expire after the
configured TTL (checked on read); digest-pinned entries never expire. The
cache is unbounded by default. When bounded, expired entries go first, then
the least recently used tag entries; pinned entries are evicted only when
nothing else is left.
"""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional

from .base import CacheEntry

logger = logging.getLogger(__name__)

__all__ = ["MemoryCache"]


class MemoryCache:
    """
    Dict-backed cache for a single process.

    Operations never await, so each one is atomic with respect to other
    coroutines on the same event loop.
    """

    def __init__(self, ttl_s: float = 300.0, *, max_entries: int = 0,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the cache.

        Args:
            ttl_s: Lifetime of unpinned entries in seconds
            max_entries: Maximum number of entries (0 = unbounded)
            clock: Monotonic time source, injectable for tests
        """
        if ttl_s <= 0:
            raise ValueError(f"ttl_s must be positive, got {ttl_s}")
        if max_entries < 0:
            raise ValueError(f"max_entries must be non-negative, got {max_entries}")
        self.ttl_s = ttl_s
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            logger.debug(f"Cache entry expired: {key}")
            return None
        self._entries.move_to_end(key)
        return entry.value

    async def put(self, key: str, value: bytes, *, pinned: bool) -> None:
        expires_at = None if pinned else self._clock() + self.ttl_s
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            key=key, value=value, digest_pinned=pinned, expires_at=expires_at
        )
        self._evict(key)

    async def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def entry(self, key: str) -> Optional[CacheEntry]:
        """Stored entry for ``key`` regardless of expiry (for inspection)."""
        return self._entries.get(key)

    def __len__(self) -> int:
        return len(self._entries)

    def _evict(self, written: str) -> None:
        if not self.max_entries or len(self._entries) <= self.max_entries:
            return

        now = self._clock()
        for key in [key for key, entry in self._entries.items() if entry.expired(now)]:
            del self._entries[key]

        unpinned = [
            key for key, entry in self._entries.items()
            if not entry.digest_pinned and key != written
        ]
        for key in unpinned[:max(0, len(self._entries) - self.max_entries)]:
            del self._entries[key]
            logger.debug(f"Evicted cache entry: {key}")

        while len(self._entries) > self.max_entries:
            key, _ = self._entries.popitem(last=False)
            logger.warning(f"Evicted pinned cache entry: {key}")
