"""
Cache interface for resolved manifests.

This protocol defines the boundary between the resolver and cache backends,
enabling clean dependency injection of an in-process or shared cache.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class CacheEntry:
    """
    One stored value.

    Invariants:
    - digest_pinned entries never expire (expires_at is None)
    - unpinned entries always carry a finite expires_at
    """
    key: str
    value: bytes
    digest_pinned: bool
    expires_at: Optional[float] = None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


__all__ = ["CacheEntry", "Cache"]


@runtime_checkable
class Cache(Protocol):
    """Protocol for manifest cache backends."""

    async def get(self, key: str) -> Optional[bytes]:
        """
        Look up a live entry.

        Args:
            key: Cache key (``registry|repository|selector``)

        Returns:
            Stored bytes, or None if absent or expired

        Raises:
            CacheError: If the backend cannot be reached
        """
        ...

    async def put(self, key: str, value: bytes, *, pinned: bool) -> None:
        """
        Store a value, replacing any previous entry for the key.

        Args:
            key: Cache key
            value: Bytes to store
            pinned: True for digest-addressed content (never expires);
                False applies the backend's TTL

        Raises:
            CacheError: If the backend cannot be reached
        """
        ...

    async def invalidate(self, key: str) -> None:
        """
        Remove an entry. Removing a missing key is not an error.

        Raises:
            CacheError: If the backend cannot be reached
        """
        ...
