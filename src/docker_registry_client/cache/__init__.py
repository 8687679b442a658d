"""Manifest cache backends."""
from .base import Cache, CacheEntry
from .factory import make_cache
from .inflight import InFlight
from .memory import MemoryCache
from .redis import RedisCache

__all__ = ["Cache", "CacheEntry", "InFlight", "MemoryCache", "RedisCache", "make_cache"]
