"""TTL cache for computed analytics views."""

from .base import CacheEntry, CacheStore
from .factory import build_cache_layer, build_cache_store
from .invalidation import RELATED_PATTERNS, Domain, parse_domain
from .layer import CacheEntryInfo, CacheLayer, CacheStats
from .memory import InMemoryCacheStore
from .redis import RedisCacheStore

__all__ = [
    "build_cache_layer",
    "build_cache_store",
    "CacheEntry",
    "CacheEntryInfo",
    "CacheLayer",
    "CacheStats",
    "CacheStore",
    "Domain",
    "InMemoryCacheStore",
    "parse_domain",
    "RedisCacheStore",
    "RELATED_PATTERNS",
]
