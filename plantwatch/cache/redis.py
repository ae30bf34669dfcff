"""Redis-backed cache store so several API workers can share computed views."""

import math
import pickle
from typing import Optional

from plantwatch.cache.base import CacheEntry, CacheStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache/redis_cache_store")


class RedisCacheStore(CacheStore):
    """
    Cache entries pickled under a key prefix.

    Entries are written with SETEX, so Redis drops them on its own shortly
    after they go stale; the cache layer still checks staleness itself using
    the entry's `created_at`. Read failures are logged and reported as
    misses. A failed write leaves the key absent.
    """

    def __init__(self, client, prefix: str = "plantwatch:cache:") -> None:
        """Initialize with a Redis client and a key prefix."""
        logger.debug("Initializing RedisCacheStore")
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _strip(self, raw_key) -> str:
        if isinstance(raw_key, bytes):
            raw_key = raw_key.decode("utf-8")
        return raw_key[len(self.prefix):]

    @staticmethod
    def _safe_load(raw: bytes) -> Optional[CacheEntry]:
        """Unpickle a stored entry, or None if the payload is unreadable."""
        try:
            entry = pickle.loads(raw)
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to deserialize cache entry: %s", exc)
            return None
        return entry if isinstance(entry, CacheEntry) else None

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = self.client.get(self._key(key))
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to read cache entry from Redis: %s", exc)
            return None
        if not raw:
            return None
        return self._safe_load(raw)

    def set(self, entry: CacheEntry) -> None:
        """Store an entry; Redis expiry is the TTL rounded up to whole seconds."""
        try:
            payload = pickle.dumps(entry)
        except Exception as exc:
            logger.error("Failed to serialize cache entry '%s': %s", entry.key, exc)
            return
        try:
            self.client.setex(self._key(entry.key), max(1, math.ceil(entry.ttl_seconds)), payload)
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to write cache entry to Redis: %s", exc)

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(self._key(key)))
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to delete cache entry from Redis: %s", exc)
            return False

    def keys(self) -> list[str]:
        try:
            return [self._strip(k) for k in self.client.scan_iter(f"{self.prefix}*")]
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to list cache keys from Redis: %s", exc)
            return []

    def entries(self) -> list[CacheEntry]:
        found = []
        for key in self.keys():
            entry = self.get(key)
            if entry is not None:
                found.append(entry)
        return found

    def clear(self) -> int:
        """Best-effort clear of every key under the configured prefix."""
        removed = 0
        for key in self.keys():
            if self.delete(key):
                removed += 1
        return removed
