"""In-memory cache store, the default backend for a single process."""

import threading
from typing import Optional

from plantwatch.cache.base import CacheEntry, CacheStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache/in_memory_cache_store")


class InMemoryCacheStore(CacheStore):
    """Thread-safe dict of cache entries."""

    def __init__(self) -> None:
        logger.debug("Initializing InMemoryCacheStore")
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def set(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[entry.key] = entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def entries(self) -> list[CacheEntry]:
        with self._lock:
            return list(self._entries.values())

    def clear(self) -> int:
        """Drop all entries."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count
