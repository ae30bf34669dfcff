"""Shared entry type and protocol for cache storage backends."""

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol


@dataclass
class CacheEntry:
    """A computed value with the clock reading it was stored at."""
    key: str
    value: Any
    created_at: float
    ttl_seconds: float

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_stale(self, now: float) -> bool:
        """Stale once `ttl_seconds` have elapsed, boundary included."""
        return now - self.created_at >= self.ttl_seconds


class CacheStore(Protocol):
    """Protocol for cache storage backends. Staleness is judged by the caller."""
    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry for `key`, stale or not, or None."""

    def set(self, entry: CacheEntry) -> None:
        """Store or overwrite the entry under `entry.key`."""

    def delete(self, key: str) -> bool:
        """Remove `key`; return True if something was removed."""

    def keys(self) -> List[str]:
        """Return every stored key."""

    def entries(self) -> List[CacheEntry]:
        """Return every stored entry."""

    def clear(self) -> int:
        """Remove everything and return how many entries were dropped."""
