"""TTL cache with single-flight recomputation and table-driven invalidation."""

import re
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from typing import Callable, Dict, List, Optional, Set, TypeVar

from pydantic import BaseModel, Field

from plantwatch.cache.base import CacheEntry, CacheStore
from plantwatch.cache.invalidation import RELATED_PATTERNS, Domain, parse_domain
from plantwatch.cache.memory import InMemoryCacheStore
from plantwatch.errors import ComputationFailed, InvalidArgument
from utils.logging_utils import get_tagged_logger, log_timing

logger = get_tagged_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ENTRIES = 100


class CacheEntryInfo(BaseModel):
    key: str
    age_seconds: float
    ttl_seconds: float
    stale: bool


class CacheStats(BaseModel):
    """Point-in-time view of the cache counters and stored entries."""
    size: int = 0
    max_size: int | None = None
    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    computations: int = 0
    failures: int = 0
    evictions: int = 0
    in_flight: int = 0
    entries: List[CacheEntryInfo] = Field(default_factory=list)


class CacheLayer:
    """
    Process-wide cache of computed views.

    `get_or_compute` serves a fresh entry when there is one. Otherwise the
    first caller for a key runs `compute` (outside the lock) while later
    callers for the same key wait on the same Future, so each staleness
    event costs one computation no matter how many requests arrive.

    At most `max_entries` keys are kept; storing a new key into a full cache
    evicts the least recently used one (None disables the cap). A daemon
    thread removes stale entries every `sweep_interval_seconds` until
    `close()` is called.
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float = 60.0,
        max_entries: Optional[int] = DEFAULT_MAX_ENTRIES,
        start_sweeper: bool = True,
    ) -> None:
        if sweep_interval_seconds <= 0:
            raise InvalidArgument("sweep_interval_seconds must be greater than zero")
        if max_entries is not None and max_entries < 1:
            raise InvalidArgument("max_entries must be at least 1")
        self._store: CacheStore = store if store is not None else InMemoryCacheStore()
        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._max_entries = max_entries
        # keys this process has stored or served, least recently used first
        self._recency: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}
        # in-flight keys invalidated mid-computation; their result is not stored
        self._discarded: Set[str] = set()
        self._hits = 0
        self._misses = 0
        self._coalesced = 0
        self._computations = 0
        self._failures = 0
        self._evictions = 0
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        if start_sweeper:
            self.start_sweeper()

    # -- lifecycle ---------------------------------------------------------

    def start_sweeper(self) -> None:
        """Start the background expiry thread if it is not already running."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="cache-sweeper", daemon=True)
        self._sweeper.start()
        logger.debug("Cache sweeper started (interval=%.1fs)", self._sweep_interval)

    def close(self) -> None:
        """Stop the sweeper and wait for it to exit. Stored entries are kept."""
        self._stop.set()
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None:
            sweeper.join(timeout=max(1.0, self._sweep_interval))
            logger.debug("Cache sweeper stopped")

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def __enter__(self) -> "CacheLayer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self._sweep_interval):
            try:
                self.sweep_expired()
            except Exception as exc:  # pragma: no cover - defensive
                logger.error("Cache sweep failed: %s", exc)

    # -- reads -------------------------------------------------------------

    @staticmethod
    def _validate_key(key: str) -> None:
        if not isinstance(key, str) or not key:
            raise InvalidArgument("Cache key must be a non-empty string")

    def get_or_compute(self, key: str, compute: Callable[[], T], ttl_seconds: float) -> T:
        """
        Return the fresh value for `key`, computing it at most once per miss.

        Raises InvalidArgument for an empty key or non-positive TTL, and
        ComputationFailed (to the computing caller and all its waiters) when
        `compute` raises. A failure writes nothing, so the next call retries.
        """
        self._validate_key(key)
        if ttl_seconds is None or ttl_seconds <= 0:
            raise InvalidArgument("ttl_seconds must be greater than zero")

        with self._lock:
            entry = self._store.get(key)
            if entry is not None:
                if not entry.is_stale(self._clock()):
                    self._hits += 1
                    self._recency[key] = None
                    self._recency.move_to_end(key)
                    logger.debug("Cache hit: %s", key)
                    return entry.value
                self._drop(key)
            future = self._in_flight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._in_flight[key] = future
                self._discarded.discard(key)
                self._misses += 1
            else:
                self._coalesced += 1

        if not leader:
            logger.debug("Waiting on in-flight computation: %s", key)
            return future.result()
        return self._compute(key, compute, ttl_seconds, future)

    def _compute(self, key: str, compute: Callable[[], T], ttl_seconds: float, future: Future) -> T:
        logger.debug("Cache miss, computing: %s", key)
        try:
            with log_timing(logger, f"compute '{key}'"):
                value = compute()
        except Exception as exc:
            error = ComputationFailed(key, exc)
            error.__cause__ = exc
            with self._lock:
                self._failures += 1
                self._in_flight.pop(key, None)
                self._discarded.discard(key)
            logger.warning("Computation failed for %s: %s", key, exc)
            future.set_exception(error)
            raise error from exc
        except BaseException as exc:
            # interpreter shutdown or interrupt: release waiters, do not wrap
            with self._lock:
                self._failures += 1
                self._in_flight.pop(key, None)
                self._discarded.discard(key)
            future.set_exception(exc)
            raise

        with self._lock:
            if key in self._discarded:
                self._discarded.discard(key)
                logger.debug("Result for %s invalidated while computing; not stored", key)
            else:
                self._make_room(key)
                self._store.set(CacheEntry(key=key, value=value, created_at=self._clock(), ttl_seconds=ttl_seconds))
                self._recency[key] = None
                self._recency.move_to_end(key)
            self._computations += 1
            self._in_flight.pop(key, None)
        future.set_result(value)
        return value

    def _drop(self, key: str) -> bool:
        """Delete one key from the store; the caller holds the lock."""
        self._recency.pop(key, None)
        return self._store.delete(key)

    def _make_room(self, key: str) -> None:
        """Evict least recently used keys so storing `key` stays within max_entries."""
        if self._max_entries is None:
            return
        keys = self._store.keys()
        if key in keys or len(keys) < self._max_entries:
            return
        present = set(keys)
        # keys written by another process have never been used here, so they go first
        victims = [k for k in keys if k not in self._recency]
        victims += [k for k in self._recency if k in present]
        for victim in victims[: len(keys) - self._max_entries + 1]:
            if self._drop(victim):
                self._evictions += 1
                logger.debug("Evicted least recently used cache key: %s", victim)

    def contains(self, key: str) -> bool:
        """True if a fresh entry is stored for `key`. Does not touch counters."""
        entry = self._store.get(key)
        return entry is not None and not entry.is_stale(self._clock())

    # -- invalidation ------------------------------------------------------

    def invalidate(self, key: str) -> bool:
        """Remove the entry for `key`; absent keys are a no-op. Returns True if one was removed."""
        self._validate_key(key)
        with self._lock:
            removed = self._drop(key)
            if key in self._in_flight:
                self._discarded.add(key)
        if removed:
            logger.debug("Invalidated cache key: %s", key)
        return removed

    def invalidate_pattern(self, pattern: str) -> int:
        """Remove every key the regex matches in full; returns the number removed."""
        if not isinstance(pattern, str) or not pattern:
            raise InvalidArgument("Invalidation pattern must be a non-empty string")
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            raise InvalidArgument(f"Invalid invalidation pattern '{pattern}': {exc}") from exc

        removed = 0
        with self._lock:
            for key in self._store.keys():
                if regex.fullmatch(key) and self._drop(key):
                    removed += 1
            for key in self._in_flight:
                if regex.fullmatch(key):
                    self._discarded.add(key)
        logger.debug("Pattern '%s' invalidated %d cache entries", pattern, removed)
        return removed

    def invalidate_related(self, domain: Domain | str) -> int:
        """Invalidate every view that depends on `domain`; returns the number removed."""
        resolved = parse_domain(domain)
        removed = sum(self.invalidate_pattern(p) for p in RELATED_PATTERNS[resolved])
        logger.info("Domain '%s' changed; invalidated %d cache entries", resolved.value, removed)
        return removed

    def sweep_expired(self) -> int:
        """Remove stale entries now; returns the number removed."""
        removed = 0
        with self._lock:
            now = self._clock()
            for entry in self._store.entries():
                if entry.is_stale(now) and self._drop(entry.key):
                    removed += 1
        if removed:
            logger.debug("Swept %d expired cache entries", removed)
        return removed

    def clear(self) -> int:
        """Drop every entry; returns the number removed."""
        with self._lock:
            removed = self._store.clear()
            self._recency.clear()
            self._discarded.update(self._in_flight)
        logger.info("Cache cleared (%d entries)", removed)
        return removed

    # -- introspection -----------------------------------------------------

    def get_stats(self) -> CacheStats:
        with self._lock:
            now = self._clock()
            entries = sorted(self._store.entries(), key=lambda e: e.key)
            return CacheStats(
                size=len(entries),
                max_size=self._max_entries,
                hits=self._hits,
                misses=self._misses,
                coalesced=self._coalesced,
                computations=self._computations,
                failures=self._failures,
                evictions=self._evictions,
                in_flight=len(self._in_flight),
                entries=[
                    CacheEntryInfo(
                        key=e.key,
                        age_seconds=round(e.age(now), 3),
                        ttl_seconds=e.ttl_seconds,
                        stale=e.is_stale(now),
                    )
                    for e in entries
                ],
            )
