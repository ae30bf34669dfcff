"""Build the cache layer from settings, preferring Redis when it is reachable."""

from __future__ import annotations

import time

import redis

from plantwatch import config
from plantwatch.cache.base import CacheStore
from plantwatch.cache.layer import CacheLayer
from plantwatch.cache.memory import InMemoryCacheStore
from plantwatch.cache.redis import RedisCacheStore
from utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__)


def build_cache_store(settings: config.Settings | None = None) -> CacheStore:
    """Initialize the backing cache store based on configuration."""
    settings = settings or config.settings
    url = settings.cache_redis_url
    logger.debug("Initializing cache store: redis_url='%s'", mask_db_url(url) if url else "None")
    if url:
        try:
            client = redis.Redis.from_url(url)
            client.ping()
            logger.info("Using RedisCacheStore", extra={"redis_url": mask_db_url(url)})
            return RedisCacheStore(client, prefix=settings.cache_key_prefix)
        except Exception as exc:  # pragma: no cover - defensive
            logger.warning("Falling back to InMemoryCacheStore (Redis unavailable)", extra={"error": str(exc)})
    return InMemoryCacheStore()


def build_cache_layer(
    settings: config.Settings | None = None,
    *,
    store: CacheStore | None = None,
    start_sweeper: bool = True,
) -> CacheLayer:
    """
    Build a CacheLayer over the configured store.

    Redis entries outlive the process, so they are stamped with wall-clock
    time; the in-memory store keeps the monotonic clock.
    """
    settings = settings or config.settings
    store = store if store is not None else build_cache_store(settings)
    clock = time.time if isinstance(store, RedisCacheStore) else time.monotonic
    return CacheLayer(
        store,
        clock=clock,
        sweep_interval_seconds=settings.sweep_interval_seconds,
        max_entries=settings.cache_max_entries,
        start_sweeper=start_sweeper,
    )
