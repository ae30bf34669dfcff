import os

import uvicorn

from plantwatch.config import settings
from utils.logging_utils import get_tagged_logger, mask_db_url, setup_logging

logger = get_tagged_logger(__name__, tag="server")


def log_startup_config() -> None:
    """Log which backends the service will use, with credentials masked."""
    logger.info("Record source: %s", settings.record_source)
    if settings.database_url:
        logger.info("Database: %s", mask_db_url(settings.database_url))
    if settings.cache_redis_url:
        logger.info("Cache Redis: %s", mask_db_url(settings.cache_redis_url))
    logger.info(
        "Cache TTLs: dashboard=%.0fs realtime=%.0fs sweep=%.0fs",
        settings.dashboard_ttl_seconds,
        settings.realtime_ttl_seconds,
        settings.sweep_interval_seconds,
    )


if __name__ == "__main__":
    setup_logging(
        level=settings.log_level,
        job_name="plantwatch_api",
        logger_levels={"plantwatch.cache": settings.cache_log_level},
    )
    log_startup_config()

    uvicorn.run(
        "plantwatch.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )
