"""Factory helpers for choosing a record source at startup."""

from __future__ import annotations

from plantwatch import config
from plantwatch.data_sources.base import RecordSource
from plantwatch.data_sources.memory import InMemoryRecordSource
from utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__)


DEFAULT_SOURCE_NAME = "memory"


def build_record_source(settings: config.Settings | None = None) -> RecordSource:
    """Instantiate the configured record source."""
    settings = settings or config.settings
    source = (settings.record_source or DEFAULT_SOURCE_NAME).lower()

    if source == "memory":
        logger.info("Using in-memory record source")
        return InMemoryRecordSource()

    if source == "postgres":
        from .postgres_source import PostgresRecordSource

        db_url = settings.database_url
        if not db_url:
            raise ValueError("database_url must be set for Postgres record source")
        logger.info("Using Postgres record source", extra={"db_url": mask_db_url(db_url)})
        return PostgresRecordSource.from_url(db_url)

    raise ValueError(f"Unknown record source '{source}'")
