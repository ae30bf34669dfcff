"""Application configuration pulled from environment variables via pydantic."""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__)


class Settings(BaseSettings):
    """Environment-driven configuration for the PlantWatch analytics service."""
    model_config = SettingsConfigDict(env_prefix="PLANTWATCH_", extra="ignore")

    record_source: str = "memory"  # options: memory, postgres
    database_url: str | None = None
    cache_redis_url: str | None = None
    cache_key_prefix: str = "plantwatch:cache:"
    cache_max_entries: int = 100
    dashboard_ttl_seconds: float = 240.0
    realtime_ttl_seconds: float = 30.0
    statistics_ttl_seconds: float = 600.0
    sweep_interval_seconds: float = 60.0
    metrics_period_days: int = 30
    score_window_days: int = 30
    trend_periods: int | None = None
    log_level: str = "INFO"
    cache_log_level: str = "INFO"  # DEBUG traces every cache hit, miss and eviction

    @field_validator(
        "dashboard_ttl_seconds",
        "realtime_ttl_seconds",
        "statistics_ttl_seconds",
        "cache_max_entries",
        "sweep_interval_seconds",
        "metrics_period_days",
        "score_window_days",
        mode="after",
    )
    @classmethod
    def must_be_positive(cls, v):
        """TTLs, intervals and windows must be strictly positive."""
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("trend_periods", mode="after")
    @classmethod
    def periods_at_least_one(cls, v):
        """None keeps the per-granularity default; an explicit count needs one bucket or more."""
        if v is not None and v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("record_source", mode="after")
    @classmethod
    def normalize_source(cls, v: str) -> str:
        """Compare source names case-insensitively."""
        return v.strip().lower()


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4)}")
