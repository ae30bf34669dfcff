"""Record sources the analytics service reads from and writes through."""

from .base import RecordSource
from .factory import build_record_source
from .memory import InMemoryRecordSource
from .postgres_source import PostgresRecordSource

__all__ = [
    "build_record_source",
    "InMemoryRecordSource",
    "PostgresRecordSource",
    "RecordSource",
]
