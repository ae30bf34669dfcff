"""In-memory record source for development, demos and tests."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Iterable

from plantwatch.data_sources.base import RecordSource
from plantwatch.domain import (
    BreakdownReport,
    Equipment,
    EquipmentStatusRecord,
    MaintenanceSchedule,
    RawRecordSet,
    RepairReport,
)
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/in_memory_record_source")


class InMemoryRecordSource(RecordSource):
    """Thread-safe lists of records; snapshots are copies."""

    def __init__(self, records: RawRecordSet | None = None) -> None:
        logger.debug("Initializing InMemoryRecordSource")
        records = records or RawRecordSet()
        self._lock = threading.Lock()
        self._equipment: list[Equipment] = list(records.equipment)
        self._statuses: list[EquipmentStatusRecord] = list(records.statuses)
        self._breakdowns: list[BreakdownReport] = list(records.breakdowns)
        self._repairs: list[RepairReport] = list(records.repairs)
        self._maintenance: list[MaintenanceSchedule] = list(records.maintenance)
        self.fetch_count = 0

    def fetch_records(self) -> RawRecordSet:
        with self._lock:
            self.fetch_count += 1
            return RawRecordSet(
                equipment=list(self._equipment),
                statuses=list(self._statuses),
                breakdowns=list(self._breakdowns),
                repairs=list(self._repairs),
                maintenance=list(self._maintenance),
                fetched_at=datetime.now(timezone.utc),
            )

    def has_equipment(self, equipment_id: str) -> bool:
        with self._lock:
            return any(e.id == equipment_id for e in self._equipment)

    @staticmethod
    def _ensure_unique(existing: Iterable, record) -> None:
        if any(item.id == record.id for item in existing):
            raise ValueError(f"Record '{record.id}' already exists")

    def add_equipment(self, equipment: Equipment) -> Equipment:
        with self._lock:
            self._ensure_unique(self._equipment, equipment)
            self._equipment.append(equipment)
        return equipment

    def add_status(self, status: EquipmentStatusRecord) -> EquipmentStatusRecord:
        with self._lock:
            self._ensure_unique(self._statuses, status)
            self._statuses.append(status)
        return status

    def add_breakdown(self, breakdown: BreakdownReport) -> BreakdownReport:
        with self._lock:
            self._ensure_unique(self._breakdowns, breakdown)
            self._breakdowns.append(breakdown)
        return breakdown

    def add_repair(self, repair: RepairReport) -> RepairReport:
        with self._lock:
            self._ensure_unique(self._repairs, repair)
            self._repairs.append(repair)
        return repair

    def add_maintenance(self, schedule: MaintenanceSchedule) -> MaintenanceSchedule:
        with self._lock:
            self._ensure_unique(self._maintenance, schedule)
            self._maintenance.append(schedule)
        return schedule
