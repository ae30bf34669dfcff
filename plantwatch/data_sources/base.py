"""Interface for the backend that holds raw maintenance records."""

from __future__ import annotations

from typing import Protocol

from plantwatch.domain import (
    BreakdownReport,
    Equipment,
    EquipmentStatusRecord,
    MaintenanceSchedule,
    RawRecordSet,
    RepairReport,
)


class RecordSource(Protocol):
    """Anything that can return a snapshot of records and accept new ones.

    Reads are not retried here; a failure propagates to the cache layer,
    which reports it as a failed computation.
    """

    def fetch_records(self) -> RawRecordSet:
        """Return every record family in one snapshot."""
        ...

    def add_equipment(self, equipment: Equipment) -> Equipment:
        ...

    def add_status(self, status: EquipmentStatusRecord) -> EquipmentStatusRecord:
        ...

    def add_breakdown(self, breakdown: BreakdownReport) -> BreakdownReport:
        ...

    def add_repair(self, repair: RepairReport) -> RepairReport:
        ...

    def add_maintenance(self, schedule: MaintenanceSchedule) -> MaintenanceSchedule:
        ...
