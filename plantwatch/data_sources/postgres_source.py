"""Postgres-backed record source.

Reads the `equipment_info`, `equipment_status`, `breakdown_reports`,
`repair_reports` and `maintenance_schedules` tables of the maintenance
database. Columns are aliased to the record field names in SQL; the
breakdown workflow's wider status and urgency vocabularies are folded into
the ones the metrics engine understands.
"""

from __future__ import annotations

from typing import Any, Callable, List, Mapping, TypeVar

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from plantwatch.data_sources.base import RecordSource
from plantwatch.domain import (
    BreakdownReport,
    Equipment,
    EquipmentStatusRecord,
    MaintenanceSchedule,
    RawRecordSet,
    RepairReport,
)
from utils.logging_utils import get_tagged_logger, log_timing

logger = get_tagged_logger(__name__, tag="postgres_record_source")

R = TypeVar("R")

DEFAULT_ROW_LIMIT = 1000

_BREAKDOWN_STATUS = {
    "reported": "pending",
    "assigned": "pending",
    "pending": "pending",
    "in_progress": "in_progress",
    "resolved": "resolved",
    "completed": "resolved",
    "rejected": "resolved",
    "cancelled": "resolved",
}
_BREAKDOWN_PRIORITY = {"critical": "urgent"}


class PostgresRecordSource(RecordSource):
    """Fetch and write maintenance records through a SQLAlchemy engine."""

    def __init__(self, engine: Engine, *, row_limit: int = DEFAULT_ROW_LIMIT) -> None:
        """Bind to a database engine; each table read is capped at `row_limit` rows."""
        self.engine = engine
        self.row_limit = row_limit

    @classmethod
    def from_url(cls, database_url: str, **kwargs) -> "PostgresRecordSource":
        """Create an engine from a URL and build the record source."""
        engine = create_engine(database_url, future=True)
        return cls(engine, **kwargs)

    # -- reads -------------------------------------------------------------

    _QUERIES = {
        "equipment": """
            SELECT id::text AS id, equipment_number, equipment_name, category, location
            FROM equipment_info
            ORDER BY equipment_number
            LIMIT :limit
        """,
        "statuses": """
            SELECT id::text AS id, equipment_id::text AS equipment_id, status,
                   status_changed_at, updated_at
            FROM equipment_status
            ORDER BY status_changed_at DESC
            LIMIT :limit
        """,
        "breakdowns": """
            SELECT id::text AS id, equipment_id::text AS equipment_id,
                   COALESCE(occurred_at, created_at) AS occurred_at,
                   resolution_date AS resolved_at,
                   urgency_level AS priority, status, created_at
            FROM breakdown_reports
            ORDER BY created_at DESC
            LIMIT :limit
        """,
        "repairs": """
            SELECT id::text AS id, equipment_id::text AS equipment_id,
                   breakdown_report_id::text AS breakdown_id,
                   repair_started_at AS started_at, repair_completed_at AS completed_at,
                   CASE WHEN repair_completed_at IS NOT NULL THEN 'completed'
                        ELSE COALESCE(status, 'in_progress') END AS status,
                   created_at
            FROM repair_reports
            ORDER BY created_at DESC
            LIMIT :limit
        """,
        "maintenance": """
            SELECT id::text AS id, equipment_id::text AS equipment_id,
                   scheduled_date, completed_date, status, type
            FROM maintenance_schedules
            ORDER BY scheduled_date DESC
            LIMIT :limit
        """,
    }

    def _fetch(self, conn, name: str) -> List[Mapping[str, Any]]:
        rows = conn.execute(text(self._QUERIES[name]), {"limit": self.row_limit}).mappings().all()
        if len(rows) >= self.row_limit:
            logger.warning("Row limit reached for %s (%d rows); metrics may be partial", name, self.row_limit)
        return rows

    @staticmethod
    def _to_breakdown(row: Mapping[str, Any]) -> BreakdownReport:
        data = dict(row)
        status = str(data.get("status") or "pending").lower()
        data["status"] = _BREAKDOWN_STATUS.get(status, "pending")
        priority = str(data.get("priority") or "medium").lower()
        data["priority"] = _BREAKDOWN_PRIORITY.get(priority, priority)
        return BreakdownReport.model_validate(data)

    @staticmethod
    def _to_records(rows: List[Mapping[str, Any]], build: Callable[[Mapping[str, Any]], R]) -> List[R]:
        records: List[R] = []
        for row in rows:
            try:
                records.append(build(row))
            except ValueError as exc:
                logger.warning("Skipping malformed row %s: %s", row.get("id"), exc)
        return records

    def fetch_records(self) -> RawRecordSet:
        """Read all five tables in one connection."""
        with log_timing(logger, "postgres fetch_records"):
            with self.engine.connect() as conn:
                equipment = self._fetch(conn, "equipment")
                statuses = self._fetch(conn, "statuses")
                breakdowns = self._fetch(conn, "breakdowns")
                repairs = self._fetch(conn, "repairs")
                maintenance = self._fetch(conn, "maintenance")

        return RawRecordSet(
            equipment=self._to_records(equipment, Equipment.model_validate),
            statuses=self._to_records(statuses, EquipmentStatusRecord.model_validate),
            breakdowns=self._to_records(breakdowns, self._to_breakdown),
            repairs=self._to_records(repairs, RepairReport.model_validate),
            maintenance=self._to_records(maintenance, MaintenanceSchedule.model_validate),
        )

    # -- writes ------------------------------------------------------------

    def _insert(self, statement: str, params: Mapping[str, Any]) -> None:
        with self.engine.begin() as conn:
            conn.execute(text(statement), dict(params))

    def add_equipment(self, equipment: Equipment) -> Equipment:
        self._insert(
            """
            INSERT INTO equipment_info (id, equipment_number, equipment_name, category, location)
            VALUES (:id, :equipment_number, :equipment_name, :category, :location)
            """,
            equipment.model_dump(),
        )
        return equipment

    def add_status(self, status: EquipmentStatusRecord) -> EquipmentStatusRecord:
        self._insert(
            """
            INSERT INTO equipment_status (id, equipment_id, status, status_changed_at, updated_at)
            VALUES (:id, :equipment_id, :status, :status_changed_at, :updated_at)
            """,
            status.model_dump(mode="json"),
        )
        return status

    def add_breakdown(self, breakdown: BreakdownReport) -> BreakdownReport:
        self._insert(
            """
            INSERT INTO breakdown_reports
                (id, equipment_id, occurred_at, resolution_date, urgency_level, status, created_at)
            VALUES (:id, :equipment_id, :occurred_at, :resolved_at, :priority, :status, :created_at)
            """,
            breakdown.model_dump(mode="json"),
        )
        return breakdown

    def add_repair(self, repair: RepairReport) -> RepairReport:
        self._insert(
            """
            INSERT INTO repair_reports
                (id, equipment_id, breakdown_report_id, repair_started_at, repair_completed_at, status, created_at)
            VALUES (:id, :equipment_id, :breakdown_id, :started_at, :completed_at, :status, :created_at)
            """,
            repair.model_dump(mode="json"),
        )
        return repair

    def add_maintenance(self, schedule: MaintenanceSchedule) -> MaintenanceSchedule:
        self._insert(
            """
            INSERT INTO maintenance_schedules (id, equipment_id, scheduled_date, completed_date, status, type)
            VALUES (:id, :equipment_id, :scheduled_date, :completed_date, :status, :type)
            """,
            schedule.model_dump(mode="json"),
        )
        return schedule
