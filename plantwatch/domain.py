"""Domain vocabulary and schemas for maintenance records and derived metrics.

Raw records mirror the rows the backend returns for equipment, status
changes, breakdown reports, repair reports and maintenance schedules. The
derived models are what the metrics engine produces and what the cache
stores. No calculation logic lives here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class _StrictBaseModel(BaseModel):
    """Base model with strict extra handling."""

    model_config = ConfigDict(extra="forbid")


class _RecordModel(BaseModel):
    """Base for backend rows; unknown columns are dropped."""

    model_config = ConfigDict(extra="ignore")


class EquipmentState(str, Enum):
    """Operating state of a piece of equipment."""
    RUNNING = "running"
    BREAKDOWN = "breakdown"
    STANDBY = "standby"
    MAINTENANCE = "maintenance"
    STOPPED = "stopped"


class BreakdownPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class BreakdownStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class RepairStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MaintenanceStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class MaintenanceType(str, Enum):
    PREVENTIVE = "preventive"
    CORRECTIVE = "corrective"
    PREDICTIVE = "predictive"


class Granularity(str, Enum):
    """Bucket size for trend series."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class StatisticsCategory(str, Enum):
    """Sections of the statistics view."""
    PERFORMANCE = "performance"
    MAINTENANCE = "maintenance"
    COMPREHENSIVE = "comprehensive"


class StatisticsPeriod(str, Enum):
    """Trend bucket sizes offered by the statistics view."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Grade(str, Enum):
    """Letter grade bands for equipment health scores."""
    A_PLUS = "A+"
    A = "A"
    B_PLUS = "B+"
    B = "B"
    C_PLUS = "C+"
    C = "C"
    D = "D"
    F = "F"


# ---------------------------------------------------------------------------
# Raw records
# ---------------------------------------------------------------------------

class Equipment(_RecordModel):
    """A managed machine."""
    id: str
    equipment_number: str | None = None
    equipment_name: str | None = None
    category: str | None = None
    location: str | None = None


class EquipmentStatusRecord(_RecordModel):
    """A status change for one piece of equipment."""
    id: str
    equipment_id: str
    status: EquipmentState
    status_changed_at: datetime | None = None
    updated_at: datetime | None = None


class BreakdownReport(_RecordModel):
    """A reported failure."""
    id: str
    equipment_id: str
    occurred_at: datetime | None = None
    resolved_at: datetime | None = None
    priority: BreakdownPriority = BreakdownPriority.MEDIUM
    status: BreakdownStatus = BreakdownStatus.PENDING
    created_at: datetime | None = None


class RepairReport(_RecordModel):
    """Repair work, optionally tied to the breakdown it resolves."""
    id: str
    equipment_id: str
    breakdown_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    status: RepairStatus = RepairStatus.SCHEDULED
    created_at: datetime | None = None


class MaintenanceSchedule(_RecordModel):
    """A planned maintenance task."""
    id: str
    equipment_id: str
    scheduled_date: datetime | None = None
    completed_date: datetime | None = None
    status: MaintenanceStatus = MaintenanceStatus.SCHEDULED
    type: MaintenanceType = MaintenanceType.PREVENTIVE


class RawRecordSet(_StrictBaseModel):
    """Snapshot of every record family, as fetched from one backend call."""
    equipment: List[Equipment] = Field(default_factory=list)
    statuses: List[EquipmentStatusRecord] = Field(default_factory=list)
    breakdowns: List[BreakdownReport] = Field(default_factory=list)
    repairs: List[RepairReport] = Field(default_factory=list)
    maintenance: List[MaintenanceSchedule] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------

class BreakdownCounts(_StrictBaseModel):
    total: int = 0
    active: int = 0
    urgent: int = 0
    pending: int = 0


class RepairCounts(_StrictBaseModel):
    completed: int = 0
    in_progress: int = 0
    scheduled: int = 0


class EquipmentCounts(_StrictBaseModel):
    total: int = 0
    operational: int = 0
    maintenance: int = 0
    stopped: int = 0
    breakdown: int = 0


class DailyStats(_StrictBaseModel):
    """Counts over whatever record window the caller passed in."""
    breakdowns: BreakdownCounts = Field(default_factory=BreakdownCounts)
    repairs: RepairCounts = Field(default_factory=RepairCounts)
    equipment: EquipmentCounts = Field(default_factory=EquipmentCounts)


class TrendPoint(_StrictBaseModel):
    """Event counts for one [start, end) bucket."""
    period: str
    start: datetime
    end: datetime
    breakdowns: int = 0
    repairs: int = 0


class TrendSeries(_StrictBaseModel):
    granularity: Granularity
    points: List[TrendPoint] = Field(default_factory=list)


class EquipmentScore(_StrictBaseModel):
    """Health score with the components that produced it."""
    equipment_id: str
    score: float = Field(ge=0.0, le=100.0)
    grade: Grade
    status: EquipmentState | None = None
    recent_breakdowns: int = 0
    downtime_hours: float = 0.0
    average_repair_hours: float | None = None
    on_time_maintenance: int = 0
    overdue_maintenance: int = 0


class ReliabilityMetric(_StrictBaseModel):
    """Fleet-level MTBF or MTTR."""
    value: float | None = None
    unit: str = "h"
    change: float | None = None
    best_equipment_id: str | None = None
    best_equipment_number: str | None = None
    best_value: float | None = None
    insufficient_data: bool = True


class CompletionRateMetric(_StrictBaseModel):
    """Repair completion over the trailing period."""
    value: float | None = None
    unit: str = "%"
    change: float | None = None
    completed: int = 0
    planned: int = 0
    preventive_ratio: float | None = None
    insufficient_data: bool = True


class EquipmentReliability(_StrictBaseModel):
    """Per-equipment MTBF/MTTR, with explicit insufficient-data markers."""
    equipment_id: str
    equipment_number: str | None = None
    breakdown_count: int = 0
    repaired_count: int = 0
    mtbf_hours: float | None = None
    mttr_hours: float | None = None
    mtbf_insufficient_data: bool = True
    mttr_insufficient_data: bool = True


class FleetMetrics(_StrictBaseModel):
    """Reliability summary across all equipment."""
    mtbf: ReliabilityMetric = Field(default_factory=ReliabilityMetric)
    mttr: ReliabilityMetric = Field(default_factory=ReliabilityMetric)
    completion_rate: CompletionRateMetric = Field(default_factory=CompletionRateMetric)
    per_equipment: List[EquipmentReliability] = Field(default_factory=list)
    operation_rate: float = 0.0
    maintenance_completion_rate: float = 0.0
    total_equipment: int = 0
    active_equipment: int = 0
    total_breakdowns: int = 0
    total_repairs: int = 0
    quality_index: float = 100.0


class DashboardAnalytics(_StrictBaseModel):
    """Everything the dashboard renders, computed from one record snapshot."""
    generated_at: datetime
    daily_stats: DailyStats
    trend: TrendSeries
    fleet: FleetMetrics
    scores: Dict[str, EquipmentScore] = Field(default_factory=dict)
    status_distribution: Dict[str, int] = Field(default_factory=dict)
    category_breakdown: Dict[str, int] = Field(default_factory=dict)


class RealtimeSnapshot(_StrictBaseModel):
    """Short-lived view of what is happening on the floor right now."""
    generated_at: datetime
    daily_stats: DailyStats
    status_distribution: Dict[str, int] = Field(default_factory=dict)
    active_breakdowns: int = 0
    urgent_breakdowns: int = 0


# ---------------------------------------------------------------------------
# Statistics view
# ---------------------------------------------------------------------------

class EquipmentPerformance(_StrictBaseModel):
    equipment_id: str
    equipment_number: str | None = None
    equipment_name: str | None = None
    category: str | None = None
    location: str | None = None
    status: EquipmentState | None = None
    mtbf_hours: float | None = None
    reliability: float = 100.0
    breakdown_count: int = 0
    maintenance_count: int = 0
    last_breakdown: datetime | None = None
    last_maintenance: datetime | None = None


class CategoryPerformance(_StrictBaseModel):
    category: str
    equipment_count: int = 0
    operation_rate: float = 0.0
    breakdown_count: int = 0
    avg_mtbf_hours: float | None = None


class PerformanceAnalysis(_StrictBaseModel):
    """Fleet overview broken down per machine and per category."""
    overview: FleetMetrics
    equipment: List[EquipmentPerformance] = Field(default_factory=list)
    categories: List[CategoryPerformance] = Field(default_factory=list)
    trend: TrendSeries


class MaintenanceOverview(_StrictBaseModel):
    total: int = 0
    completed: int = 0
    overdue: int = 0
    completion_rate: float = 0.0


class MaintenanceTypeSummary(_StrictBaseModel):
    type: MaintenanceType
    total: int = 0
    completed: int = 0
    completion_rate: float = 0.0


class MaintenancePlanningPoint(_StrictBaseModel):
    """Maintenance scheduled versus completed for one month."""
    period: str
    start: datetime
    end: datetime
    planned: int = 0
    completed: int = 0
    completion_rate: float = 0.0


class EquipmentMaintenanceSummary(_StrictBaseModel):
    equipment_id: str
    equipment_number: str | None = None
    total: int = 0
    completed: int = 0
    overdue: int = 0
    completion_rate: float = 0.0


class MaintenanceAnalysis(_StrictBaseModel):
    overview: MaintenanceOverview
    by_type: List[MaintenanceTypeSummary] = Field(default_factory=list)
    planning: List[MaintenancePlanningPoint] = Field(default_factory=list)
    equipment: List[EquipmentMaintenanceSummary] = Field(default_factory=list)


class ComprehensiveReport(_StrictBaseModel):
    """Fleet overview with the best and worst scoring machines."""
    overview: FleetMetrics
    top_performers: List[EquipmentScore] = Field(default_factory=list)
    bottom_performers: List[EquipmentScore] = Field(default_factory=list)
    at_risk_equipment: int = 0
    maintenance_recommended: int = 0
    trend: TrendSeries


class StatisticsReport(_StrictBaseModel):
    category: StatisticsCategory
    period: StatisticsPeriod
    generated_at: datetime
    data: PerformanceAnalysis | MaintenanceAnalysis | ComprehensiveReport
