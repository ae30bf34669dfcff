"""Deterministic maintenance metrics.

Turns raw record snapshots (equipment, status changes, breakdowns, repairs,
maintenance schedules) into daily counts, trend buckets, per-equipment health
scores and fleet reliability figures (MTBF, MTTR, completion rate).

Every function is pure: inputs are never mutated, there is no I/O, and any
notion of "now" is an explicit argument. Naive datetimes are read as UTC.
Empty or partial input yields zero counts and insufficient-data markers, never
an exception.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date, datetime, timedelta, timezone
from statistics import fmean
from typing import Iterable, Sequence

from plantwatch.domain import (
    BreakdownCounts,
    BreakdownPriority,
    BreakdownReport,
    BreakdownStatus,
    CategoryPerformance,
    CompletionRateMetric,
    ComprehensiveReport,
    DailyStats,
    DashboardAnalytics,
    Equipment,
    EquipmentCounts,
    EquipmentMaintenanceSummary,
    EquipmentPerformance,
    EquipmentReliability,
    EquipmentScore,
    EquipmentState,
    EquipmentStatusRecord,
    FleetMetrics,
    Grade,
    Granularity,
    MaintenanceAnalysis,
    MaintenanceOverview,
    MaintenancePlanningPoint,
    MaintenanceSchedule,
    MaintenanceStatus,
    MaintenanceType,
    MaintenanceTypeSummary,
    PerformanceAnalysis,
    RawRecordSet,
    RealtimeSnapshot,
    ReliabilityMetric,
    RepairCounts,
    RepairReport,
    RepairStatus,
    StatisticsCategory,
    StatisticsPeriod,
    StatisticsReport,
    TrendPoint,
    TrendSeries,
)
from plantwatch.errors import InvalidArgument

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

DEFAULT_TREND_PERIODS: dict[Granularity, int] = {
    Granularity.DAILY: 30,
    Granularity.WEEKLY: 12,
    Granularity.MONTHLY: 12,
    Granularity.YEARLY: 5,
}

# Health score weights. Each term is capped so no single factor dominates.
BASE_SCORE = 85.0
STATUS_ADJUSTMENTS: dict[EquipmentState, float] = {
    EquipmentState.RUNNING: 0.0,
    EquipmentState.STANDBY: -2.0,
    EquipmentState.MAINTENANCE: -5.0,
    EquipmentState.STOPPED: -10.0,
    EquipmentState.BREAKDOWN: -20.0,
}
BREAKDOWN_PENALTY = 8.0
MAX_BREAKDOWN_PENALTY = 40.0
DOWNTIME_PENALTY_PER_HOUR = 0.25
MAX_DOWNTIME_PENALTY = 20.0
ON_TIME_MAINTENANCE_BONUS = 3.0
MAX_MAINTENANCE_BONUS = 15.0
OVERDUE_MAINTENANCE_PENALTY = 2.0
MAX_OVERDUE_PENALTY = 10.0

# Quality index loses this many points per recent breakdown per machine.
QUALITY_PENALTY_PER_FAILURE = 10.0

# Statistics view thresholds.
RELIABILITY_FLOOR = 70.0
RELIABILITY_PENALTY_PER_BREAKDOWN = 5.0
AT_RISK_SCORE = 70.0
MAINTENANCE_RECOMMENDED_AFTER = 2
PERFORMER_COUNT = 5
PLANNING_MONTHS = 12

GRADE_BANDS: tuple[tuple[float, Grade], ...] = (
    (95.0, Grade.A_PLUS),
    (90.0, Grade.A),
    (85.0, Grade.B_PLUS),
    (80.0, Grade.B),
    (75.0, Grade.C_PLUS),
    (70.0, Grade.C),
    (60.0, Grade.D),
)


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------

def _as_utc(ts: datetime | None) -> datetime | None:
    """Normalize a timestamp to aware UTC; naive values are assumed UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600.0


def _round(value: float | None, digits: int = 2) -> float | None:
    return None if value is None else round(value, digits)


def _pct(part: int, whole: int) -> float | None:
    if whole <= 0:
        return None
    return round(part / whole * 100.0, 1)


def _in_window(ts: datetime | None, start: datetime, end: datetime) -> bool:
    """True if ts falls in [start, end)."""
    return ts is not None and start <= ts < end


def latest_status_by_equipment(
    statuses: Iterable[EquipmentStatusRecord],
) -> dict[str, EquipmentStatusRecord]:
    """Pick the most recent status record for each equipment id."""
    latest: dict[str, EquipmentStatusRecord] = {}

    def sort_key(s: EquipmentStatusRecord):
        changed = _as_utc(s.status_changed_at) or _as_utc(s.updated_at) or _EPOCH
        updated = _as_utc(s.updated_at) or _EPOCH
        return changed, updated, s.id

    for record in statuses:
        current = latest.get(record.equipment_id)
        if current is None or sort_key(record) > sort_key(current):
            latest[record.equipment_id] = record
    return latest


# ---------------------------------------------------------------------------
# Daily statistics
# ---------------------------------------------------------------------------

def calculate_daily_stats(
    breakdowns: Sequence[BreakdownReport],
    repairs: Sequence[RepairReport],
    equipment: Sequence[Equipment],
    statuses: Sequence[EquipmentStatusRecord],
) -> DailyStats:
    """Count breakdowns, repairs and equipment states in the given records.

    No date filtering happens here; use `filter_records_for_day` first when a
    single-day view is wanted.
    """
    breakdown_counts = BreakdownCounts(
        total=len(breakdowns),
        active=sum(1 for b in breakdowns if b.status != BreakdownStatus.RESOLVED),
        urgent=sum(1 for b in breakdowns if b.priority == BreakdownPriority.URGENT),
        pending=sum(1 for b in breakdowns if b.status == BreakdownStatus.PENDING),
    )
    repair_counts = RepairCounts(
        completed=sum(1 for r in repairs if r.status == RepairStatus.COMPLETED),
        in_progress=sum(1 for r in repairs if r.status == RepairStatus.IN_PROGRESS),
        scheduled=sum(1 for r in repairs if r.status == RepairStatus.SCHEDULED),
    )

    states = Counter(s.status for s in latest_status_by_equipment(statuses).values())
    equipment_counts = EquipmentCounts(
        total=len(equipment),
        operational=states.get(EquipmentState.RUNNING, 0),
        maintenance=states.get(EquipmentState.MAINTENANCE, 0),
        stopped=states.get(EquipmentState.STOPPED, 0),
        breakdown=states.get(EquipmentState.BREAKDOWN, 0),
    )
    return DailyStats(breakdowns=breakdown_counts, repairs=repair_counts, equipment=equipment_counts)


def filter_records_for_day(records: RawRecordSet, day: date) -> RawRecordSet:
    """Narrow a snapshot to one UTC day.

    Keeps breakdowns that occurred on `day`, repairs completed on `day` plus
    repairs still open (scheduled or in progress), and all equipment/status
    rows.
    """
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    open_repairs = {RepairStatus.SCHEDULED, RepairStatus.IN_PROGRESS}
    return records.model_copy(
        update={
            "breakdowns": [b for b in records.breakdowns if _in_window(_as_utc(b.occurred_at), start, end)],
            "repairs": [
                r for r in records.repairs
                if r.status in open_repairs or _in_window(_as_utc(r.completed_at), start, end)
            ],
        }
    )


# ---------------------------------------------------------------------------
# Trend buckets
# ---------------------------------------------------------------------------

def _bucket_start(ts: datetime, granularity: Granularity) -> datetime:
    """Start of the bucket containing ts (UTC)."""
    day = ts.replace(hour=0, minute=0, second=0, microsecond=0)
    if granularity == Granularity.DAILY:
        return day
    if granularity == Granularity.WEEKLY:
        return day - timedelta(days=day.weekday())
    if granularity == Granularity.MONTHLY:
        return day.replace(day=1)
    return day.replace(month=1, day=1)


def _shift_bucket(start: datetime, granularity: Granularity, steps: int) -> datetime:
    """Move a bucket start forward (or back, with negative steps)."""
    if granularity == Granularity.DAILY:
        return start + timedelta(days=steps)
    if granularity == Granularity.WEEKLY:
        return start + timedelta(weeks=steps)
    if granularity == Granularity.MONTHLY:
        month_index = start.year * 12 + (start.month - 1) + steps
        return start.replace(year=month_index // 12, month=month_index % 12 + 1)
    return start.replace(year=start.year + steps)


def _bucket_label(start: datetime, granularity: Granularity) -> str:
    if granularity == Granularity.DAILY:
        return start.strftime("%Y-%m-%d")
    if granularity == Granularity.WEEKLY:
        iso_year, iso_week, _ = start.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if granularity == Granularity.MONTHLY:
        return start.strftime("%Y-%m")
    return start.strftime("%Y")


def generate_trend_data(
    breakdowns: Sequence[BreakdownReport],
    repairs: Sequence[RepairReport],
    granularity: Granularity | str = Granularity.MONTHLY,
    *,
    now: datetime,
    periods: int | None = None,
    start: datetime | None = None,
) -> TrendSeries:
    """
    Bucket breakdowns (by occurred_at) and repairs (by completed_at) over time.

    The last bucket contains `now`. The first is the bucket containing
    `start` when given, otherwise `periods` buckets back (a per-granularity
    default when omitted). Every bucket is emitted in ascending order, empty
    ones with zero counts. Buckets are closed-open, so an event exactly on a
    boundary belongs to the bucket starting there.
    """
    granularity = Granularity(granularity)
    last = _bucket_start(_as_utc(now), granularity)

    if start is not None:
        first = min(_bucket_start(_as_utc(start), granularity), last)
    else:
        count = periods if periods is not None else DEFAULT_TREND_PERIODS[granularity]
        if count < 1:
            raise InvalidArgument("periods must be at least 1")
        first = _shift_bucket(last, granularity, -(count - 1))

    points: list[TrendPoint] = []
    index: dict[datetime, TrendPoint] = {}
    cursor = first
    while cursor <= last:
        nxt = _shift_bucket(cursor, granularity, 1)
        point = TrendPoint(period=_bucket_label(cursor, granularity), start=cursor, end=nxt)
        points.append(point)
        index[cursor] = point
        cursor = nxt

    for b in breakdowns:
        ts = _as_utc(b.occurred_at)
        if ts is None:
            continue
        point = index.get(_bucket_start(ts, granularity))
        if point is not None:
            point.breakdowns += 1

    for r in repairs:
        ts = _as_utc(r.completed_at)
        if ts is None:
            continue
        point = index.get(_bucket_start(ts, granularity))
        if point is not None:
            point.repairs += 1

    return TrendSeries(granularity=granularity, points=points)


# ---------------------------------------------------------------------------
# Equipment health score
# ---------------------------------------------------------------------------

def grade_for_score(score: float) -> Grade:
    """Map a 0-100 score to its letter band."""
    for threshold, grade in GRADE_BANDS:
        if score >= threshold:
            return grade
    return Grade.F


def _breakdown_downtime_hours(b: BreakdownReport, now: datetime) -> float | None:
    """Hours a breakdown kept the machine down; open ones count up to now."""
    occurred = _as_utc(b.occurred_at)
    if occurred is None:
        return None
    resolved = _as_utc(b.resolved_at)
    if resolved is None:
        if b.status == BreakdownStatus.RESOLVED:
            return None  # resolved without a timestamp: duration unknown
        resolved = now
    return max(0.0, _hours(resolved - occurred))


def _is_on_time(m: MaintenanceSchedule) -> bool:
    if m.status != MaintenanceStatus.COMPLETED:
        return False
    completed = _as_utc(m.completed_date)
    scheduled = _as_utc(m.scheduled_date)
    if completed is None or scheduled is None:
        return False
    return completed.date() <= scheduled.date()


def _is_overdue(m: MaintenanceSchedule, now: datetime) -> bool:
    if m.status == MaintenanceStatus.OVERDUE:
        return True
    if m.status == MaintenanceStatus.COMPLETED:
        return False
    scheduled = _as_utc(m.scheduled_date)
    return scheduled is not None and scheduled.date() < now.date()


def calculate_equipment_score(
    equipment: Equipment,
    status: EquipmentStatusRecord | None,
    equipment_breakdowns: Sequence[BreakdownReport],
    equipment_maintenance: Sequence[MaintenanceSchedule],
    *,
    now: datetime,
    window_days: int = 30,
    maintenance_window_days: int = 90,
) -> EquipmentScore:
    """
    Score one machine from 0 to 100 and grade it.

    score = 85
            + status adjustment (running 0 ... breakdown -20)
            - 8 per breakdown in the trailing window (max 40)
            - 0.25 per hour of downtime from those breakdowns (max 20)
            + 3 per maintenance task completed on or before its date (max 15)
            - 2 per overdue maintenance task (max 10)

    Downtime is the sum of repair durations, so longer repairs lower the
    score and an extra breakdown can never raise it.
    """
    now = _as_utc(now)
    window_start = now - timedelta(days=window_days)
    maintenance_start = now - timedelta(days=maintenance_window_days)

    recent = [
        b for b in equipment_breakdowns
        if b.equipment_id == equipment.id
        and (ts := _as_utc(b.occurred_at)) is not None
        and window_start < ts <= now
    ]
    durations = [d for b in recent if (d := _breakdown_downtime_hours(b, now)) is not None]
    downtime = sum(durations)
    repaired = [
        d for b in recent
        if b.resolved_at is not None and (d := _breakdown_downtime_hours(b, now)) is not None
    ]

    tasks = [m for m in equipment_maintenance if m.equipment_id == equipment.id]
    on_time = sum(
        1 for m in tasks
        if _is_on_time(m) and maintenance_start < _as_utc(m.completed_date) <= now
    )
    overdue = sum(
        1 for m in tasks
        if _is_overdue(m, now)
        and (m.scheduled_date is None or _as_utc(m.scheduled_date) > maintenance_start)
    )

    state = status.status if status is not None else None
    score = BASE_SCORE + (STATUS_ADJUSTMENTS.get(state, 0.0) if state is not None else 0.0)
    score -= min(MAX_BREAKDOWN_PENALTY, BREAKDOWN_PENALTY * len(recent))
    score -= min(MAX_DOWNTIME_PENALTY, DOWNTIME_PENALTY_PER_HOUR * downtime)
    score += min(MAX_MAINTENANCE_BONUS, ON_TIME_MAINTENANCE_BONUS * on_time)
    score -= min(MAX_OVERDUE_PENALTY, OVERDUE_MAINTENANCE_PENALTY * overdue)
    score = max(0.0, min(100.0, round(score, 1)))

    return EquipmentScore(
        equipment_id=equipment.id,
        score=score,
        grade=grade_for_score(score),
        status=state,
        recent_breakdowns=len(recent),
        downtime_hours=round(downtime, 2),
        average_repair_hours=_round(fmean(repaired)) if repaired else None,
        on_time_maintenance=on_time,
        overdue_maintenance=overdue,
    )


# ---------------------------------------------------------------------------
# Fleet reliability
# ---------------------------------------------------------------------------

def _failure_times(
    breakdowns: Iterable[BreakdownReport],
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict[str, list[datetime]]:
    """Sorted breakdown timestamps per equipment, optionally within [start, end)."""
    times: dict[str, list[datetime]] = defaultdict(list)
    for b in breakdowns:
        ts = _as_utc(b.occurred_at)
        if ts is None:
            continue
        if start is not None and not _in_window(ts, start, end):
            continue
        times[b.equipment_id].append(ts)
    for series in times.values():
        series.sort()
    return times


def _mtbf_hours(times: Sequence[datetime]) -> float | None:
    """Mean gap between consecutive failures; None below two failures."""
    if len(times) < 2:
        return None
    return _hours(times[-1] - times[0]) / (len(times) - 1)


def _repair_durations(
    breakdowns: Iterable[BreakdownReport],
    repairs: Iterable[RepairReport],
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict[str, list[float]]:
    """
    Hours from failure to repair completion, grouped by equipment.

    The completion is the earliest completed repair linked through
    breakdown_id, falling back to the breakdown's own resolved_at. Durations
    that would be negative are treated as malformed and skipped. When a
    window is given it applies to the completion time.
    """
    completions: dict[str, datetime] = {}
    for r in repairs:
        done = _as_utc(r.completed_at)
        if r.status != RepairStatus.COMPLETED or done is None or not r.breakdown_id:
            continue
        current = completions.get(r.breakdown_id)
        if current is None or done < current:
            completions[r.breakdown_id] = done

    durations: dict[str, list[float]] = defaultdict(list)
    for b in breakdowns:
        occurred = _as_utc(b.occurred_at)
        if occurred is None:
            continue
        done = completions.get(b.id) or _as_utc(b.resolved_at)
        if done is None or done < occurred:
            continue
        if start is not None and not _in_window(done, start, end):
            continue
        durations[b.equipment_id].append(_hours(done - occurred))
    return durations


def _fleet_mtbf(breakdowns, start=None, end=None) -> float | None:
    values = [v for v in (_mtbf_hours(t) for t in _failure_times(breakdowns, start, end).values()) if v is not None]
    return fmean(values) if values else None


def _fleet_mttr(breakdowns, repairs, start=None, end=None) -> float | None:
    values = [fmean(d) for d in _repair_durations(breakdowns, repairs, start, end).values() if d]
    return fmean(values) if values else None


def _change(current: float | None, previous: float | None) -> float | None:
    if current is None or previous is None:
        return None
    return round(current - previous, 2)


def _completion_counts(repairs: Iterable[RepairReport], start: datetime, end: datetime) -> tuple[int, int]:
    """(completed, planned) for repairs opened in [start, end); cancelled ones are not planned work."""
    completed = planned = 0
    for r in repairs:
        opened = _as_utc(r.created_at) or _as_utc(r.started_at) or _as_utc(r.completed_at)
        if not _in_window(opened, start, end) or r.status == RepairStatus.CANCELLED:
            continue
        planned += 1
        if r.status == RepairStatus.COMPLETED:
            completed += 1
    return completed, planned


def generate_comprehensive_metrics(
    equipment: Sequence[Equipment],
    statuses: Sequence[EquipmentStatusRecord],
    breakdowns: Sequence[BreakdownReport],
    repairs: Sequence[RepairReport],
    maintenance: Sequence[MaintenanceSchedule],
    *,
    now: datetime,
    period_days: int = 30,
) -> FleetMetrics:
    """
    Fleet MTBF, MTTR and completion rate plus per-equipment reliability.

    - MTBF per machine is the mean gap between consecutive breakdowns over
      the whole history; machines with fewer than two breakdowns are marked
      insufficient and left out of the fleet value.
    - MTTR per machine is the mean failure-to-completion duration.
    - Fleet values are the arithmetic mean of the per-machine values.
    - `change` compares the trailing `period_days` with the period before it.
    - Best equipment: highest MTBF / lowest MTTR, ties by equipment id.
    - Quality index is 100 minus 10 points per breakdown per machine over
      the trailing period, floored at 0.
    """
    now = _as_utc(now)
    period = timedelta(days=period_days)
    current_start, previous_start = now - period, now - 2 * period

    failure_times = _failure_times(breakdowns)
    durations = _repair_durations(breakdowns, repairs)
    numbers = {e.id: e.equipment_number for e in equipment}

    rows: list[EquipmentReliability] = []
    for eq_id in sorted(set(numbers) | set(failure_times) | set(durations)):
        mtbf = _mtbf_hours(failure_times.get(eq_id, []))
        eq_durations = durations.get(eq_id, [])
        mttr = fmean(eq_durations) if eq_durations else None
        rows.append(
            EquipmentReliability(
                equipment_id=eq_id,
                equipment_number=numbers.get(eq_id),
                breakdown_count=len(failure_times.get(eq_id, [])),
                repaired_count=len(eq_durations),
                mtbf_hours=_round(mtbf),
                mttr_hours=_round(mttr),
                mtbf_insufficient_data=mtbf is None,
                mttr_insufficient_data=mttr is None,
            )
        )

    mtbf_rows = [r for r in rows if r.mtbf_hours is not None]
    mttr_rows = [r for r in rows if r.mttr_hours is not None]
    best_mtbf = min(mtbf_rows, key=lambda r: (-r.mtbf_hours, r.equipment_id), default=None)
    best_mttr = min(mttr_rows, key=lambda r: (r.mttr_hours, r.equipment_id), default=None)

    mtbf_metric = ReliabilityMetric(
        value=_round(fmean(r.mtbf_hours for r in mtbf_rows)) if mtbf_rows else None,
        change=_change(
            _fleet_mtbf(breakdowns, current_start, now),
            _fleet_mtbf(breakdowns, previous_start, current_start),
        ),
        best_equipment_id=best_mtbf.equipment_id if best_mtbf else None,
        best_equipment_number=best_mtbf.equipment_number if best_mtbf else None,
        best_value=best_mtbf.mtbf_hours if best_mtbf else None,
        insufficient_data=not mtbf_rows,
    )
    mttr_metric = ReliabilityMetric(
        value=_round(fmean(r.mttr_hours for r in mttr_rows)) if mttr_rows else None,
        change=_change(
            _fleet_mttr(breakdowns, repairs, current_start, now),
            _fleet_mttr(breakdowns, repairs, previous_start, current_start),
        ),
        best_equipment_id=best_mttr.equipment_id if best_mttr else None,
        best_equipment_number=best_mttr.equipment_number if best_mttr else None,
        best_value=best_mttr.mttr_hours if best_mttr else None,
        insufficient_data=not mttr_rows,
    )

    completed, planned = _completion_counts(repairs, current_start, now)
    prev_completed, prev_planned = _completion_counts(repairs, previous_start, current_start)
    preventive = sum(1 for m in maintenance if m.type == MaintenanceType.PREVENTIVE)
    completion_metric = CompletionRateMetric(
        value=_pct(completed, planned),
        change=_change(_pct(completed, planned), _pct(prev_completed, prev_planned)),
        completed=completed,
        planned=planned,
        preventive_ratio=_pct(preventive, len(maintenance)),
        insufficient_data=planned == 0,
    )

    latest = latest_status_by_equipment(statuses)
    running = sum(1 for s in latest.values() if s.status == EquipmentState.RUNNING)
    maintenance_done = sum(1 for m in maintenance if m.status == MaintenanceStatus.COMPLETED)
    occurred = (_as_utc(b.occurred_at) for b in breakdowns)
    recent_failures = sum(1 for ts in occurred if ts is not None and current_start <= ts <= now)

    return FleetMetrics(
        mtbf=mtbf_metric,
        mttr=mttr_metric,
        completion_rate=completion_metric,
        per_equipment=rows,
        operation_rate=_pct(running, len(equipment)) or 0.0,
        maintenance_completion_rate=_pct(maintenance_done, len(maintenance)) or 0.0,
        total_equipment=len(equipment),
        active_equipment=running,
        total_breakdowns=len(breakdowns),
        total_repairs=sum(1 for r in repairs if r.status == RepairStatus.COMPLETED),
        quality_index=calculate_quality_index(len(equipment), recent_failures),
    )


def calculate_quality_index(equipment_count: int, recent_breakdowns: int) -> float:
    """Breakdown-rate quality figure in [0, 100]; an empty fleet scores 100."""
    if equipment_count <= 0:
        return 100.0
    failure_rate = recent_breakdowns / equipment_count
    return round(max(0.0, 100.0 - failure_rate * QUALITY_PENALTY_PER_FAILURE), 1)


# ---------------------------------------------------------------------------
# Dashboard bundle
# ---------------------------------------------------------------------------

def score_fleet(
    records: RawRecordSet,
    *,
    now: datetime,
    window_days: int = 30,
) -> dict[str, EquipmentScore]:
    """Health score for every machine in the snapshot, keyed by equipment id."""
    latest = latest_status_by_equipment(records.statuses)
    breakdowns_by_eq: dict[str, list[BreakdownReport]] = defaultdict(list)
    for b in records.breakdowns:
        breakdowns_by_eq[b.equipment_id].append(b)
    maintenance_by_eq: dict[str, list[MaintenanceSchedule]] = defaultdict(list)
    for m in records.maintenance:
        maintenance_by_eq[m.equipment_id].append(m)

    return {
        e.id: calculate_equipment_score(
            e,
            latest.get(e.id),
            breakdowns_by_eq.get(e.id, []),
            maintenance_by_eq.get(e.id, []),
            now=now,
            window_days=window_days,
        )
        for e in sorted(records.equipment, key=lambda e: e.id)
    }


def status_distribution(records: RawRecordSet) -> dict[str, int]:
    """Machines per current state; machines with no status row count as "unknown"."""
    latest = latest_status_by_equipment(records.statuses)
    counts: Counter[str] = Counter()
    for e in records.equipment:
        status = latest.get(e.id)
        counts[status.status.value if status else "unknown"] += 1
    return dict(sorted(counts.items()))


def build_dashboard_analytics(
    records: RawRecordSet,
    *,
    now: datetime,
    granularity: Granularity | str = Granularity.WEEKLY,
    period_days: int = 30,
    score_window_days: int = 30,
    trend_periods: int | None = None,
) -> DashboardAnalytics:
    """Compute every dashboard view from a single snapshot."""
    now = _as_utc(now)
    today = filter_records_for_day(records, now.date())
    category_breakdown = Counter(e.category or "uncategorized" for e in records.equipment)

    return DashboardAnalytics(
        generated_at=now,
        daily_stats=calculate_daily_stats(today.breakdowns, today.repairs, today.equipment, today.statuses),
        trend=generate_trend_data(records.breakdowns, records.repairs, granularity, now=now, periods=trend_periods),
        fleet=generate_comprehensive_metrics(
            records.equipment,
            records.statuses,
            records.breakdowns,
            records.repairs,
            records.maintenance,
            now=now,
            period_days=period_days,
        ),
        scores=score_fleet(records, now=now, window_days=score_window_days),
        status_distribution=status_distribution(records),
        category_breakdown=dict(sorted(category_breakdown.items())),
    )


def build_realtime_snapshot(records: RawRecordSet, *, now: datetime) -> RealtimeSnapshot:
    """Today's counts plus every breakdown still open, regardless of age."""
    now = _as_utc(now)
    today = filter_records_for_day(records, now.date())
    open_breakdowns = [b for b in records.breakdowns if b.status != BreakdownStatus.RESOLVED]
    return RealtimeSnapshot(
        generated_at=now,
        daily_stats=calculate_daily_stats(today.breakdowns, today.repairs, today.equipment, today.statuses),
        status_distribution=status_distribution(records),
        active_breakdowns=len(open_breakdowns),
        urgent_breakdowns=sum(1 for b in open_breakdowns if b.priority == BreakdownPriority.URGENT),
    )


# ---------------------------------------------------------------------------
# Statistics view
# ---------------------------------------------------------------------------

def _latest(values: Iterable[datetime | None]) -> datetime | None:
    present = [v for v in (_as_utc(x) for x in values) if v is not None]
    return max(present) if present else None


def build_performance_analysis(
    records: RawRecordSet,
    granularity: Granularity | str = Granularity.MONTHLY,
    *,
    now: datetime,
    period_days: int = 30,
    trend_periods: int | None = None,
) -> PerformanceAnalysis:
    """
    Per-machine and per-category performance on top of the fleet metrics.

    Reliability starts at 100 and loses 5 points per recorded breakdown,
    never dropping below 70. Category MTBF is the mean of the machines'
    MTBF values that have enough data.
    """
    now = _as_utc(now)
    latest = latest_status_by_equipment(records.statuses)
    failure_times = _failure_times(records.breakdowns)
    maintenance_by_eq: dict[str, list[MaintenanceSchedule]] = defaultdict(list)
    for m in records.maintenance:
        maintenance_by_eq[m.equipment_id].append(m)

    rows: list[EquipmentPerformance] = []
    for e in sorted(records.equipment, key=lambda e: e.id):
        times = failure_times.get(e.id, [])
        status = latest.get(e.id)
        done = [m.completed_date for m in maintenance_by_eq.get(e.id, []) if m.status == MaintenanceStatus.COMPLETED]
        rows.append(
            EquipmentPerformance(
                equipment_id=e.id,
                equipment_number=e.equipment_number,
                equipment_name=e.equipment_name,
                category=e.category,
                location=e.location,
                status=status.status if status else None,
                mtbf_hours=_round(_mtbf_hours(times)),
                reliability=max(RELIABILITY_FLOOR, 100.0 - RELIABILITY_PENALTY_PER_BREAKDOWN * len(times)),
                breakdown_count=len(times),
                maintenance_count=len(maintenance_by_eq.get(e.id, [])),
                last_breakdown=times[-1] if times else None,
                last_maintenance=_latest(done),
            )
        )

    by_category: dict[str, list[EquipmentPerformance]] = defaultdict(list)
    for row in rows:
        by_category[row.category or "uncategorized"].append(row)
    categories = []
    for name, members in sorted(by_category.items()):
        running = sum(1 for r in members if r.status == EquipmentState.RUNNING)
        mtbfs = [r.mtbf_hours for r in members if r.mtbf_hours is not None]
        categories.append(
            CategoryPerformance(
                category=name,
                equipment_count=len(members),
                operation_rate=_pct(running, len(members)) or 0.0,
                breakdown_count=sum(r.breakdown_count for r in members),
                avg_mtbf_hours=_round(fmean(mtbfs)) if mtbfs else None,
            )
        )

    return PerformanceAnalysis(
        overview=generate_comprehensive_metrics(
            records.equipment,
            records.statuses,
            records.breakdowns,
            records.repairs,
            records.maintenance,
            now=now,
            period_days=period_days,
        ),
        equipment=rows,
        categories=categories,
        trend=generate_trend_data(records.breakdowns, records.repairs, granularity, now=now, periods=trend_periods),
    )


def build_maintenance_analysis(
    records: RawRecordSet,
    *,
    now: datetime,
    planning_months: int = PLANNING_MONTHS,
) -> MaintenanceAnalysis:
    """Maintenance completion by type, by month scheduled and by machine."""
    now = _as_utc(now)
    if planning_months < 1:
        raise InvalidArgument("planning_months must be at least 1")
    maintenance = records.maintenance

    def summarize(items: Sequence[MaintenanceSchedule]) -> tuple[int, int, int]:
        done = sum(1 for m in items if m.status == MaintenanceStatus.COMPLETED)
        overdue = sum(1 for m in items if _is_overdue(m, now))
        return len(items), done, overdue

    total, completed, overdue = summarize(maintenance)
    overview = MaintenanceOverview(
        total=total,
        completed=completed,
        overdue=overdue,
        completion_rate=_pct(completed, total) or 0.0,
    )

    by_type = []
    for kind in MaintenanceType:
        kind_total, kind_done, _ = summarize([m for m in maintenance if m.type == kind])
        by_type.append(
            MaintenanceTypeSummary(
                type=kind,
                total=kind_total,
                completed=kind_done,
                completion_rate=_pct(kind_done, kind_total) or 0.0,
            )
        )

    last = _bucket_start(now, Granularity.MONTHLY)
    planning = []
    for step in range(planning_months - 1, -1, -1):
        start = _shift_bucket(last, Granularity.MONTHLY, -step)
        end = _shift_bucket(start, Granularity.MONTHLY, 1)
        scheduled = [m for m in maintenance if _in_window(_as_utc(m.scheduled_date), start, end)]
        month_total, month_done, _ = summarize(scheduled)
        planning.append(
            MaintenancePlanningPoint(
                period=_bucket_label(start, Granularity.MONTHLY),
                start=start,
                end=end,
                planned=month_total,
                completed=month_done,
                completion_rate=_pct(month_done, month_total) or 0.0,
            )
        )

    per_equipment = []
    for e in sorted(records.equipment, key=lambda e: e.id):
        eq_total, eq_done, eq_overdue = summarize([m for m in maintenance if m.equipment_id == e.id])
        per_equipment.append(
            EquipmentMaintenanceSummary(
                equipment_id=e.id,
                equipment_number=e.equipment_number,
                total=eq_total,
                completed=eq_done,
                overdue=eq_overdue,
                completion_rate=_pct(eq_done, eq_total) or 0.0,
            )
        )

    return MaintenanceAnalysis(overview=overview, by_type=by_type, planning=planning, equipment=per_equipment)


def build_comprehensive_report(
    records: RawRecordSet,
    granularity: Granularity | str = Granularity.MONTHLY,
    *,
    now: datetime,
    period_days: int = 30,
    score_window_days: int = 30,
    trend_periods: int | None = None,
) -> ComprehensiveReport:
    """
    Fleet metrics plus the best and worst scoring machines.

    Machines are ranked by score (ties by id). Bottom performers are listed
    worst first. A machine is at risk below a score of 70 and is
    recommended for maintenance after more than two breakdowns in the score
    window.
    """
    now = _as_utc(now)
    scores = score_fleet(records, now=now, window_days=score_window_days)
    ranked = sorted(scores.values(), key=lambda s: (-s.score, s.equipment_id))
    return ComprehensiveReport(
        overview=generate_comprehensive_metrics(
            records.equipment,
            records.statuses,
            records.breakdowns,
            records.repairs,
            records.maintenance,
            now=now,
            period_days=period_days,
        ),
        top_performers=ranked[:PERFORMER_COUNT],
        bottom_performers=ranked[::-1][:PERFORMER_COUNT],
        at_risk_equipment=sum(1 for s in ranked if s.score < AT_RISK_SCORE),
        maintenance_recommended=sum(1 for s in ranked if s.recent_breakdowns > MAINTENANCE_RECOMMENDED_AFTER),
        trend=generate_trend_data(records.breakdowns, records.repairs, granularity, now=now, periods=trend_periods),
    )


def build_statistics(
    records: RawRecordSet,
    category: StatisticsCategory | str = StatisticsCategory.PERFORMANCE,
    period: StatisticsPeriod | str = StatisticsPeriod.MONTHLY,
    *,
    now: datetime,
    period_days: int = 30,
    score_window_days: int = 30,
    trend_periods: int | None = None,
) -> StatisticsReport:
    """Build one category of the statistics view; `period` sets the trend buckets."""
    category = StatisticsCategory(category)
    period = StatisticsPeriod(period)
    now = _as_utc(now)
    granularity = Granularity(period.value)

    if category == StatisticsCategory.MAINTENANCE:
        data = build_maintenance_analysis(records, now=now)
    elif category == StatisticsCategory.COMPREHENSIVE:
        data = build_comprehensive_report(
            records,
            granularity,
            now=now,
            period_days=period_days,
            score_window_days=score_window_days,
            trend_periods=trend_periods,
        )
    else:
        data = build_performance_analysis(
            records, granularity, now=now, period_days=period_days, trend_periods=trend_periods
        )
    return StatisticsReport(category=category, period=period, generated_at=now, data=data)
