"""Cached analytics views over the record source.

Each view is computed from one fresh record snapshot through the metrics
engine and stored in the cache layer under a fixed key. Every view derived
from more than one record family lives under the `dashboard-` prefix, which
every domain fan-out reaches. Mutations go through the same service so the
related views, and the realtime view, are invalidated right after the write
lands.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, TypeVar

from plantwatch import config
from plantwatch.cache import CacheLayer, Domain
from plantwatch.data_sources import RecordSource
from plantwatch.domain import (
    BreakdownReport,
    DashboardAnalytics,
    Equipment,
    EquipmentScore,
    EquipmentStatusRecord,
    FleetMetrics,
    Granularity,
    MaintenanceSchedule,
    RawRecordSet,
    RealtimeSnapshot,
    RepairReport,
    StatisticsCategory,
    StatisticsPeriod,
    StatisticsReport,
    TrendSeries,
)
from plantwatch.errors import EquipmentNotFound, InvalidArgument
from plantwatch.metrics_engine import (
    build_dashboard_analytics,
    build_realtime_snapshot,
    build_statistics,
    calculate_equipment_score,
    generate_comprehensive_metrics,
    generate_trend_data,
    latest_status_by_equipment,
)
from utils.logging_utils import get_tagged_logger, log_timing

logger = get_tagged_logger(__name__)

R = TypeVar("R")

DASHBOARD_KEY = "dashboard-analytics"
PERFORMANCE_KEY = "dashboard-performance"
REALTIME_KEY = "realtime-data"


def trend_key(granularity: Granularity) -> str:
    return f"dashboard-trend-{granularity.value}"


def score_key(equipment_id: str) -> str:
    return f"dashboard-equipment-score-{equipment_id}"


def statistics_key(period: StatisticsPeriod, category: StatisticsCategory) -> str:
    return f"dashboard-statistics-{period.value}-{category.value}"


class AnalyticsService:
    """Serve dashboard, trend, performance and score views through the cache."""

    def __init__(
        self,
        cache: CacheLayer,
        source: RecordSource,
        settings: config.Settings | None = None,
        *,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.cache = cache
        self.source = source
        self.settings = settings or config.settings
        self._now = now or (lambda: datetime.now(timezone.utc))

    # -- helpers -----------------------------------------------------------

    def _fetch(self) -> RawRecordSet:
        with log_timing(logger, "fetch_records"):
            return self.source.fetch_records()

    def _cached(self, key: str, ttl_seconds: float, compute: Callable[[RawRecordSet], R]) -> R:
        return self.cache.get_or_compute(key, lambda: compute(self._fetch()), ttl_seconds)

    # -- views -------------------------------------------------------------

    def dashboard_analytics(self, now: datetime | None = None) -> DashboardAnalytics:
        """Full dashboard bundle, cached for the dashboard TTL."""
        at = now or self._now()
        return self._cached(
            DASHBOARD_KEY,
            self.settings.dashboard_ttl_seconds,
            lambda records: build_dashboard_analytics(
                records,
                now=at,
                period_days=self.settings.metrics_period_days,
                score_window_days=self.settings.score_window_days,
                trend_periods=self.settings.trend_periods,
            ),
        )

    def realtime_data(self, now: datetime | None = None) -> RealtimeSnapshot:
        at = now or self._now()
        return self._cached(
            REALTIME_KEY,
            self.settings.realtime_ttl_seconds,
            lambda records: build_realtime_snapshot(records, now=at),
        )

    def refresh_realtime(self, now: datetime | None = None) -> RealtimeSnapshot:
        """Drop the realtime view and compute it again."""
        self.cache.invalidate(REALTIME_KEY)
        return self.realtime_data(now)

    def trend_data(self, granularity: Granularity | str = Granularity.MONTHLY,
                   now: datetime | None = None) -> TrendSeries:
        resolved = Granularity(granularity)
        at = now or self._now()
        return self._cached(
            trend_key(resolved),
            self.settings.dashboard_ttl_seconds,
            lambda records: generate_trend_data(
                records.breakdowns,
                records.repairs,
                resolved,
                now=at,
                periods=self.settings.trend_periods,
            ),
        )

    def performance_metrics(self, now: datetime | None = None) -> FleetMetrics:
        at = now or self._now()
        return self._cached(
            PERFORMANCE_KEY,
            self.settings.dashboard_ttl_seconds,
            lambda records: generate_comprehensive_metrics(
                records.equipment,
                records.statuses,
                records.breakdowns,
                records.repairs,
                records.maintenance,
                now=at,
                period_days=self.settings.metrics_period_days,
            ),
        )

    def equipment_score(self, equipment_id: str, now: datetime | None = None) -> EquipmentScore:
        """Health score for one machine; unknown ids fail with EquipmentNotFound as the cause."""
        at = now or self._now()

        def compute(records: RawRecordSet) -> EquipmentScore:
            equipment = next((e for e in records.equipment if e.id == equipment_id), None)
            if equipment is None:
                raise EquipmentNotFound(equipment_id)
            return calculate_equipment_score(
                equipment,
                latest_status_by_equipment(records.statuses).get(equipment_id),
                [b for b in records.breakdowns if b.equipment_id == equipment_id],
                [m for m in records.maintenance if m.equipment_id == equipment_id],
                now=at,
                window_days=self.settings.score_window_days,
            )

        return self._cached(score_key(equipment_id), self.settings.dashboard_ttl_seconds, compute)

    def statistics(
        self,
        category: StatisticsCategory | str = StatisticsCategory.PERFORMANCE,
        period: StatisticsPeriod | str = StatisticsPeriod.MONTHLY,
        now: datetime | None = None,
    ) -> StatisticsReport:
        """Performance, maintenance or comprehensive statistics, cached per period and category."""
        try:
            category = StatisticsCategory(category)
            period = StatisticsPeriod(period)
        except ValueError as exc:
            raise InvalidArgument(str(exc)) from exc
        at = now or self._now()
        return self._cached(
            statistics_key(period, category),
            self.settings.statistics_ttl_seconds,
            lambda records: build_statistics(
                records,
                category,
                period,
                now=at,
                period_days=self.settings.metrics_period_days,
                score_window_days=self.settings.score_window_days,
                trend_periods=self.settings.trend_periods,
            ),
        )

    # -- mutations ---------------------------------------------------------

    def record_change(self, domain: Domain | str) -> int:
        """Invalidate the views that depend on `domain`; returns entries removed."""
        return self.cache.invalidate_related(domain)

    def _written(self, domain: Domain) -> None:
        self.record_change(domain)
        # realtime-data sits outside the fan-out table; every write changes it
        self.cache.invalidate(REALTIME_KEY)

    def add_equipment(self, equipment: Equipment) -> Equipment:
        saved = self.source.add_equipment(equipment)
        self._written(Domain.EQUIPMENT)
        return saved

    def add_status(self, status: EquipmentStatusRecord) -> EquipmentStatusRecord:
        saved = self.source.add_status(status)
        self._written(Domain.STATUS)
        return saved

    def add_breakdown(self, breakdown: BreakdownReport) -> BreakdownReport:
        saved = self.source.add_breakdown(breakdown)
        self._written(Domain.BREAKDOWN)
        return saved

    def add_repair(self, repair: RepairReport) -> RepairReport:
        saved = self.source.add_repair(repair)
        self._written(Domain.REPAIR)
        return saved

    def add_maintenance(self, schedule: MaintenanceSchedule) -> MaintenanceSchedule:
        # maintenance feeds equipment scores and the dashboard
        saved = self.source.add_maintenance(schedule)
        self._written(Domain.EQUIPMENT)
        return saved
