import threading
import time
import unittest
from datetime import datetime, timedelta, timezone

from plantwatch.analytics_service import (
    DASHBOARD_KEY,
    PERFORMANCE_KEY,
    REALTIME_KEY,
    AnalyticsService,
    score_key,
    statistics_key,
    trend_key,
)
from plantwatch.cache import CacheLayer, Domain
from plantwatch.config import Settings
from plantwatch.data_sources import InMemoryRecordSource
from plantwatch.domain import (
    BreakdownReport,
    Equipment,
    EquipmentState,
    EquipmentStatusRecord,
    Granularity,
    MaintenanceSchedule,
    RawRecordSet,
    RepairReport,
    StatisticsCategory,
    StatisticsPeriod,
)
from plantwatch.errors import ComputationFailed, EquipmentNotFound, InvalidArgument

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def _records() -> RawRecordSet:
    return RawRecordSet(
        equipment=[
            Equipment(id="eq-a", equipment_number="EQ-001", category="press"),
            Equipment(id="eq-b", equipment_number="EQ-002", category="lathe"),
        ],
        statuses=[
            EquipmentStatusRecord(id="s1", equipment_id="eq-a", status=EquipmentState.RUNNING,
                                  status_changed_at=NOW - timedelta(days=1)),
        ],
        breakdowns=[
            BreakdownReport(id="b1", equipment_id="eq-b", occurred_at=NOW - timedelta(days=3)),
            BreakdownReport(id="b2", equipment_id="eq-b", occurred_at=NOW - timedelta(days=1)),
        ],
    )


class FailingSource(InMemoryRecordSource):
    def fetch_records(self):
        self.fetch_count += 1
        raise ConnectionError("backend unavailable")


class TestAnalyticsService(unittest.TestCase):
    def setUp(self):
        self.cache = CacheLayer(start_sweeper=False)
        self.source = InMemoryRecordSource(_records())
        self.service = AnalyticsService(self.cache, self.source, Settings(), now=lambda: NOW)

    def test_dashboard_is_cached_under_fixed_key(self):
        first = self.service.dashboard_analytics()
        second = self.service.dashboard_analytics()
        self.assertIs(first, second)
        self.assertEqual(self.source.fetch_count, 1)
        self.assertTrue(self.cache.contains(DASHBOARD_KEY))
        self.assertEqual(sorted(first.scores), ["eq-a", "eq-b"])

    def test_views_use_their_own_keys(self):
        self.service.trend_data("weekly")
        self.service.performance_metrics()
        self.service.equipment_score("eq-b")
        self.service.realtime_data()
        for key in (trend_key(Granularity.WEEKLY), PERFORMANCE_KEY, score_key("eq-b"), REALTIME_KEY):
            self.assertTrue(self.cache.contains(key), key)
        self.assertEqual(self.source.fetch_count, 4)

    def test_equipment_score(self):
        score = self.service.equipment_score("eq-b")
        self.assertEqual(score.equipment_id, "eq-b")
        self.assertEqual(score.recent_breakdowns, 2)

    def test_unknown_equipment_fails_with_not_found_cause(self):
        with self.assertRaises(ComputationFailed) as ctx:
            self.service.equipment_score("nope")
        self.assertIsInstance(ctx.exception.cause, EquipmentNotFound)
        self.assertFalse(self.cache.contains(score_key("nope")))

    def test_breakdown_write_invalidates_related_views(self):
        self.service.dashboard_analytics()
        self.service.equipment_score("eq-b")
        self.service.realtime_data()

        self.service.add_breakdown(
            BreakdownReport(id="b3", equipment_id="eq-a", occurred_at=NOW - timedelta(hours=1))
        )

        for key in (DASHBOARD_KEY, score_key("eq-b"), REALTIME_KEY):
            self.assertFalse(self.cache.contains(key), key)
        self.assertEqual(self.service.dashboard_analytics().fleet.total_breakdowns, 3)

    def test_views_reflect_a_new_breakdown_immediately(self):
        before_score = self.service.equipment_score("eq-a")
        before_live = self.service.realtime_data()
        self.assertEqual(before_score.recent_breakdowns, 0)
        self.assertEqual(before_live.active_breakdowns, 2)

        self.service.add_breakdown(
            BreakdownReport(id="b3", equipment_id="eq-a", occurred_at=NOW - timedelta(hours=1))
        )

        self.assertEqual(self.service.equipment_score("eq-a").recent_breakdowns, 1)
        self.assertEqual(self.service.realtime_data().active_breakdowns, 3)
        self.assertEqual(self.source.fetch_count, 4)

    def test_status_and_maintenance_writes_invalidate_equipment_views(self):
        self.service.equipment_score("eq-a")
        self.service.add_status(
            EquipmentStatusRecord(id="s2", equipment_id="eq-a", status=EquipmentState.STOPPED,
                                  status_changed_at=NOW)
        )
        self.assertFalse(self.cache.contains(score_key("eq-a")))
        self.assertEqual(self.service.equipment_score("eq-a").status, EquipmentState.STOPPED)

        self.service.add_maintenance(
            MaintenanceSchedule(id="m1", equipment_id="eq-a", scheduled_date=NOW)
        )
        self.assertFalse(self.cache.contains(score_key("eq-a")))

    def test_equipment_and_repair_writes(self):
        self.service.performance_metrics()
        self.service.add_repair(RepairReport(id="r1", equipment_id="eq-b", breakdown_id="b1"))
        self.assertFalse(self.cache.contains(PERFORMANCE_KEY))

        self.service.dashboard_analytics()
        self.service.add_equipment(Equipment(id="eq-c", equipment_number="EQ-003"))
        self.assertEqual(self.service.dashboard_analytics().fleet.total_equipment, 3)

    def test_statistics_cached_per_period_and_category(self):
        monthly = self.service.statistics()
        self.assertIs(self.service.statistics("performance", "monthly"), monthly)
        weekly = self.service.statistics(StatisticsCategory.MAINTENANCE, StatisticsPeriod.WEEKLY)
        self.assertEqual(weekly.category, StatisticsCategory.MAINTENANCE)
        self.assertEqual(self.source.fetch_count, 2)
        for key in (
            statistics_key(StatisticsPeriod.MONTHLY, StatisticsCategory.PERFORMANCE),
            statistics_key(StatisticsPeriod.WEEKLY, StatisticsCategory.MAINTENANCE),
        ):
            self.assertTrue(self.cache.contains(key), key)

        self.service.add_breakdown(
            BreakdownReport(id="b3", equipment_id="eq-a", occurred_at=NOW - timedelta(hours=1))
        )
        self.assertFalse(self.cache.contains(statistics_key(StatisticsPeriod.MONTHLY, StatisticsCategory.PERFORMANCE)))
        self.assertEqual(self.service.statistics().data.overview.total_breakdowns, 3)

    def test_statistics_rejects_unknown_category_and_period(self):
        with self.assertRaises(InvalidArgument):
            self.service.statistics("cost")
        with self.assertRaises(InvalidArgument):
            self.service.statistics(period="daily")
        self.assertEqual(self.source.fetch_count, 0)

    def test_record_change_returns_removed_count(self):
        self.service.dashboard_analytics()
        self.service.performance_metrics()
        self.assertEqual(self.service.record_change(Domain.DASHBOARD), 2)

    def test_refresh_realtime_recomputes(self):
        self.service.realtime_data()
        self.service.refresh_realtime()
        self.assertEqual(self.source.fetch_count, 2)

    def test_backend_failure_leaves_other_views(self):
        self.service.performance_metrics()
        failing = AnalyticsService(self.cache, FailingSource(), Settings(), now=lambda: NOW)
        with self.assertRaises(ComputationFailed) as ctx:
            failing.dashboard_analytics()
        self.assertIsInstance(ctx.exception.cause, ConnectionError)
        self.assertTrue(self.cache.contains(PERFORMANCE_KEY))

    def test_concurrent_dashboard_requests_fetch_once(self):
        release = threading.Event()

        class SlowSource(InMemoryRecordSource):
            def fetch_records(self):
                release.wait(5)
                return super().fetch_records()

        source = SlowSource(_records())
        service = AnalyticsService(self.cache, source, Settings(), now=lambda: NOW)
        results = []
        threads = [threading.Thread(target=lambda: results.append(service.dashboard_analytics())) for _ in range(5)]
        for t in threads:
            t.start()
        deadline = time.monotonic() + 5
        while self.cache.get_stats().coalesced < 4 and time.monotonic() < deadline:
            time.sleep(0.005)
        release.set()
        for t in threads:
            t.join(5)

        self.assertEqual(source.fetch_count, 1)
        self.assertEqual(len(results), 5)
        self.assertTrue(all(r is results[0] for r in results))


if __name__ == "__main__":
    unittest.main()
