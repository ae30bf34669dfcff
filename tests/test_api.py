import unittest
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from plantwatch.analytics_service import AnalyticsService
from plantwatch.api import get_analytics_service
from plantwatch.cache import CacheLayer
from plantwatch.config import Settings
from plantwatch.data_sources import InMemoryRecordSource
from plantwatch.domain import BreakdownReport, Equipment, RawRecordSet
from plantwatch.main import app as fastapi_app

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def _seed() -> RawRecordSet:
    return RawRecordSet(
        equipment=[
            Equipment(id="eq-a", equipment_number="EQ-001", category="press"),
            Equipment(id="eq-b", equipment_number="EQ-002", category="press"),
        ],
        breakdowns=[
            BreakdownReport(id="b1", equipment_id="eq-a", occurred_at=NOW - timedelta(days=4)),
            BreakdownReport(id="b2", equipment_id="eq-a", occurred_at=NOW - timedelta(days=2)),
        ],
    )


class BrokenSource(InMemoryRecordSource):
    def fetch_records(self):
        raise TimeoutError("backend timed out")


class TestApi(unittest.TestCase):
    def setUp(self):
        self.cache = CacheLayer(start_sweeper=False)
        self.source = InMemoryRecordSource(_seed())
        self.service = AnalyticsService(self.cache, self.source, Settings(), now=lambda: NOW)
        fastapi_app.dependency_overrides[get_analytics_service] = lambda: self.service
        self.client = TestClient(fastapi_app)

    def tearDown(self):
        fastapi_app.dependency_overrides.clear()
        self.cache.close()

    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_dashboard_served_from_cache(self):
        first = self.client.get("/v1/analytics/dashboard")
        self.assertEqual(first.status_code, 200)
        body = first.json()
        self.assertEqual(sorted(body["scores"]), ["eq-a", "eq-b"])
        self.assertEqual(body["fleet"]["mtbf"]["value"], 48.0)

        self.assertEqual(self.client.get("/v1/analytics/dashboard").status_code, 200)
        self.assertEqual(self.source.fetch_count, 1)

    def test_breakdown_report_invalidates_dashboard(self):
        self.client.get("/v1/analytics/dashboard")
        resp = self.client.post(
            "/v1/breakdown-reports",
            json={"equipment_id": "eq-b", "priority": "urgent", "occurred_at": NOW.isoformat()},
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["priority"], "urgent")
        self.assertTrue(resp.json()["id"])

        body = self.client.get("/v1/analytics/dashboard").json()
        self.assertEqual(self.source.fetch_count, 2)
        self.assertEqual(body["fleet"]["total_breakdowns"], 3)

    def test_status_change_updates_score(self):
        self.client.get("/v1/equipment/eq-a/score")
        resp = self.client.post("/v1/equipment/eq-a/status", json={"status": "breakdown"})
        self.assertEqual(resp.status_code, 201)
        score = self.client.get("/v1/equipment/eq-a/score").json()
        self.assertEqual(score["status"], "breakdown")
        self.assertEqual(self.source.fetch_count, 2)

    def test_unknown_equipment_score_is_404(self):
        resp = self.client.get("/v1/equipment/missing/score")
        self.assertEqual(resp.status_code, 404)

    def test_backend_failure_is_503(self):
        self.service.source = BrokenSource()
        resp = self.client.get("/v1/analytics/performance-metrics")
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json(), {"detail": "Failed to load metrics"})

    def test_trend_data_period(self):
        resp = self.client.get("/v1/analytics/trend-data", params={"period": "weekly"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["granularity"], "weekly")
        self.assertEqual(len(resp.json()["points"]), 12)

        self.assertEqual(self.client.get("/v1/analytics/trend-data").json()["granularity"], "monthly")
        self.assertEqual(self.client.get("/v1/analytics/trend-data", params={"period": "hourly"}).status_code, 422)

    def test_realtime_and_refresh(self):
        self.assertEqual(self.client.get("/v1/analytics/realtime").status_code, 200)
        resp = self.client.post("/v1/analytics/realtime/refresh")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["active_breakdowns"], 2)
        self.assertEqual(self.source.fetch_count, 2)

    def test_statistics_categories(self):
        resp = self.client.get("/v1/analytics/statistics")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual((body["category"], body["period"]), ("performance", "monthly"))
        self.assertEqual([r["equipment_id"] for r in body["data"]["equipment"]], ["eq-a", "eq-b"])
        self.assertEqual(body["data"]["overview"]["quality_index"], 90.0)

        resp = self.client.get("/v1/analytics/statistics", params={"category": "maintenance", "period": "weekly"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.json()["data"]["planning"]), 12)

        comprehensive = self.client.get("/v1/analytics/statistics", params={"category": "comprehensive"}).json()
        self.assertEqual(comprehensive["data"]["top_performers"][0]["equipment_id"], "eq-b")

        self.assertEqual(self.client.get("/v1/analytics/statistics", params={"category": "cost"}).status_code, 422)
        self.assertEqual(self.client.get("/v1/analytics/statistics", params={"period": "daily"}).status_code, 422)

    def test_statistics_refresh_after_breakdown_report(self):
        first = self.client.get("/v1/analytics/statistics").json()
        self.client.post("/v1/breakdown-reports", json={"equipment_id": "eq-b", "occurred_at": NOW.isoformat()})
        second = self.client.get("/v1/analytics/statistics").json()
        self.assertEqual(first["data"]["categories"][0]["breakdown_count"], 2)
        self.assertEqual(second["data"]["categories"][0]["breakdown_count"], 3)
        self.assertEqual(self.source.fetch_count, 2)

    def test_realtime_reflects_new_breakdown(self):
        self.assertEqual(self.client.get("/v1/analytics/realtime").json()["active_breakdowns"], 2)
        self.client.post("/v1/breakdown-reports", json={"equipment_id": "eq-b", "occurred_at": NOW.isoformat()})
        self.assertEqual(self.client.get("/v1/analytics/realtime").json()["active_breakdowns"], 3)

    def test_create_records(self):
        resp = self.client.post("/v1/equipment", json={"id": "eq-c", "equipment_number": "EQ-003"})
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(self.client.post("/v1/equipment", json={"id": "eq-c", "equipment_number": "X"}).status_code, 409)

        resp = self.client.post(
            "/v1/repair-reports",
            json={"equipment_id": "eq-a", "breakdown_id": "b1", "status": "completed",
                  "completed_at": NOW.isoformat()},
        )
        self.assertEqual(resp.status_code, 201)

        resp = self.client.post(
            "/v1/maintenance-schedules",
            json={"equipment_id": "eq-a", "scheduled_date": NOW.isoformat(), "type": "predictive"},
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["type"], "predictive")

        metrics = self.client.get("/v1/analytics/performance-metrics").json()
        self.assertEqual(metrics["total_equipment"], 3)
        self.assertEqual(metrics["total_repairs"], 1)

    def test_cache_stats_and_invalidate(self):
        self.client.get("/v1/analytics/dashboard")
        self.client.get("/v1/analytics/performance-metrics")
        self.client.get("/v1/analytics/realtime")

        stats = self.client.get("/v1/cache/stats").json()
        self.assertEqual(stats["size"], 3)
        self.assertEqual(stats["max_size"], 100)
        self.assertEqual(
            [e["key"] for e in stats["entries"]],
            ["dashboard-analytics", "dashboard-performance", "realtime-data"],
        )

        resp = self.client.post("/v1/cache/invalidate", json={"pattern": "dashboard-perf.*"})
        self.assertEqual(resp.json(), {"removed": 1})
        resp = self.client.post("/v1/cache/invalidate", json={"domain": "dashboard"})
        self.assertEqual(resp.json(), {"removed": 1})
        resp = self.client.post("/v1/cache/invalidate", json={"key": "realtime-data"})
        self.assertEqual(resp.json(), {"removed": 1})
        self.assertEqual(self.client.get("/v1/cache/stats").json()["size"], 0)

    def test_cache_invalidate_rejects_bad_requests(self):
        self.assertEqual(self.client.post("/v1/cache/invalidate", json={}).status_code, 400)
        both = {"key": "a", "pattern": "b"}
        self.assertEqual(self.client.post("/v1/cache/invalidate", json=both).status_code, 400)
        self.assertEqual(self.client.post("/v1/cache/invalidate", json={"pattern": "("}).status_code, 400)
        self.assertEqual(self.client.post("/v1/cache/invalidate", json={"domain": "inventory"}).status_code, 422)


if __name__ == "__main__":
    unittest.main()
