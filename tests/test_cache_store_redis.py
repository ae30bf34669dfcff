import unittest
from datetime import datetime, timezone

from plantwatch.cache.base import CacheEntry
from plantwatch.cache.layer import CacheLayer
from plantwatch.cache.redis import RedisCacheStore
from plantwatch.domain import Granularity, TrendPoint, TrendSeries


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.expires = {}

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.expires[key] = ttl

    def get(self, key):
        return self.store.get(key)

    def delete(self, key):
        existed = key in self.store
        self.store.pop(key, None)
        self.expires.pop(key, None)
        return int(existed)

    def scan_iter(self, pattern):
        prefix = pattern.rstrip("*")
        return [k.encode("utf-8") for k in list(self.store.keys()) if k.startswith(prefix)]


class BrokenRedis(FakeRedis):
    def get(self, key):
        raise ConnectionError("redis down")


class TestRedisCacheStore(unittest.TestCase):
    def test_roundtrip_uses_prefix_and_setex(self):
        client = FakeRedis()
        store = RedisCacheStore(client, prefix="pw:")
        store.set(CacheEntry(key="dashboard-analytics", value={"total": 42}, created_at=10.0, ttl_seconds=240))

        self.assertIn("pw:dashboard-analytics", client.store)
        self.assertEqual(client.expires["pw:dashboard-analytics"], 240)
        entry = store.get("dashboard-analytics")
        self.assertEqual(entry.value, {"total": 42})
        self.assertEqual(entry.created_at, 10.0)

    def test_fractional_ttl_rounds_up(self):
        client = FakeRedis()
        store = RedisCacheStore(client, prefix="pw:")
        store.set(CacheEntry(key="k", value=1, created_at=0.0, ttl_seconds=0.2))
        self.assertEqual(client.expires["pw:k"], 1)

    def test_pydantic_values_survive_pickling(self):
        store = RedisCacheStore(FakeRedis())
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        series = TrendSeries(
            granularity=Granularity.MONTHLY,
            points=[TrendPoint(period="2025-01", start=start, end=start.replace(month=2), breakdowns=3)],
        )
        store.set(CacheEntry(key="dashboard-trend-monthly", value=series, created_at=0.0, ttl_seconds=60))
        self.assertEqual(store.get("dashboard-trend-monthly").value, series)

    def test_keys_strip_prefix_and_clear(self):
        client = FakeRedis()
        client.store["other:keep"] = b"x"
        store = RedisCacheStore(client, prefix="pw:")
        for key in ("a", "b"):
            store.set(CacheEntry(key=key, value=key, created_at=0.0, ttl_seconds=60))
        self.assertEqual(sorted(store.keys()), ["a", "b"])
        self.assertEqual(len(store.entries()), 2)
        self.assertEqual(store.clear(), 2)
        self.assertEqual(list(client.store), ["other:keep"])

    def test_delete_reports_removal(self):
        store = RedisCacheStore(FakeRedis())
        store.set(CacheEntry(key="k", value=1, created_at=0.0, ttl_seconds=60))
        self.assertTrue(store.delete("k"))
        self.assertFalse(store.delete("k"))

    def test_read_failure_is_a_miss(self):
        store = RedisCacheStore(BrokenRedis())
        self.assertIsNone(store.get("k"))

    def test_unreadable_payload_is_a_miss(self):
        client = FakeRedis()
        client.store["plantwatch:cache:k"] = b"not a pickle"
        store = RedisCacheStore(client)
        self.assertIsNone(store.get("k"))

    def test_cache_layer_over_redis_store(self):
        now = [0.0]
        cache = CacheLayer(RedisCacheStore(FakeRedis()), clock=lambda: now[0], start_sweeper=False)
        calls = []
        compute = lambda: calls.append(1) or len(calls)
        self.assertEqual(cache.get_or_compute("dashboard-equipment-score-1", compute, 30), 1)
        self.assertEqual(cache.get_or_compute("dashboard-equipment-score-1", compute, 30), 1)
        self.assertEqual(cache.invalidate_related("equipment"), 1)
        self.assertEqual(cache.get_or_compute("dashboard-equipment-score-1", compute, 30), 2)
        now[0] = 31.0
        self.assertEqual(cache.sweep_expired(), 1)


if __name__ == "__main__":
    unittest.main()
