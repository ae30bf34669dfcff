import os
import unittest

from pydantic import ValidationError

from plantwatch.config import Settings


class TestConfig(unittest.TestCase):
    def _with_env(self, **env):
        previous = {k: os.environ.get(k) for k in env}
        os.environ.update(env)
        return previous

    def _restore(self, previous):
        for key, value in previous.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    def test_settings_defaults(self):
        previous = os.environ.pop("PLANTWATCH_DASHBOARD_TTL_SECONDS", None)
        try:
            s = Settings()
            self.assertEqual(s.dashboard_ttl_seconds, 240.0)
            self.assertEqual(s.realtime_ttl_seconds, 30.0)
            self.assertEqual(s.cache_key_prefix, "plantwatch:cache:")
        finally:
            if previous is not None:
                os.environ["PLANTWATCH_DASHBOARD_TTL_SECONDS"] = previous

    def test_settings_env_override(self):
        previous = self._with_env(PLANTWATCH_RECORD_SOURCE=" Postgres ", PLANTWATCH_REALTIME_TTL_SECONDS="5")
        try:
            s = Settings()
            self.assertEqual(s.record_source, "postgres")
            self.assertEqual(s.realtime_ttl_seconds, 5.0)
        finally:
            self._restore(previous)

    def test_non_positive_ttl_rejected(self):
        previous = self._with_env(PLANTWATCH_DASHBOARD_TTL_SECONDS="0")
        try:
            with self.assertRaises(ValidationError):
                Settings()
        finally:
            self._restore(previous)

    def test_direct_values_validated(self):
        with self.assertRaises(ValidationError):
            Settings(sweep_interval_seconds=-1)
        self.assertEqual(Settings(metrics_period_days=7).metrics_period_days, 7)

    def test_trend_periods_must_be_at_least_one(self):
        previous = self._with_env(PLANTWATCH_TREND_PERIODS="0")
        try:
            with self.assertRaises(ValidationError):
                Settings()
        finally:
            self._restore(previous)
        self.assertIsNone(Settings(trend_periods=None).trend_periods)
        self.assertEqual(Settings(trend_periods=3).trend_periods, 3)

    def test_cache_capacity_and_statistics_ttl(self):
        s = Settings()
        self.assertEqual(s.cache_max_entries, 100)
        self.assertEqual(s.statistics_ttl_seconds, 600.0)
        with self.assertRaises(ValidationError):
            Settings(cache_max_entries=0)


if __name__ == "__main__":
    unittest.main()
