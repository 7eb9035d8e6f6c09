import os
import unittest
from pathlib import Path
from unittest.mock import patch

from trends.rate_limiter import RateLimiter, SlidingWindowLimiter
from trends.settings import load_settings


class LoadSettingsTests(unittest.TestCase):
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings()
        self.assertEqual(settings.database_url, "sqlite:///trends.db")
        self.assertEqual(settings.adapter_timeout, 10)
        self.assertEqual(settings.retention_days, 30)
        self.assertEqual(settings.log_level, "INFO")
        self.assertIsNone(settings.sources_file)

    def test_environment_overrides(self):
        env = {
            "TRENDS_DATABASE_URL": "postgresql://u:p@db/trends",
            "TRENDS_ADAPTER_TIMEOUT": "20",
            "TRENDS_MAX_WORKERS": "zero",
            "TRENDS_RETENTION_DAYS": "-4",
            "TRENDS_SOURCES_FILE": "/etc/trends/sources.yaml",
            "TRENDS_LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env, clear=True), self.assertLogs("trends.settings", level="WARNING"):
            settings = load_settings()
        self.assertEqual(settings.database_url, "postgresql://u:p@db/trends")
        self.assertEqual(settings.adapter_timeout, 20)
        self.assertEqual(settings.max_workers, 16)
        self.assertEqual(settings.retention_days, 30)
        self.assertEqual(settings.sources_file, Path("/etc/trends/sources.yaml"))
        self.assertEqual(settings.log_level, "DEBUG")


class SlidingWindowLimiterTests(unittest.TestCase):
    def test_window_budget(self):
        clock = {"now": 0.0}
        limiter = SlidingWindowLimiter(2, 60.0, clock=lambda: clock["now"])
        self.assertEqual(limiter.try_acquire("a"), (True, 0))
        self.assertEqual(limiter.try_acquire("a"), (True, 0))
        allowed, retry_after = limiter.try_acquire("a")
        self.assertFalse(allowed)
        self.assertEqual(retry_after, 60)
        self.assertTrue(limiter.try_acquire("b")[0])
        clock["now"] = 60.0
        self.assertTrue(limiter.try_acquire("a")[0])

    def test_zero_disables_limit(self):
        limiter = SlidingWindowLimiter(0)
        self.assertTrue(all(limiter.try_acquire("a")[0] for _ in range(100)))


class RateLimiterTests(unittest.TestCase):
    def test_waits_between_hits_on_same_key(self):
        waits = []
        limiter = RateLimiter(default_interval=10.0, sleep=waits.append)
        limiter.wait("medium.com")
        limiter.wait("medium.com")
        limiter.wait("other.com")
        self.assertEqual(len(waits), 1)
        self.assertGreater(waits[0], 9.0)

    def test_unconfigured_keys_do_not_wait(self):
        waits = []
        limiter = RateLimiter(sleep=waits.append)
        limiter.configure("slow.example", 5.0)
        limiter.wait("fast.example")
        limiter.wait("fast.example")
        self.assertEqual(waits, [])


if __name__ == "__main__":
    unittest.main()
