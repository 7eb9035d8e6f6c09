import unittest
from unittest.mock import patch

from trends.cache import MemoryCache
from trends.freshness import FreshnessTracker
from trends.models import Engagement, FetchMethod, SourceCategory
from trends.orchestrator import FreshnessOrchestrator
from trends.progress import RefreshProgress
from trends.settings_store import SettingsRepository
from trends.store import ContentStore
from trends.velocity import VelocityTracker

from trends_testkit import FakeAdapter, TempDatabase, make_content, make_source


class OrchestratorTests(unittest.TestCase):
    def setUp(self):
        self.db = TempDatabase()
        engine = self.db.engine
        self.store = ContentStore(engine)
        self.freshness = FreshnessTracker(engine)
        self.repository = SettingsRepository(engine, MemoryCache())
        self.velocity = VelocityTracker(engine)
        self.progress = RefreshProgress()
        self.adapters = {}
        self.orchestrator = FreshnessOrchestrator(
            self.store,
            self.freshness,
            self.repository,
            self.velocity,
            progress=self.progress,
            adapter_factory=lambda source, env: self.adapters.get(source.id),
            adapter_timeout=0.5,
            env={},
        )
        self.hn = make_source("hackernews", SourceCategory.COMMUNITY, method=FetchMethod.API)
        self.blog = make_source("openai-blog", SourceCategory.AI_LABS)

    def tearDown(self):
        self.db.close()

    def _adapter(self, source, items=None, **kwargs):
        adapter = FakeAdapter(source, items, **kwargs)
        self.adapters[source.id] = adapter
        return adapter

    def test_cold_start_fetches_and_stores(self):
        hn = self._adapter(self.hn, [make_content("hackernews", "1", engagement=Engagement(upvotes=5))])
        blog = self._adapter(self.blog, [make_content("openai-blog", "1")])

        result = self.orchestrator.ensure_fresh([self.hn, self.blog], session_id="s1")

        self.assertEqual((result.stale_count, result.fresh_count, result.failures), (2, 0, []))
        self.assertEqual((hn.calls, blog.calls), (1, 1))
        self.assertEqual(self.store.count(), 2)
        self.assertEqual(self.velocity.bulk_velocities(["hackernews-1"]), {"hackernews-1": 0.0})
        self.assertEqual(self.progress.snapshot("s1")["status"], "done")

    def test_fresh_sources_are_not_fetched_again(self):
        hn = self._adapter(self.hn, [make_content("hackernews", "1")])
        self.orchestrator.ensure_fresh([self.hn])
        result = self.orchestrator.ensure_fresh([self.hn])
        self.assertEqual((result.stale_count, result.fresh_count), (0, 1))
        self.assertEqual(hn.calls, 1)

        self.orchestrator.ensure_fresh([self.hn], force=True)
        self.assertEqual(hn.calls, 2)

    def test_partial_failure_keeps_other_sources(self):
        self._adapter(self.hn, error=RuntimeError("HTTP 503 for https://hn?token=abc"))
        self._adapter(self.blog, [make_content("openai-blog", "1")])

        with self.assertLogs("trends.orchestrator", level="WARNING"):
            result = self.orchestrator.ensure_fresh([self.hn, self.blog])

        self.assertEqual(len(result.failures), 1)
        self.assertEqual(result.failures[0].source, "Hackernews")
        self.assertNotIn("abc", result.failures[0].error)
        self.assertEqual(self.store.count(), 1)
        fetched = self.freshness.last_fetched(["hackernews", "openai-blog"])
        self.assertIsNone(fetched["hackernews"])
        self.assertIsNotNone(fetched["openai-blog"])
        health = self.repository.get_health()
        self.assertEqual(health["hackernews"].consecutive_failures, 1)
        self.assertEqual(health["openai-blog"].last_item_count, 1)

    def test_slow_adapter_times_out(self):
        self._adapter(self.hn, [make_content("hackernews", "1")], delay=2.0)
        self._adapter(self.blog, [make_content("openai-blog", "1")])

        with self.assertLogs("trends.orchestrator", level="WARNING"):
            result = self.orchestrator.ensure_fresh([self.hn, self.blog])

        self.assertEqual([f.error for f in result.failures], ["Adapter timeout"])
        self.assertEqual(self.store.count(), 1)

    def test_queued_calls_get_their_own_timeout(self):
        self.orchestrator.max_workers = 2
        blogs = [make_source(f"blog-{i}", SourceCategory.AI_LABS) for i in range(4)]
        for source in blogs:
            self._adapter(source, [make_content(source.id, "1")], delay=0.3)

        result = self.orchestrator.ensure_fresh(blogs)

        self.assertEqual(result.failures, [])
        self.assertEqual(self.store.count(), 4)

    def test_hung_workers_do_not_block_queued_calls_forever(self):
        self.orchestrator.max_workers = 1
        self._adapter(self.hn, [make_content("hackernews", "1")], delay=3.0)
        self._adapter(self.blog, [make_content("openai-blog", "1")])

        with self.assertLogs("trends.orchestrator", level="WARNING"):
            result = self.orchestrator.ensure_fresh([self.hn, self.blog])

        self.assertEqual(sorted(f.error for f in result.failures), ["Adapter timeout", "Adapter timeout"])

    def test_sources_without_adapters_are_skipped(self):
        result = self.orchestrator.ensure_fresh([self.hn])
        self.assertEqual((result.stale_count, result.failures), (1, []))
        self.assertEqual(self.store.count(), 0)

    def test_empty_result_still_marks_fetched(self):
        self._adapter(self.blog, [])
        self.orchestrator.ensure_fresh([self.blog])
        self.assertIsNotNone(self.freshness.last_fetched(["openai-blog"])["openai-blog"])
        self.assertEqual(self.repository.get_health()["openai-blog"].last_error, "Returned 0 items")

    def test_duplicate_items_across_adapters_are_deduplicated(self):
        shared = make_content("openai-blog", "1")
        self._adapter(self.blog, [shared, shared])
        with patch.object(self.store, "upsert", wraps=self.store.upsert) as upsert:
            self.orchestrator.ensure_fresh([self.blog, self.blog])
        self.assertEqual(len(upsert.call_args[0][0]), 1)

    def test_background_failure_does_not_break_the_pass(self):
        self._adapter(self.blog, [make_content("openai-blog", "1")])
        with patch.object(self.repository, "record_health", side_effect=RuntimeError("locked")):
            with self.assertLogs("trends.orchestrator", level="ERROR"):
                result = self.orchestrator.ensure_fresh([self.blog])
        self.assertEqual(result.failures, [])


if __name__ == "__main__":
    unittest.main()
