import unittest

from trends.errors import InvalidRequest
from trends.models import Engagement, FetchMethod, SourceCategory

from trends_testkit import FakeAdapter, TempDatabase, build_context, live_content, make_catalogue, make_source


class FeedServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = TempDatabase()
        self.blog = make_source("openai-blog", SourceCategory.AI_LABS, default_priority=4)
        self.news = make_source("techcrunch-ai", SourceCategory.NEWS)
        self.hn = make_source("hackernews", SourceCategory.COMMUNITY, method=FetchMethod.API)
        self.adapters = {
            "openai-blog": FakeAdapter(
                self.blog,
                [live_content("openai-blog", "1", 1, title="Model release"), live_content("openai-blog", "2", 30)],
            ),
            "techcrunch-ai": FakeAdapter(
                self.news,
                [live_content("techcrunch-ai", "1", 2, title="Funding round"), live_content("techcrunch-ai", "2", 3, title="Robotics agents startup")],
            ),
            "hackernews": FakeAdapter(
                self.hn,
                [live_content("hackernews", "1", 0.5, title="Show HN", engagement=Engagement(upvotes=500, comments=120))],
            ),
        }
        self.context = build_context(self.db, make_catalogue(self.blog, self.news, self.hn), self.adapters)
        self.service = self.context.feed

    def tearDown(self):
        self.context.close()
        self.db.close()

    def test_discover_validates_parameters(self):
        with self.assertRaises(InvalidRequest) as ctx:
            self.service.discover(None, "24h")
        self.assertIn("news", ctx.exception.valid_values)
        with self.assertRaises(InvalidRequest) as ctx:
            self.service.discover("news,podcasts", "24h")
        self.assertIn("podcasts", ctx.exception.message)
        with self.assertRaises(InvalidRequest):
            self.service.discover("news", None)
        with self.assertRaises(InvalidRequest) as ctx:
            self.service.discover("news", "2w")
        self.assertEqual(ctx.exception.valid_values, ["1h", "12h", "24h", "48h", "7d"])
        for bad in ("0", "-1", "ten"):
            with self.assertRaises(InvalidRequest):
                self.service.discover("news", "24h", limit=bad)
        with self.assertRaises(InvalidRequest):
            self.service.discover("news", "24h", offset="-5")
        self.assertEqual(sum(adapter.calls for adapter in self.adapters.values()), 0)

    def test_discover_fetches_ranks_and_caches(self):
        payload = self.service.discover("ai-labs,news", "24h")
        meta = payload["meta"]
        self.assertEqual(meta["totalItems"], 3)
        self.assertEqual(meta["categories"], {"ai-labs": 1, "news": 2})
        self.assertEqual(meta["timeRange"], "24h")
        scores = [item["trendingScore"] for item in payload["items"]]
        self.assertEqual(scores, sorted(scores, reverse=True))
        self.assertTrue(all(item["publishedAt"].endswith("Z") for item in payload["items"]))
        self.assertNotIn("failures", payload)

        again = self.service.discover("news,ai-labs", "24h")
        self.assertEqual(again["items"], payload["items"])
        self.assertEqual(self.adapters["openai-blog"].calls, 1)
        self.assertEqual(self.adapters["hackernews"].calls, 0)

    def test_discover_pagination(self):
        payload = self.service.discover("ai-labs,news", "24h", limit="2", offset="1")
        self.assertEqual(payload["meta"]["returnedItems"], 2)
        self.assertEqual(payload["meta"]["offset"], 1)
        full = self.service.discover("ai-labs,news", "24h")
        self.assertEqual(payload["items"], full["items"][1:3])

    def test_boost_keyword_moves_item_up(self):
        before = [item["id"] for item in self.service.discover("news", "24h")["items"]]
        self.assertEqual(before[0], "techcrunch-ai-1")

        self.context.repository.update_setting("boostKeywords", ["agents"])
        after = [item["id"] for item in self.service.discover("news", "24h")["items"]]
        self.assertEqual(after[0], "techcrunch-ai-2")

    def test_discover_reports_failures(self):
        self.adapters["techcrunch-ai"].error = RuntimeError("HTTP 500 upstream")
        self.adapters["techcrunch-ai"].items = []
        payload = self.service.discover("news,ai-labs", "24h")
        self.assertEqual(payload["failures"], [{"source": "Techcrunch Ai", "error": "HTTP 500 upstream"}])
        self.assertEqual(payload["meta"]["categories"]["news"], 0)

    def test_feed_ranked_by_default_and_cached(self):
        first = self.service.feed(time_range="24h")
        self.assertTrue(first["success"])
        self.assertEqual(first["count"], 4)
        self.assertFalse(first["cached"])
        self.assertIsNone(first["mode"])
        self.assertEqual(first["sentiment"]["total_count"], 4)
        self.assertIn(first["items"][0]["category"], {"ai-labs", "news", "community"})

        second = self.service.feed(time_range="24h")
        self.assertTrue(second["cached"])
        self.assertEqual([i["id"] for i in second["items"]], [i["id"] for i in first["items"]])
        self.assertEqual(self.adapters["hackernews"].calls, 1)

    def test_feed_uses_stored_time_range(self):
        self.context.repository.update_setting("timeRange", "7d")
        payload = self.service.feed()
        self.assertEqual(payload["count"], 5)

    def test_feed_filters_and_modes(self):
        community = self.service.feed(category="community", time_range="24h", mode="hot")
        self.assertEqual([item["sourceId"] for item in community["items"]], ["hackernews"])
        self.assertEqual(community["mode"], "hot")
        self.assertEqual(community["items"][0]["engagement"], {"upvotes": 500, "comments": 120})

        single = self.service.feed(source_id="openai-blog", time_range="48h", limit="1")
        self.assertEqual(single["count"], 1)
        self.assertEqual(single["items"][0]["sourceId"], "openai-blog")

    def test_feed_validation(self):
        with self.assertRaises(InvalidRequest) as ctx:
            self.service.feed(mode="viral")
        self.assertEqual(ctx.exception.valid_values, ["hot", "rising", "top"])
        with self.assertRaises(InvalidRequest):
            self.service.feed(category="sports")
        with self.assertRaises(InvalidRequest):
            self.service.feed(time_range="1y")

    def test_disabled_sources_are_not_fetched(self):
        self.context.repository.set_source_enabled("hackernews", False)
        payload = self.service.feed(time_range="24h")
        self.assertNotIn("hackernews", {item["sourceId"] for item in payload["items"]})
        self.assertEqual(self.adapters["hackernews"].calls, 0)

    def test_session_progress_is_reported(self):
        self.service.feed(time_range="24h", session_id="abc")
        snapshot = self.context.progress.snapshot("abc")
        self.assertEqual(snapshot["status"], "done")
        self.assertEqual(snapshot["total"], 3)
        self.assertEqual(snapshot["percent"], 100)


if __name__ == "__main__":
    unittest.main()
