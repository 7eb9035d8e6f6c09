import unittest
from unittest.mock import patch

from trends.adapters.reddit import subreddit_for
from trends.cache import MemoryCache
from trends.errors import InvalidRequest
from trends.models import FetchMethod, FetchOutcome, SourceCategory, Subreddit, TimeRange, YouTubeChannel
from trends.resolver import SOURCE_LIST_KEY, ConfigResolver
from trends.settings_store import SettingsRepository, custom_source_id
from trends.sources import SourceCatalogue

from trends_testkit import NOW, TempDatabase, hours_ago, make_catalogue, make_content, make_source

CHANNEL_ID = "UCsBjURrPoezykLs9EqgamOA"
OTHER_CHANNEL_ID = "UCbfYPyITQ-7l4upoX8nvctg"


class ResolverTests(unittest.TestCase):
    def setUp(self):
        self.db = TempDatabase()
        self.cache = MemoryCache()
        self.feed_cache = MemoryCache(ttl_seconds=300)
        self.catalogue = make_catalogue(
            make_source("openai-blog", SourceCategory.AI_LABS, default_priority=5),
            make_source("hackernews", SourceCategory.COMMUNITY),
            make_source("lmsys", SourceCategory.LEADERBOARDS, enabled=False),
        )
        self.repository = SettingsRepository(self.db.engine, self.cache, self.feed_cache)
        self.resolver = ConfigResolver(self.repository, self.cache, self.catalogue)

    def tearDown(self):
        self.db.close()

    def test_defaults_come_from_catalogue(self):
        sources = self.resolver.get_effective_sources()
        self.assertEqual([s.id for s in sources.all], ["openai-blog", "hackernews", "lmsys"])
        self.assertEqual(sources.enabled_ids, ["openai-blog", "hackernews"])
        self.assertEqual(sources.active_categories, [SourceCategory.AI_LABS, SourceCategory.COMMUNITY])

        config = self.resolver.get_effective_config()
        self.assertEqual(config.theme, "dark")
        self.assertEqual(config.time_range, TimeRange.DAY)
        self.assertEqual(config.priorities["openai-blog"], 5)
        self.assertEqual(config.priorities["hackernews"], 3)

    def test_overrides_apply_and_invalidate_cached_view(self):
        self.resolver.get_effective_sources()
        self.assertIn(SOURCE_LIST_KEY, self.cache)

        self.repository.set_source_enabled("lmsys", True)
        self.repository.set_source_enabled("hackernews", False)
        self.assertEqual(self.repository.set_source_priority("hackernews", 9), 5)

        self.assertNotIn(SOURCE_LIST_KEY, self.cache)
        sources = self.resolver.get_effective_sources()
        self.assertEqual(sources.enabled_ids, ["openai-blog", "lmsys"])
        self.assertEqual(self.resolver.get_source("hackernews").effective_priority, 5)
        self.assertFalse(self.resolver.get_source("hackernews").as_source_config().enabled)

    def test_settings_write_clears_feed_cache(self):
        self.feed_cache.set("feed:all", {"items": []})
        self.repository.update_setting("boostKeywords", ["agents"])
        self.assertEqual(self.feed_cache.snapshot()["size"], 0)
        self.assertEqual(self.resolver.get_effective_config().boost_keywords, ["agents"])

    def test_write_during_resolution_is_not_cached_stale(self):
        read_rows = self.repository.source_rows

        def rows_then_concurrent_write():
            rows = read_rows()
            self.repository.set_source_enabled("hackernews", False)
            return rows

        with patch.object(self.repository, "source_rows", side_effect=rows_then_concurrent_write):
            stale = self.resolver.get_effective_sources()
        self.assertIn("hackernews", stale.enabled_ids)
        self.assertNotIn(SOURCE_LIST_KEY, self.cache)

        self.assertEqual(self.resolver.get_effective_sources().enabled_ids, ["openai-blog"])

    def test_write_during_config_resolution_is_not_cached_stale(self):
        read_setting = self.repository.get_setting

        def read_then_concurrent_write(key, default=None):
            value = read_setting(key, default)
            if key == "boostKeywords":
                self.repository.update_setting("boostKeywords", ["agents"])
            return value

        with patch.object(self.repository, "get_setting", side_effect=read_then_concurrent_write):
            self.assertEqual(self.resolver.get_effective_config().boost_keywords, [])
        self.assertEqual(self.resolver.get_effective_config().boost_keywords, ["agents"])

    def test_invalid_stored_time_range_falls_back(self):
        self.repository.update_setting("timeRange", "3y")
        self.assertEqual(self.resolver.get_effective_config().time_range, TimeRange.DAY)

    def test_load_all_settings_answers_missing_keys_without_query(self):
        self.repository.update_setting("theme", "light")
        self.repository.load_all_settings()
        with patch.object(self.db.engine, "connect", side_effect=AssertionError("unexpected query")):
            self.assertEqual(self.repository.get_setting("theme"), "light")
            self.assertEqual(self.repository.get_setting("boostKeywords", []), [])

    def test_custom_sources_are_merged(self):
        added = self.repository.add_custom_source(
            {"name": "Import AI", "feedUrl": "https://importai.substack.com/feed", "category": "newsletters", "priority": 4}
        )
        self.assertEqual(added.id, custom_source_id("https://importai.substack.com/feed"))
        resolved = self.resolver.get_source(added.id)
        self.assertTrue(resolved.is_custom)
        self.assertEqual(resolved.category, SourceCategory.NEWSLETTERS)
        self.assertEqual(resolved.effective_priority, 4)
        self.assertEqual(resolved.config.feed_url, "https://importai.substack.com/feed")

        self.repository.set_source_enabled(added.id, False)
        self.assertFalse(self.resolver.get_source(added.id).is_enabled)
        self.assertIsNone(self.repository.source_rows().get(added.id))

    def test_custom_source_validation(self):
        with self.assertRaises(InvalidRequest):
            self.repository.add_custom_source({"name": "Broken", "feedUrl": "not a url"})
        self.repository.add_custom_source({"name": "Feed", "feedUrl": "https://example.org/rss"})
        with self.assertRaises(InvalidRequest):
            self.repository.add_custom_source({"name": "Again", "feedUrl": "https://example.org/rss"})

    def test_delete_and_restore(self):
        self.repository.delete_source("hackernews")
        self.assertIsNone(self.resolver.get_source("hackernews"))
        self.assertEqual(self.resolver.get_effective_config().deleted_source_ids, ["hackernews"])
        self.repository.restore_source("hackernews")
        self.assertIsNotNone(self.resolver.get_source("hackernews"))

        custom = self.repository.add_custom_source({"name": "Feed", "feedUrl": "https://example.org/rss"})
        self.repository.delete_source(custom.id)
        self.assertEqual(self.repository.custom_sources(), [])
        self.assertEqual(self.repository.deleted_source_ids(), [])

    def test_sources_for_categories(self):
        ids = [s.id for s in self.resolver.sources_for_categories([SourceCategory.LEADERBOARDS, SourceCategory.AI_LABS])]
        self.assertEqual(ids, ["openai-blog"])
        ids = [
            s.id
            for s in self.resolver.sources_for_categories([SourceCategory.LEADERBOARDS], enabled_only=False)
        ]
        self.assertEqual(ids, ["lmsys"])


class FollowListTests(unittest.TestCase):
    def setUp(self):
        self.db = TempDatabase()
        self.cache = MemoryCache()
        reddit_ml = make_source(
            "reddit-ml",
            SourceCategory.COMMUNITY,
            method=FetchMethod.API,
            feed_url=None,
            url="https://www.reddit.com/r/MachineLearning/",
        )
        self.catalogue = SourceCatalogue(
            [make_source("openai-blog"), reddit_ml],
            youtube_channels=[YouTubeChannel(CHANNEL_ID, "Fireship")],
            subreddits=[Subreddit("MachineLearning"), Subreddit("ClaudeAI")],
        )
        self.repository = SettingsRepository(self.db.engine, self.cache)
        self.resolver = ConfigResolver(self.repository, self.cache, self.catalogue)

    def tearDown(self):
        self.db.close()

    def test_defaults_generate_sources(self):
        sources = self.resolver.get_effective_sources()
        by_id = {source.id: source for source in sources.all}
        self.assertEqual(list(by_id), ["openai-blog", "reddit-ml", f"youtube-channel-{CHANNEL_ID}", "reddit-claudeai"])

        channel = by_id[f"youtube-channel-{CHANNEL_ID}"]
        self.assertEqual(channel.origin, "youtube-channel")
        self.assertEqual(channel.config.method, FetchMethod.FEED)
        self.assertEqual(channel.config.feed_url, f"https://www.youtube.com/feeds/videos.xml?channel_id={CHANNEL_ID}")
        subreddit = by_id["reddit-claudeai"]
        self.assertEqual((subreddit.origin, subreddit.category), ("subreddit", SourceCategory.COMMUNITY))
        self.assertEqual(subreddit_for(subreddit.config), "ClaudeAI")
        self.assertTrue(subreddit.is_enabled)

        config = self.resolver.get_effective_config()
        self.assertEqual([c.name for c in config.youtube_channels], ["Fireship"])
        self.assertEqual([s.name for s in config.custom_subreddits], ["MachineLearning", "ClaudeAI"])

    def test_stored_lists_replace_defaults(self):
        self.resolver.get_effective_sources()
        self.repository.set_youtube_channels([{"channelId": OTHER_CHANNEL_ID, "name": " Two Minute Papers "}])
        self.repository.set_custom_subreddits([{"name": "r/LocalLLaMA"}, {"name": "localllama"}])

        ids = self.resolver.get_effective_sources().enabled_ids
        self.assertEqual(ids, ["openai-blog", "reddit-ml", f"youtube-channel-{OTHER_CHANNEL_ID}", "reddit-localllama"])
        self.assertEqual(self.resolver.get_effective_config().youtube_channels[0].name, "Two Minute Papers")

        self.repository.set_custom_subreddits([])
        self.assertEqual(self.resolver.custom_subreddits(), [])

    def test_generated_sources_toggle_and_delete_like_static_ones(self):
        generated = f"youtube-channel-{CHANNEL_ID}"
        self.repository.set_source_enabled(generated, False)
        self.repository.set_source_priority("reddit-claudeai", 5)
        self.assertFalse(self.resolver.get_source(generated).is_enabled)
        self.assertEqual(self.resolver.get_source("reddit-claudeai").effective_priority, 5)

        self.repository.delete_source("reddit-claudeai")
        self.assertIsNone(self.resolver.get_source("reddit-claudeai"))

    def test_invalid_follow_entries(self):
        with self.assertRaises(InvalidRequest):
            self.repository.set_youtube_channels([{"channelId": "not-a-channel", "name": "X"}])
        with self.assertRaises(InvalidRequest):
            self.repository.set_custom_subreddits([{"name": "has spaces"}])
        self.repository.update_setting("youtubeChannels", [{"channelId": "bad"}, {"channelId": CHANNEL_ID, "name": "Fireship"}])
        with self.assertLogs("trends.settings_store", level="WARNING"):
            channels = self.resolver.youtube_channels()
        self.assertEqual([c.channel_id for c in channels], [CHANNEL_ID])


class HealthTests(unittest.TestCase):
    def setUp(self):
        self.db = TempDatabase()
        self.repository = SettingsRepository(self.db.engine, MemoryCache())

    def tearDown(self):
        self.db.close()

    def test_success_resets_failure_streak(self):
        items = [make_content("hn", "1")]
        self.repository.record_health([FetchOutcome("hn", "HN", error="boom")], now=hours_ago(1))
        self.repository.record_health([FetchOutcome("hn", "HN", items=items)], now=NOW)
        record = self.repository.get_health()["hn"]
        self.assertEqual(record.consecutive_failures, 0)
        self.assertEqual(record.last_success_at, NOW)
        self.assertEqual(record.last_item_count, 1)
        self.assertIsNone(record.last_error)

    def test_empty_result_counts_as_failure(self):
        items = [make_content("hn", "1"), make_content("hn", "2")]
        self.repository.record_health([FetchOutcome("hn", "HN", items=items)], now=hours_ago(2))
        self.repository.record_health([FetchOutcome("hn", "HN")], now=hours_ago(1))
        with self.assertLogs("trends.settings_store", level="WARNING"):
            self.repository.record_health([FetchOutcome("hn", "HN", error="HTTP 503")], now=hours_ago(0.5))
            self.repository.record_health([FetchOutcome("hn", "HN", error="HTTP 503")], now=NOW)
        record = self.repository.get_health()["hn"]
        self.assertEqual(record.consecutive_failures, 3)
        self.assertEqual(record.last_error, "HTTP 503")
        self.assertEqual(record.last_item_count, 2)
        self.assertEqual(record.last_success_at, hours_ago(2))


if __name__ == "__main__":
    unittest.main()
