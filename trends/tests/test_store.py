import unittest
from datetime import timedelta

from sqlalchemy import select

from trends.db import content_items_table
from trends.models import Engagement, TimeRange
from trends.store import ContentStore, per_source_cap

from trends_testkit import NOW, TempDatabase, hours_ago, make_content, register


class StaticSentiment:
    def __init__(self):
        self.calls = 0

    def classify(self, text):
        self.calls += 1
        return "positive", 0.8


class ContentStoreTests(unittest.TestCase):
    def setUp(self):
        self.db = TempDatabase()
        register(self.db.engine, "openai-blog", "hackernews")
        self.sentiment = StaticSentiment()
        self.store = ContentStore(self.db.engine, sentiment=self.sentiment)

    def tearDown(self):
        self.db.close()

    def test_upsert_is_idempotent_and_updates_fields(self):
        item = make_content("openai-blog", "a", title="First title", engagement=Engagement(likes=3))
        self.assertEqual(self.store.upsert([item]), 1)
        updated = make_content("openai-blog", "a", title="Second title", engagement=Engagement(likes=9))
        self.store.upsert([updated])

        self.assertEqual(self.store.count(), 1)
        stored = self.store.get_items(["openai-blog-a"])[0]
        self.assertEqual(stored.title, "Second title")
        self.assertEqual(stored.engagement, Engagement(likes=9))
        self.assertEqual(stored.published_at, NOW)
        self.assertEqual(stored.sentiment, "positive")

    def test_duplicate_ids_in_one_call_keep_last(self):
        first = make_content("openai-blog", "a", title="old")
        second = make_content("openai-blog", "a", title="new")
        self.assertEqual(self.store.upsert([first, second]), 1)
        self.assertEqual(self.store.get_items(["openai-blog-a"])[0].title, "new")

    def test_failed_batch_does_not_block_other_batches(self):
        store = ContentStore(self.db.engine, batch_size=2)
        items = [
            make_content("openai-blog", "a"),
            make_content("openai-blog", "b"),
            make_content("unknown-source", "c"),
            make_content("hackernews", "d"),
        ]
        with self.assertLogs("trends.store", level="ERROR"):
            written = store.upsert(items)
        self.assertEqual(written, 2)
        self.assertEqual(store.count(), 2)

    def test_sentiment_is_assigned_once(self):
        item = make_content("openai-blog", "a", sentiment="negative", sentiment_score=0.1)
        self.store.upsert([item])
        self.assertEqual(self.sentiment.calls, 0)
        self.assertEqual(self.store.get_items(["openai-blog-a"])[0].sentiment, "negative")

    def test_query_respects_time_range_and_order(self):
        self.store.upsert(
            [
                make_content("openai-blog", "old", published_at=hours_ago(30)),
                make_content("openai-blog", "new", published_at=hours_ago(1)),
                make_content("hackernews", "mid", published_at=hours_ago(5)),
            ]
        )
        items = self.store.query_by_time_range(["openai-blog", "hackernews"], TimeRange.DAY, now=NOW)
        self.assertEqual([item.id for item in items], ["openai-blog-new", "hackernews-mid"])

    def test_wider_time_range_returns_a_superset(self):
        ages = [0.5, 6, 11.5, 20, 30, 47, 100, 160]
        self.store.upsert([make_content("openai-blog", f"a{i}", published_at=hours_ago(age)) for i, age in enumerate(ages)])
        self.store.upsert([make_content("hackernews", f"b{i}", published_at=hours_ago(age + 0.2)) for i, age in enumerate(ages)])
        sources = ["openai-blog", "hackernews"]
        ranges = [TimeRange.HOUR, TimeRange.HALF_DAY, TimeRange.DAY, TimeRange.TWO_DAYS, TimeRange.WEEK]

        results = {r: {item.id for item in self.store.query_by_time_range(sources, r, now=NOW)} for r in ranges}

        for narrow, wide in zip(ranges, ranges[1:]):
            self.assertTrue(results[narrow] <= results[wide], f"{narrow.value} not within {wide.value}")
        self.assertEqual(len(results[TimeRange.HOUR]), 2)
        self.assertEqual(len(results[TimeRange.HALF_DAY]), 6)
        self.assertEqual(len(results[TimeRange.WEEK]), 16)

    def test_per_source_cap_limits_chatty_sources(self):
        register(self.db.engine, "reddit-ml")
        store = ContentStore(self.db.engine, max_items_per_source=1)
        store.upsert([make_content("hackernews", str(i), published_at=hours_ago(i * 0.1)) for i in range(10)])
        store.upsert([make_content("openai-blog", "only", published_at=hours_ago(3))])
        store.upsert([make_content("reddit-ml", "post", published_at=hours_ago(4))])

        items = store.query_by_time_range(["hackernews", "openai-blog", "reddit-ml"], TimeRange.DAY, limit=3, now=NOW)

        # cap is ceil(3 / 3 * 2) = 2 rows per source
        self.assertEqual([item.id for item in items], ["hackernews-0", "hackernews-1", "openai-blog-only"])

    def test_per_source_cap_formula(self):
        self.assertEqual(per_source_cap(2000, 10), 400)
        self.assertEqual(per_source_cap(100, 10), 50)
        self.assertEqual(per_source_cap(100, 0), 50)

    def test_sweep_removes_items_past_retention(self):
        stale = make_content("openai-blog", "stale", fetched_at=NOW - timedelta(days=31))
        fresh = make_content("openai-blog", "fresh")
        self.store.upsert([stale, fresh])
        self.assertEqual(self.store.sweep(30, now=NOW), 1)
        with self.db.engine.connect() as conn:
            ids = [row.id for row in conn.execute(select(content_items_table.c.id))]
        self.assertEqual(ids, ["openai-blog-fresh"])


if __name__ == "__main__":
    unittest.main()
