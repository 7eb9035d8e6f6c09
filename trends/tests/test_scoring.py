import unittest
from datetime import timedelta

from trends.models import Engagement, FeedMode, SourceCategory
from trends.scoring import (
    TIER_LOW_SIGNAL,
    TIER_NEWS,
    TIER_OFFICIAL,
    TrendingScorer,
    engagement_score,
    keyword_score,
    quality_baseline,
    recency_score,
    score_by_feed_mode,
    sort_ranked,
)
from trends.sentiment import SentimentAnalyzer

from trends_testkit import NOW, hours_ago, make_content


class EngagementScoreTests(unittest.TestCase):
    def test_baseline_tiers_for_sources_without_counters(self):
        self.assertEqual(engagement_score("openai-blog", None, SourceCategory.AI_LABS), TIER_OFFICIAL)
        self.assertEqual(engagement_score("arxiv-cs-ai", None, SourceCategory.DEV_PLATFORMS), TIER_NEWS)
        self.assertEqual(quality_baseline("lmsys", SourceCategory.LEADERBOARDS), TIER_LOW_SIGNAL)

    def test_platform_metrics_are_log_normalized(self):
        self.assertAlmostEqual(engagement_score("hackernews", Engagement(upvotes=999)), 0.5)
        self.assertAlmostEqual(engagement_score("hackernews", Engagement(upvotes=999, comments=999)), 1.0)

    def test_quality_ratio_boosts_but_caps_at_one(self):
        plain = engagement_score("github-trending", Engagement(stars=999))
        boosted = engagement_score("github-trending", Engagement(stars=999, forks=100))
        self.assertGreater(boosted, plain)
        self.assertLessEqual(engagement_score("youtube", Engagement(views=10**7, likes=10**6, comments=10**5)), 1.0)

    def test_platform_without_known_metric_uses_baseline(self):
        self.assertEqual(engagement_score("reddit-machinelearning", Engagement(views=5), SourceCategory.COMMUNITY), 0.35)


class TrendingScorerTests(unittest.TestCase):
    def setUp(self):
        self.scorer = TrendingScorer()

    def test_score_composition(self):
        item = make_content("openai-blog", "a", published_at=NOW)
        score, matched = self.scorer.score_item(item, priority=5, now=NOW, category=SourceCategory.AI_LABS)
        self.assertEqual(score, 66.5)
        self.assertEqual(matched, [])

    def test_scores_stay_in_range(self):
        item = make_content("hackernews", "a", engagement=Engagement(upvotes=10**6, comments=10**6), title="agents")
        score, _ = self.scorer.score_item(item, priority=99, boost_keywords=["agents"], velocity=10**6, now=NOW)
        self.assertLessEqual(score, 100.0)
        old = make_content("lmsys", "b", published_at=NOW - timedelta(days=30))
        score, _ = self.scorer.score_item(old, priority=-3, now=NOW)
        self.assertGreaterEqual(score, 0.0)

    def test_boost_keyword_raises_rank(self):
        plain = make_content("openai-blog", "plain", title="Quarterly update")
        boosted = make_content("openai-blog", "boosted", title="New agents toolkit")
        ranked = self.scorer.rank([plain, boosted], {"openai-blog": 3}, boost_keywords=["agents"], now=NOW)
        self.assertEqual(ranked[0].id, "openai-blog-boosted")
        self.assertEqual(ranked[0].matched_keywords, ["agents"])
        self.assertIsNone(ranked[1].matched_keywords)

    def test_keyword_match_is_case_insensitive_and_checks_tags(self):
        item = make_content("src", "a", title="Release notes", tags=["Robotics"])
        score, matched = keyword_score(item, ["robotics", "agents"])
        self.assertEqual(matched, ["robotics"])
        self.assertEqual(score, 1.0)

    def test_recency_decays(self):
        self.assertEqual(recency_score(NOW, NOW), 1.0)
        self.assertGreater(recency_score(hours_ago(1), NOW), recency_score(hours_ago(24), NOW))

    def test_ties_break_on_date_then_id(self):
        a = make_content("src", "b", published_at=hours_ago(1), trending_score=50.0)
        b = make_content("src", "a", published_at=hours_ago(1), trending_score=50.0)
        c = make_content("src", "c", published_at=NOW, trending_score=50.0)
        self.assertEqual([i.id for i in sort_ranked([a, b, c])], ["src-c", "src-a", "src-b"])


class FeedModeTests(unittest.TestCase):
    def setUp(self):
        self.items = [
            make_content("reddit-ml", str(i), published_at=hours_ago(i), engagement=Engagement(upvotes=10 ** (i + 1)))
            for i in range(6)
        ]

    def test_top_orders_by_engagement(self):
        ranked = score_by_feed_mode(self.items, {}, FeedMode.TOP, now=NOW)
        self.assertEqual(ranked[0].id, "reddit-ml-5")

    def test_hot_blends_recency(self):
        fresh_small = make_content("reddit-ml", "fresh", published_at=NOW, engagement=Engagement(upvotes=100))
        stale_big = make_content("reddit-ml", "stale", published_at=NOW - timedelta(days=5), engagement=Engagement(upvotes=300))
        ranked = score_by_feed_mode([stale_big, fresh_small], {}, FeedMode.HOT, now=NOW)
        self.assertEqual(ranked[0].id, "reddit-ml-fresh")

    def test_rising_penalizes_already_popular_items(self):
        velocities = {item.id: 1000.0 for item in self.items}
        ranked = score_by_feed_mode(self.items, velocities, FeedMode.RISING, now=NOW)
        scores = {item.id: item.trending_score for item in ranked}
        self.assertLess(scores["reddit-ml-5"], scores["reddit-ml-4"])
        self.assertEqual(ranked[0].velocity_score, 1000.0)

    def test_items_without_engagement_get_floor(self):
        ranked = score_by_feed_mode([make_content("blog", "a")], {}, FeedMode.TOP, now=NOW)
        self.assertEqual(ranked[0].trending_score, 25.0)


class SentimentTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.analyzer = SentimentAnalyzer()

    def test_labels(self):
        self.assertEqual(self.analyzer.classify("This is a wonderful, amazing release")[0], "positive")
        self.assertEqual(self.analyzer.classify("Terrible outage, awful failure")[0], "negative")
        self.assertEqual(self.analyzer.classify(""), ("neutral", 0.5))

    def test_scores_are_rescaled(self):
        _, score = self.analyzer.classify("Great results")
        self.assertTrue(0.5 < score <= 1.0)

    def test_summary(self):
        items = [
            make_content("a", "1", sentiment="positive", sentiment_score=0.9),
            make_content("a", "2", sentiment="negative", sentiment_score=0.1),
            make_content("a", "3"),
        ]
        summary = SentimentAnalyzer.summarize(items)
        self.assertEqual(summary["positive_count"], 1)
        self.assertEqual(summary["negative_count"], 1)
        self.assertEqual(summary["average_score"], 0.5)
        self.assertEqual(summary["total_count"], 2)


if __name__ == "__main__":
    unittest.main()
