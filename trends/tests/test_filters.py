import unittest
from datetime import timedelta, timezone, datetime

from trends.filters import clean_description, ensure_utc, filter_by_time_range, filter_relevant, is_ai_relevant, parse_iso
from trends.models import TimeRange

from trends_testkit import NOW, hours_ago, make_content


class RelevanceTests(unittest.TestCase):
    def test_short_tokens_match_on_word_boundaries_only(self):
        self.assertTrue(is_ai_relevant("New AI model tops the charts"))
        self.assertTrue(is_ai_relevant("Benchmarking LLMs on long context"))
        self.assertFalse(is_ai_relevant("The mayor said the trail is closed"))
        self.assertFalse(is_ai_relevant("Styling html tables"))

    def test_phrases_match_as_substrings(self):
        self.assertTrue(is_ai_relevant("Fine-tuning a Transformer for code"))
        self.assertTrue(is_ai_relevant("Why Machine Learning teams adopt Rust"))

    def test_empty_text_is_not_relevant(self):
        self.assertFalse(is_ai_relevant(""))

    def test_filter_relevant_checks_title_and_description(self):
        items = [
            make_content("hn", "a", title="Show HN: a tiny database"),
            make_content("hn", "b", title="Show HN: a tiny tool", description="Runs a local LLM"),
            make_content("hn", "c", title="Gardening tips", description="Spring planting"),
        ]
        self.assertEqual([item.id for item in filter_relevant(items)], ["hn-b"])


class TimeRangeFilterTests(unittest.TestCase):
    def test_keeps_items_inside_range(self):
        items = [
            make_content("src", "fresh", published_at=hours_ago(0.5)),
            make_content("src", "edge", published_at=hours_ago(1)),
            make_content("src", "old", published_at=hours_ago(2)),
        ]
        kept = filter_by_time_range(items, TimeRange.HOUR, now=NOW)
        self.assertEqual([item.id for item in kept], ["src-fresh", "src-edge"])

    def test_no_range_keeps_everything(self):
        items = [make_content("src", "old", published_at=NOW - timedelta(days=30))]
        self.assertEqual(filter_by_time_range(items, None, now=NOW), items)


class TextHelpersTests(unittest.TestCase):
    def test_clean_description_strips_markup_and_truncates(self):
        self.assertEqual(clean_description("<p>Hello <b>world</b></p>"), "Hello world")
        long_text = "word " * 100
        cleaned = clean_description(long_text, max_chars=20)
        self.assertEqual(len(cleaned), 23)
        self.assertTrue(cleaned.endswith("..."))
        self.assertEqual(clean_description(None), "")

    def test_ensure_utc_handles_naive_and_offset_values(self):
        naive = datetime(2025, 1, 1, 8, 0)
        self.assertEqual(ensure_utc(naive).tzinfo, timezone.utc)
        shifted = datetime(2025, 1, 1, 8, 0, tzinfo=timezone(timedelta(hours=2)))
        self.assertEqual(ensure_utc(shifted).hour, 6)

    def test_parse_iso_accepts_z_suffix(self):
        parsed = parse_iso("2025-03-01T12:00:00Z")
        self.assertEqual(parsed, NOW)


if __name__ == "__main__":
    unittest.main()
