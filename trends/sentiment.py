"""
Sentiment classification for content items, computed at cache-write time.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, Tuple

from vaderSentiment.vaderSentiment import SentimentIntensityAnalyzer

from trends.models import ContentItem

logger = logging.getLogger(__name__)


def _get_sentiment_label(score: float) -> str:
    """Map a VADER compound score (-1..1) to a label."""
    if score > 0.05:
        return "positive"
    elif score < -0.05:
        return "negative"
    else:
        return "neutral"


class SentimentAnalyzer:
    """
    Thin wrapper over VADER. Scores are rescaled to 0..1 so that 0.5 is neutral.
    """

    def __init__(self) -> None:
        self.analyzer = SentimentIntensityAnalyzer()

    def classify(self, text: str) -> Tuple[str, float]:
        if not text or not text.strip():
            return "neutral", 0.5
        compound = self.analyzer.polarity_scores(text)["compound"]
        return _get_sentiment_label(compound), round((compound + 1) / 2, 4)

    @staticmethod
    def summarize(items: Iterable[ContentItem]) -> Dict[str, float]:
        """
        Counts per label plus the mean score for the items that carry one.
        """
        counts = {"positive": 0, "negative": 0, "neutral": 0}
        total_score = 0.0
        scored = 0
        for item in items:
            if item.sentiment in counts:
                counts[item.sentiment] += 1
            if item.sentiment_score is not None:
                total_score += item.sentiment_score
                scored += 1
        return {
            "positive_count": counts["positive"],
            "negative_count": counts["negative"],
            "neutral_count": counts["neutral"],
            "average_score": round(total_score / scored, 4) if scored else 0.5,
            "total_count": scored,
        }
