"""
Trending score and feed-mode ranking for content items.

Scores are computed at read time from the item, the source priority, the
user's boost keywords and the latest engagement velocity. Nothing here is
persisted.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from trends.models import ContentItem, Engagement, FeedMode, SourceCategory

DEFAULT_PRIORITY = 3


@dataclass(frozen=True)
class ScoringWeights:
    priority: float = 0.25
    engagement: float = 0.30
    recency: float = 0.25
    keyword: float = 0.15
    velocity: float = 0.05


DEFAULT_WEIGHTS = ScoringWeights()


@dataclass(frozen=True)
class MetricConfig:
    name: str
    weight: float
    log_base: float


@dataclass(frozen=True)
class QualityRatio:
    """Bonus for a healthy ratio between two metrics, e.g. likes per view."""

    numerator: str
    denominator: str
    ideal: float
    weight: float


@dataclass(frozen=True)
class PlatformEngagement:
    metrics: Tuple[MetricConfig, ...]
    ratio: Optional[QualityRatio] = None


ENGAGEMENT_CONFIGS: Dict[str, PlatformEngagement] = {
    "youtube": PlatformEngagement(
        metrics=(
            MetricConfig("views", 0.40, 6),
            MetricConfig("likes", 0.35, 5),
            MetricConfig("comments", 0.25, 4),
        ),
        ratio=QualityRatio("likes", "views", 0.04, 0.2),
    ),
    "github": PlatformEngagement(
        metrics=(MetricConfig("stars", 0.60, 6), MetricConfig("forks", 0.40, 5)),
        ratio=QualityRatio("forks", "stars", 0.10, 0.15),
    ),
    "reddit": PlatformEngagement(
        metrics=(MetricConfig("upvotes", 0.60, 4), MetricConfig("comments", 0.40, 3)),
        ratio=QualityRatio("comments", "upvotes", 0.15, 0.15),
    ),
    "hackernews": PlatformEngagement(
        metrics=(MetricConfig("upvotes", 0.50, 3), MetricConfig("comments", 0.50, 3)),
        ratio=QualityRatio("comments", "upvotes", 0.50, 0.1),
    ),
    "huggingface": PlatformEngagement(
        metrics=(MetricConfig("downloads", 0.50, 6), MetricConfig("likes", 0.50, 4)),
        ratio=QualityRatio("likes", "downloads", 0.01, 0.15),
    ),
    "medium": PlatformEngagement(
        metrics=(MetricConfig("claps", 0.70, 4), MetricConfig("comments", 0.30, 3)),
    ),
}

# Baselines for items whose platform exposes no engagement numbers.
TIER_OFFICIAL = 0.55
TIER_NEWS = 0.45
TIER_DEFAULT = 0.35
TIER_LOW_SIGNAL = 0.25

_CATEGORY_TIERS = {
    SourceCategory.AI_LABS: TIER_OFFICIAL,
    SourceCategory.NEWS: TIER_NEWS,
    SourceCategory.LEADERBOARDS: TIER_LOW_SIGNAL,
}
_ACADEMIC_SOURCES = frozenset({"arxiv-cs-ai", "arxiv-cs-cl", "papers-with-code"})


def platform_for(source_id: str) -> Optional[str]:
    if source_id.startswith("reddit-"):
        return "reddit"
    return {
        "youtube": "youtube",
        "github-trending": "github",
        "hackernews": "hackernews",
        "huggingface": "huggingface",
        "medium-ai": "medium",
    }.get(source_id)


def quality_baseline(source_id: str, category: Optional[SourceCategory] = None) -> float:
    if source_id in _ACADEMIC_SOURCES:
        return TIER_NEWS
    if category is None:
        return TIER_DEFAULT
    return _CATEGORY_TIERS.get(category, TIER_DEFAULT)


def _log_norm(value: float, log_base: float) -> float:
    if value <= 0:
        return 0.0
    return min(1.0, math.log10(value + 1) / log_base)


def engagement_score(
    source_id: str,
    engagement: Optional[Engagement],
    category: Optional[SourceCategory] = None,
) -> float:
    config = ENGAGEMENT_CONFIGS.get(platform_for(source_id) or "")
    counters = engagement.as_dict() if engagement else {}
    if config is None or not any(metric.name in counters for metric in config.metrics):
        return quality_baseline(source_id, category)

    score = sum(metric.weight * _log_norm(counters.get(metric.name, 0), metric.log_base) for metric in config.metrics)
    ratio = config.ratio
    if ratio is not None and counters.get(ratio.denominator):
        achieved = counters.get(ratio.numerator, 0) / counters[ratio.denominator]
        score *= 1 + ratio.weight * min(1.0, achieved / ratio.ideal)
    return min(1.0, score)


def recency_score(published_at: datetime, now: datetime) -> float:
    age_hours = max(0.0, (now - published_at).total_seconds() / 3600.0)
    return math.exp(-age_hours / 24.0)


def keyword_score(item: ContentItem, keywords: Sequence[str]) -> Tuple[float, List[str]]:
    if not keywords:
        return 0.0, []
    text = " ".join([item.title, item.description or "", " ".join(item.tags or [])]).lower()
    matched = [keyword for keyword in keywords if keyword and keyword.lower() in text]
    if not matched:
        return 0.0, []
    return 0.5 + 0.5 * min(1.0, len(matched) / len(keywords) * 2), matched


def velocity_score(velocity: float) -> float:
    return _log_norm(velocity, 4)


class TrendingScorer:
    def __init__(self, weights: ScoringWeights = DEFAULT_WEIGHTS) -> None:
        self.weights = weights

    def score_item(
        self,
        item: ContentItem,
        priority: int = DEFAULT_PRIORITY,
        boost_keywords: Sequence[str] = (),
        velocity: float = 0.0,
        now: Optional[datetime] = None,
        category: Optional[SourceCategory] = None,
    ) -> Tuple[float, List[str]]:
        """Return ``(score 0..100, matched keywords)``."""
        now = now or datetime.now(timezone.utc)
        w = self.weights
        keyword, matched = keyword_score(item, boost_keywords)
        combined = (
            w.priority * (max(1, min(5, priority)) - 1) / 4
            + w.engagement * engagement_score(item.source_id, item.engagement, category)
            + w.recency * recency_score(item.published_at, now)
            + w.keyword * keyword
            + w.velocity * velocity_score(velocity)
        )
        return round(max(0.0, min(100.0, combined * 100)), 1), matched

    def rank(
        self,
        items: Sequence[ContentItem],
        priorities: Mapping[str, int],
        boost_keywords: Sequence[str] = (),
        velocities: Optional[Mapping[str, float]] = None,
        now: Optional[datetime] = None,
        categories: Optional[Mapping[str, SourceCategory]] = None,
    ) -> List[ContentItem]:
        now = now or datetime.now(timezone.utc)
        velocities = velocities or {}
        categories = categories or {}
        scored = []
        for item in items:
            velocity = velocities.get(item.id, 0.0)
            score, matched = self.score_item(
                item,
                priorities.get(item.source_id, DEFAULT_PRIORITY),
                boost_keywords,
                velocity,
                now,
                categories.get(item.source_id),
            )
            scored.append(
                replace(item, trending_score=score, velocity_score=velocity, matched_keywords=matched or None)
            )
        return sort_ranked(scored)


def sort_ranked(items: List[ContentItem]) -> List[ContentItem]:
    """Score desc, then newest first, then id for a stable total order."""
    items = sorted(items, key=lambda item: item.id)
    items.sort(key=lambda item: item.published_at, reverse=True)
    items.sort(key=lambda item: item.trending_score or 0.0, reverse=True)
    return items


def mode_engagement(engagement: Optional[Engagement]) -> float:
    primary = engagement.primary_metric() if engagement else 0
    if primary <= 0:
        return 0.25
    return min(1.0, math.log10(primary + 1) / 6)


def score_by_feed_mode(
    items: Sequence[ContentItem],
    velocities: Mapping[str, float],
    mode: FeedMode,
    now: Optional[datetime] = None,
) -> List[ContentItem]:
    now = now or datetime.now(timezone.utc)
    mode = FeedMode(mode)
    engagement = {item.id: mode_engagement(item.engagement) for item in items}

    ordered = sorted(engagement, key=lambda item_id: engagement[item_id])
    if len(ordered) > 1:
        percentile = {item_id: index / (len(ordered) - 1) for index, item_id in enumerate(ordered)}
    else:
        percentile = {item_id: 0.5 for item_id in ordered}

    scored = []
    for item in items:
        velocity = velocities.get(item.id, 0.0)
        eng = engagement[item.id]
        if mode == FeedMode.HOT:
            value = 0.5 * eng + 0.3 * recency_score(item.published_at, now) + 0.2 * velocity_score(velocity)
        elif mode == FeedMode.RISING:
            value = 0.7 * velocity_score(velocity) + 0.2 * recency_score(item.published_at, now) + 0.1 * eng
            if percentile[item.id] > 0.8:
                value *= 0.6
        else:
            value = eng
        scored.append(replace(item, trending_score=round(value * 100, 1), velocity_score=velocity))
    return sort_ranked(scored)
