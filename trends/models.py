"""
Core data structures shared by the trends pipeline.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class SourceCategory(str, Enum):
    AI_LABS = "ai-labs"
    CREATIVE_AI = "creative-ai"
    DEV_PLATFORMS = "dev-platforms"
    SOCIAL = "social"
    NEWS = "news"
    COMMUNITY = "community"
    NEWSLETTERS = "newsletters"
    LEADERBOARDS = "leaderboards"


class FetchMethod(str, Enum):
    FEED = "feed"
    API = "api"
    SCRAPE = "scrape"

    @classmethod
    def parse(cls, value: str) -> "FetchMethod":
        if value == "rss":
            return cls.FEED
        return cls(value)


class TimeRange(str, Enum):
    HOUR = "1h"
    HALF_DAY = "12h"
    DAY = "24h"
    TWO_DAYS = "48h"
    WEEK = "7d"

    @property
    def delta(self) -> timedelta:
        return _TIME_RANGE_DELTAS[self]

    def cutoff(self, now: datetime) -> datetime:
        return now - self.delta


_TIME_RANGE_DELTAS = {
    TimeRange.HOUR: timedelta(hours=1),
    TimeRange.HALF_DAY: timedelta(hours=12),
    TimeRange.DAY: timedelta(hours=24),
    TimeRange.TWO_DAYS: timedelta(hours=48),
    TimeRange.WEEK: timedelta(days=7),
}


class FeedMode(str, Enum):
    HOT = "hot"
    RISING = "rising"
    TOP = "top"


# Preference order for the single metric that velocity is computed from.
PRIMARY_METRIC_ORDER = ("views", "upvotes", "stars", "likes", "downloads", "claps")


@dataclass
class Engagement:
    """Sparse engagement counters; only fields a platform exposes are set."""

    views: Optional[int] = None
    upvotes: Optional[int] = None
    stars: Optional[int] = None
    likes: Optional[int] = None
    comments: Optional[int] = None
    forks: Optional[int] = None
    downloads: Optional[int] = None
    claps: Optional[int] = None

    def as_dict(self) -> Dict[str, int]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, object]]) -> Optional["Engagement"]:
        if not data:
            return None
        names = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key in names and value is not None:
                values[key] = int(value)
        return cls(**values) if values else None

    def primary_metric(self) -> int:
        for name in PRIMARY_METRIC_ORDER:
            value = getattr(self, name)
            if value:
                return value
        return 0


@dataclass
class ContentItem:
    """
    Normalized representation of one upstream item across all sources.
    """

    id: str
    source_id: str
    title: str
    url: str
    published_at: datetime
    fetched_at: datetime
    description: str = ""
    image_url: Optional[str] = None
    author: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    engagement: Optional[Engagement] = None
    sentiment: Optional[str] = None
    sentiment_score: Optional[float] = None
    trending_score: Optional[float] = None
    velocity_score: Optional[float] = None
    matched_keywords: Optional[List[str]] = None


@dataclass(frozen=True)
class SourceConfig:
    id: str
    name: str
    category: SourceCategory
    url: str
    method: FetchMethod
    feed_url: Optional[str] = None
    enabled: bool = True
    requires_key: bool = False
    api_key_env_var: Optional[str] = None
    default_priority: int = 3
    relevance_filter: bool = False
    icon: Optional[str] = None


@dataclass(frozen=True)
class CustomSourceConfig:
    id: str
    name: str
    feed_url: str
    category: SourceCategory = SourceCategory.NEWS
    priority: Optional[int] = None
    enabled: bool = True

    def to_source_config(self) -> SourceConfig:
        return SourceConfig(
            id=self.id,
            name=self.name,
            category=self.category,
            url=self.feed_url,
            method=FetchMethod.FEED,
            feed_url=self.feed_url,
            enabled=self.enabled,
            default_priority=self.priority or 3,
        )


YOUTUBE_CHANNEL_FEED = "https://www.youtube.com/feeds/videos.xml?channel_id={}"


@dataclass(frozen=True)
class YouTubeChannel:
    """A followed channel, read through its public uploads feed (no API quota)."""

    channel_id: str
    name: str

    @property
    def source_id(self) -> str:
        return f"youtube-channel-{self.channel_id}"

    def to_source_config(self) -> SourceConfig:
        return SourceConfig(
            id=self.source_id,
            name=self.name,
            category=SourceCategory.SOCIAL,
            url=f"https://www.youtube.com/channel/{self.channel_id}",
            method=FetchMethod.FEED,
            feed_url=YOUTUBE_CHANNEL_FEED.format(self.channel_id),
            icon="📺",
        )

    def as_dict(self) -> Dict[str, str]:
        return {"channelId": self.channel_id, "name": self.name}


@dataclass(frozen=True)
class Subreddit:
    name: str

    @property
    def source_id(self) -> str:
        return f"reddit-{self.name.lower()}"

    def to_source_config(self) -> SourceConfig:
        return SourceConfig(
            id=self.source_id,
            name=f"r/{self.name}",
            category=SourceCategory.COMMUNITY,
            url=f"https://www.reddit.com/r/{self.name}/",
            method=FetchMethod.API,
            icon="👽",
        )

    def as_dict(self) -> Dict[str, str]:
        return {"name": self.name}


@dataclass
class DetectedFeed:
    feed_url: str
    title: str
    description: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"feedUrl": self.feed_url, "title": self.title}
        if self.description:
            payload["description"] = self.description
        return payload


@dataclass
class AdapterOptions:
    time_range: Optional[TimeRange] = None
    max_retries: int = 3
    retry_delay_ms: int = 1000


@dataclass
class SourceHealthRecord:
    source_id: str
    last_fetch_at: datetime
    last_success_at: Optional[datetime] = None
    last_item_count: int = 0
    consecutive_failures: int = 0
    last_error: Optional[str] = None


@dataclass
class FetchOutcome:
    """Result of one adapter call inside a freshness pass."""

    source_id: str
    source_name: str
    items: List[ContentItem] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SourceFailure:
    source: str
    error: str


@dataclass
class Freshness:
    stale: FrozenSet[str]
    fresh: FrozenSet[str]


@dataclass
class FreshnessResult:
    stale_count: int
    fresh_count: int
    failures: List[SourceFailure] = field(default_factory=list)
