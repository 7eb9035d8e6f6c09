"""
Subreddit "hot" listings through Reddit's public JSON endpoints.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from crawler.infra.http import HttpFetcher
from trends.adapters.base import call_with_retry, make_item
from trends.filters import filter_by_time_range, from_timestamp
from trends.models import AdapterOptions, ContentItem, Engagement, SourceConfig

logger = logging.getLogger(__name__)

REDDIT_USER_AGENT = "AITrendsAggregator/1.0 (by /u/ai-trends-bot)"
DEFAULT_SUBREDDIT = "MachineLearning"
_SUBREDDIT_RE = re.compile(r"/r/([^/]+)")


def subreddit_for(source: SourceConfig) -> str:
    match = _SUBREDDIT_RE.search(source.url or "")
    return match.group(1) if match else DEFAULT_SUBREDDIT


class RedditAdapter:
    def __init__(self, source: SourceConfig, fetcher: Optional[HttpFetcher] = None, limit: int = 50) -> None:
        self.source = source
        self.fetcher = fetcher or HttpFetcher(user_agent=REDDIT_USER_AGENT)
        self.subreddit = subreddit_for(source)
        self.limit = limit

    def fetch(self, options: Optional[AdapterOptions] = None) -> List[ContentItem]:
        options = options or AdapterOptions()
        url = f"https://www.reddit.com/r/{self.subreddit}/hot.json"
        try:
            payload = call_with_retry(
                lambda: self.fetcher.get_json(url, params={"limit": self.limit}),
                options,
            )
            now = datetime.now(timezone.utc)
            children = (payload or {}).get("data", {}).get("children", [])
            items = [
                self._to_item(child.get("data", {}), now)
                for child in children
                if child.get("data") and not child["data"].get("stickied")
            ]
            return filter_by_time_range(items, options.time_range, now=now)
        except Exception as exc:
            logger.warning("Reddit fetch failed for r/%s: %s", self.subreddit, exc)
            return []

    def _to_item(self, post: Dict[str, Any], now: datetime) -> ContentItem:
        permalink = f"https://www.reddit.com{post.get('permalink', '')}"
        tags = [f"r/{self.subreddit}"]
        if post.get("link_flair_text"):
            tags.append(post["link_flair_text"])
        thumbnail = post.get("thumbnail") or ""
        return make_item(
            self.source,
            permalink,
            title=post.get("title") or "",
            url=permalink,
            published_at=from_timestamp(post.get("created_utc")),
            description=post.get("selftext") or "",
            image_url=thumbnail if thumbnail.startswith("http") else None,
            author=post.get("author"),
            tags=tags,
            engagement=Engagement(upvotes=post.get("score") or 0, comments=post.get("num_comments") or 0),
            fetched_at=now,
        )
