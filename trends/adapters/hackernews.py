"""
Hacker News front page via the public Firebase API, filtered to AI stories.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from crawler.infra.http import HttpFetcher
from trends.adapters.base import call_with_retry, make_item
from trends.filters import filter_by_time_range, from_timestamp, is_ai_relevant
from trends.models import AdapterOptions, ContentItem, Engagement, SourceConfig

logger = logging.getLogger(__name__)

HN_API = "https://hacker-news.firebaseio.com/v0"
HN_ITEM_URL = "https://news.ycombinator.com/item?id={}"


class HackerNewsAdapter:
    def __init__(
        self,
        source: SourceConfig,
        fetcher: Optional[HttpFetcher] = None,
        story_limit: int = 100,
        max_workers: int = 16,
    ) -> None:
        self.source = source
        self.fetcher = fetcher or HttpFetcher()
        self.story_limit = story_limit
        self.max_workers = max_workers

    def fetch(self, options: Optional[AdapterOptions] = None) -> List[ContentItem]:
        options = options or AdapterOptions()
        try:
            story_ids = call_with_retry(lambda: self.fetcher.get_json(f"{HN_API}/topstories.json"), options)
            stories = self._load_stories((story_ids or [])[: self.story_limit])
            now = datetime.now(timezone.utc)
            items = [self._to_item(story, now) for story in stories if self._wanted(story)]
            return filter_by_time_range(items, options.time_range, now=now)
        except Exception as exc:
            logger.warning("Hacker News fetch failed for %s: %s", self.source.name, exc)
            return []

    def _load_stories(self, story_ids: List[int]) -> List[Dict[str, Any]]:
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return [story for story in executor.map(self._load_story, story_ids) if story]

    def _load_story(self, story_id: int) -> Optional[Dict[str, Any]]:
        try:
            return self.fetcher.get_json(f"{HN_API}/item/{story_id}.json")
        except Exception as exc:
            logger.debug("Skipping HN item %s: %s", story_id, exc)
            return None

    @staticmethod
    def _wanted(story: Dict[str, Any]) -> bool:
        return story.get("type") == "story" and is_ai_relevant(story.get("title") or "")

    def _to_item(self, story: Dict[str, Any], now: datetime) -> ContentItem:
        discussion_url = HN_ITEM_URL.format(story["id"])
        return make_item(
            self.source,
            discussion_url,
            title=story.get("title") or "",
            url=story.get("url") or discussion_url,
            published_at=from_timestamp(story.get("time")),
            description="Discussion on Hacker News" if story.get("url") else "Ask HN / Show HN post",
            author=story.get("by"),
            tags=["hacker-news"],
            engagement=Engagement(upvotes=story.get("score") or 0, comments=story.get("descendants") or 0),
            fetched_at=now,
        )
