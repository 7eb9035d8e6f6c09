"""
Recent AI videos through the YouTube Data API (search + statistics).
"""
from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from crawler.infra.http import HttpFetcher
from trends.adapters.base import call_with_retry, make_item
from trends.filters import filter_by_time_range, parse_iso
from trends.models import AdapterOptions, ContentItem, Engagement, SourceConfig, TimeRange
from utils.security import is_configured_key

logger = logging.getLogger(__name__)

YOUTUBE_API = "https://www.googleapis.com/youtube/v3"
DEFAULT_QUERY = "artificial intelligence | LLM | machine learning"


class YouTubeAdapter:
    def __init__(
        self,
        source: SourceConfig,
        fetcher: Optional[HttpFetcher] = None,
        env: Optional[Mapping[str, str]] = None,
        query: str = DEFAULT_QUERY,
        max_results: int = 25,
    ) -> None:
        env = os.environ if env is None else env
        api_key = env.get(source.api_key_env_var or "YOUTUBE_API_KEY")
        if not is_configured_key(api_key):
            raise ValueError("YouTube API key not configured")
        self.source = source
        self.api_key = api_key
        self.fetcher = fetcher or HttpFetcher()
        self.query = query
        self.max_results = max_results

    def fetch(self, options: Optional[AdapterOptions] = None) -> List[ContentItem]:
        options = options or AdapterOptions()
        now = datetime.now(timezone.utc)
        published_after = (options.time_range or TimeRange.WEEK).cutoff(now)
        search_params = {
            "part": "snippet",
            "q": self.query,
            "type": "video",
            "order": "date",
            "maxResults": self.max_results,
            "publishedAfter": published_after.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "key": self.api_key,
        }
        try:
            search = call_with_retry(
                lambda: self.fetcher.get_json(f"{YOUTUBE_API}/search", params=search_params),
                options,
            )
            videos = [entry for entry in (search or {}).get("items", []) if entry.get("id", {}).get("videoId")]
            stats = self._statistics([v["id"]["videoId"] for v in videos], options)
            items = [self._to_item(video, stats.get(video["id"]["videoId"], {}), now) for video in videos]
            return filter_by_time_range(items, options.time_range, now=now)
        except Exception as exc:
            logger.warning("YouTube fetch failed for %s: %s", self.source.name, exc)
            return []

    def _statistics(self, video_ids: List[str], options: AdapterOptions) -> Dict[str, Dict[str, Any]]:
        if not video_ids:
            return {}
        params = {"part": "statistics", "id": ",".join(video_ids), "key": self.api_key}
        try:
            payload = call_with_retry(lambda: self.fetcher.get_json(f"{YOUTUBE_API}/videos", params=params), options)
        except Exception as exc:
            logger.info("YouTube statistics unavailable, continuing without engagement: %s", exc)
            return {}
        return {entry["id"]: entry.get("statistics", {}) for entry in (payload or {}).get("items", [])}

    def _to_item(self, video: Dict[str, Any], stats: Dict[str, Any], now: datetime) -> ContentItem:
        video_id = video["id"]["videoId"]
        snippet = video.get("snippet", {})
        url = f"https://www.youtube.com/watch?v={video_id}"
        thumbnails = snippet.get("thumbnails", {})
        thumb = (thumbnails.get("high") or thumbnails.get("medium") or thumbnails.get("default") or {}).get("url")
        engagement = None
        if stats:
            engagement = Engagement(
                views=int(stats.get("viewCount", 0)),
                likes=int(stats.get("likeCount", 0)),
                comments=int(stats.get("commentCount", 0)),
            )
        return make_item(
            self.source,
            url,
            title=snippet.get("title") or "",
            url=url,
            published_at=parse_iso(snippet.get("publishedAt")),
            description=snippet.get("description") or "",
            image_url=thumb,
            author=snippet.get("channelTitle"),
            tags=["youtube"],
            engagement=engagement,
            fetched_at=now,
        )
