"""
Adapter that fetches and normalizes RSS/Atom feeds using the crawler helpers.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from crawler.infra.http import HttpFetcher
from crawler.ingesters.rss_base import parse_feed_entries
from crawler.schemas.models import ArticleItem
from trends.adapters.base import call_with_retry, make_item
from trends.filters import ensure_utc, filter_by_time_range, filter_relevant
from trends.models import AdapterOptions, ContentItem, SourceConfig

logger = logging.getLogger(__name__)


def feed_items(
    source: SourceConfig,
    fetcher: HttpFetcher,
    options: AdapterOptions,
    now: Optional[datetime] = None,
) -> List[ContentItem]:
    """Fetch ``source.feed_url`` and map entries to items. Raises on failure."""
    now = now or datetime.now(timezone.utc)
    payload = call_with_retry(lambda: fetcher.fetch(source.feed_url), options)
    articles: List[ArticleItem] = parse_feed_entries(payload, source.name)
    items = [
        make_item(
            source,
            article.unique_key,
            title=article.title,
            url=str(article.url),
            published_at=ensure_utc(article.published_at, fallback=now),
            description=article.summary,
            image_url=article.image_url,
            author=article.author,
            tags=article.tags,
            fetched_at=now,
        )
        for article in articles
    ]
    if source.relevance_filter:
        items = filter_relevant(items)
    return filter_by_time_range(items, options.time_range, now=now)


class FeedAdapter:
    def __init__(self, source: SourceConfig, fetcher: Optional[HttpFetcher] = None) -> None:
        self.source = source
        self.fetcher = fetcher or HttpFetcher()

    def fetch(self, options: Optional[AdapterOptions] = None) -> List[ContentItem]:
        options = options or AdapterOptions()
        try:
            items = feed_items(self.source, self.fetcher, options)
            logger.debug("Feed %s returned %s items", self.source.id, len(items))
            return items
        except Exception as exc:
            logger.warning("RSS fetch failed for %s: %s", self.source.name, exc)
            return []
