"""
Feed adapter with a second, throttled pass that scrapes engagement counters
(claps, responses) from each article page.

Only the first ``enrich_limit`` items are visited. An item whose page fails
to load or parse is kept without engagement.
"""
from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urlsplit

from crawler.extractors.engagement import parse_engagement
from crawler.infra.http import HttpFetcher
from trends.adapters.rss import feed_items
from trends.models import AdapterOptions, ContentItem, Engagement, SourceConfig
from trends.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

ENRICH_DELAY_SECONDS = 0.5


class MediumAdapter:
    def __init__(
        self,
        source: SourceConfig,
        fetcher: Optional[HttpFetcher] = None,
        rate_limiter: Optional[RateLimiter] = None,
        enrich_limit: int = 10,
    ) -> None:
        self.source = source
        self.fetcher = fetcher or HttpFetcher()
        self.rate_limiter = rate_limiter or RateLimiter(default_interval=ENRICH_DELAY_SECONDS)
        self.enrich_limit = enrich_limit

    def fetch(self, options: Optional[AdapterOptions] = None) -> List[ContentItem]:
        options = options or AdapterOptions()
        try:
            items = feed_items(self.source, self.fetcher, options)
        except Exception as exc:
            logger.warning("Medium feed failed for %s: %s", self.source.name, exc)
            return []

        enriched = 0
        for item in items[: self.enrich_limit]:
            if self._enrich(item):
                enriched += 1
        logger.debug("Medium %s: enriched %s/%s items", self.source.id, enriched, len(items))
        return items

    def _enrich(self, item: ContentItem) -> bool:
        self.rate_limiter.wait(urlsplit(item.url).netloc)
        try:
            stats = parse_engagement(self.fetcher.fetch_text(item.url))
        except Exception as exc:
            logger.debug("Engagement scrape failed for %s: %s", item.url, exc)
            return False
        if stats.empty:
            return False
        item.engagement = Engagement(claps=stats.claps, comments=stats.responses)
        return True
