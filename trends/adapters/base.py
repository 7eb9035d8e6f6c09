"""
Adapter protocol + helpers shared by the source variants.

Adapters are independent classes; each one owns its parsing and satisfies
:class:`SourceAdapter`. ``fetch`` never raises: on unrecoverable failure it
logs and returns an empty list so one source cannot fail an aggregation.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, TypeVar

from crawler.infra.http import with_retry
from crawler.pipelines.dedupe import make_content_id
from trends.filters import clean_description
from trends.models import AdapterOptions, ContentItem, Engagement, SourceConfig

T = TypeVar("T")


class SourceAdapter(Protocol):
    source: SourceConfig

    def fetch(self, options: Optional[AdapterOptions] = None) -> List[ContentItem]:
        ...


def call_with_retry(fn: Callable[[], T], options: AdapterOptions) -> T:
    return with_retry(fn, max_retries=options.max_retries, base_delay=options.retry_delay_ms / 1000.0)


def make_item(
    source: SourceConfig,
    unique_identifier: str,
    *,
    title: str,
    url: str,
    published_at: datetime,
    description: Optional[str] = None,
    image_url: Optional[str] = None,
    author: Optional[str] = None,
    tags: Optional[List[str]] = None,
    engagement: Optional[Engagement] = None,
    fetched_at: Optional[datetime] = None,
) -> ContentItem:
    return ContentItem(
        id=make_content_id(source.id, unique_identifier),
        source_id=source.id,
        title=" ".join((title or "Untitled").split()),
        url=url,
        published_at=published_at,
        fetched_at=fetched_at or datetime.now(timezone.utc),
        description=clean_description(description),
        image_url=image_url or None,
        author=author or None,
        tags=list(tags or []),
        engagement=engagement,
    )
