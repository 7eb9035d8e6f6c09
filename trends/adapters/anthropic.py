"""
Scrape adapter for the Anthropic news index.

Entries are located through semantic hints rather than exact markup: links to
``/news/<slug>``, the first heading (or a "title"-classed element) inside the
link, a ``Mon D, YYYY`` date anywhere in its text, and an optional
"subject"/"bold"-classed label used as a tag.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from crawler.infra.http import HttpFetcher
from trends.adapters.base import call_with_retry, make_item
from trends.filters import filter_by_time_range
from trends.models import AdapterOptions, ContentItem, SourceConfig

logger = logging.getLogger(__name__)

NEWS_URL = "https://www.anthropic.com/news"
_NEWS_HREF_RE = re.compile(r"^(?:https?://(?:www\.)?anthropic\.com)?/news/[A-Za-z0-9][^/?#]*/?$")
_DATE_RE = re.compile(r"\b(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+(\d{1,2}),\s+(\d{4})\b")


def _class_contains(*needles: str):
    def match(value: Optional[str]) -> bool:
        return bool(value) and any(needle in value.lower() for needle in needles)

    return match


def extract_title(anchor: Tag) -> Optional[str]:
    heading = anchor.find(["h2", "h3", "h4", "h5", "h6"])
    if heading is None:
        heading = anchor.find(class_=_class_contains("title"))
    if heading is None:
        return None
    text = " ".join(heading.get_text(" ").split())
    return text or None


def extract_date(anchor: Tag) -> Optional[datetime]:
    match = _DATE_RE.search(anchor.get_text(" "))
    if not match:
        return None
    month, day, year = match.groups()
    try:
        return datetime.strptime(f"{month[:3]} {day} {year}", "%b %d %Y").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def extract_label(anchor: Tag) -> Optional[str]:
    label = anchor.find(class_=_class_contains("subject", "bold"))
    if label is None:
        return None
    text = " ".join(label.get_text(" ").split())
    if not text or _DATE_RE.fullmatch(text):
        return None
    return text


class AnthropicNewsAdapter:
    def __init__(self, source: SourceConfig, fetcher: Optional[HttpFetcher] = None) -> None:
        self.source = source
        self.fetcher = fetcher or HttpFetcher()
        self.page_url = source.url or NEWS_URL

    def fetch(self, options: Optional[AdapterOptions] = None) -> List[ContentItem]:
        options = options or AdapterOptions()
        try:
            html = call_with_retry(lambda: self.fetcher.fetch_text(self.page_url), options)
            now = datetime.now(timezone.utc)
            items = self.parse(html, now)
            return filter_by_time_range(items, options.time_range, now=now)
        except Exception as exc:
            logger.warning("Scrape failed for %s: %s", self.source.name, exc)
            return []

    def parse(self, html: str, now: Optional[datetime] = None) -> List[ContentItem]:
        now = now or datetime.now(timezone.utc)
        soup = BeautifulSoup(html, "lxml")
        items: List[ContentItem] = []
        seen = set()
        for anchor in soup.find_all("a", href=_NEWS_HREF_RE):
            url = urljoin(self.page_url, anchor["href"]).rstrip("/")
            if url in seen:
                continue
            title = extract_title(anchor)
            published_at = extract_date(anchor)
            # navigation links and teasers without a date are not articles
            if not title or not published_at:
                continue
            seen.add(url)
            label = extract_label(anchor)
            items.append(
                make_item(
                    self.source,
                    url,
                    title=title,
                    url=url,
                    published_at=published_at,
                    description=title,
                    author="Anthropic",
                    tags=["anthropic"] + ([label] if label else []),
                    fetched_at=now,
                )
            )
        return items
