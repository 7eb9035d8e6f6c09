"""
Shared helpers for RSS/Atom ingestion.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

import feedparser
from pydantic import ValidationError

from crawler.schemas.models import ArticleItem

logger = logging.getLogger(__name__)

_TRACKING_PREFIXES = ("utm_", "ref", "fbclid", "gclid")


def normalize_url(url: str) -> str:
    if not url:
        return url
    parts = urlsplit(url.strip())
    # Drop tracking parameters so the same story keeps the same id
    query = "&".join(
        pair for pair in parts.query.split("&") if pair and not pair.lower().startswith(_TRACKING_PREFIXES)
    )
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))


def parse_feed_entries(feed_content: bytes, source: str) -> List[ArticleItem]:
    feed = feedparser.parse(feed_content)
    if getattr(feed, "bozo", False) and not getattr(feed, "entries", None):
        raise ValueError(f"Unparseable feed for {source}: {getattr(feed, 'bozo_exception', 'unknown error')}")

    items: List[ArticleItem] = []
    for entry in getattr(feed, "entries", []):
        link = normalize_url(entry.get("link", ""))
        if not link:
            continue
        summary = entry.get("summary") or entry.get("description")
        if not summary and entry.get("content"):
            summary = entry["content"][0].get("value")
        try:
            items.append(
                ArticleItem(
                    source=source,
                    title=entry.get("title") or "Untitled",
                    url=link,
                    guid=entry.get("id") or None,
                    author=_extract_author(entry),
                    published_at=_parse_datetime(entry.get("published_parsed") or entry.get("updated_parsed")),
                    summary=summary,
                    tags=[tag.get("term") for tag in entry.get("tags", []) if isinstance(tag, dict)],
                    image_url=_extract_image(entry),
                )
            )
        except ValidationError as exc:
            logger.debug("Skipping malformed entry from %s: %s", source, exc)
    return items


def parse_feed_meta(feed_content: bytes) -> Tuple[Optional[str], Optional[str]]:
    """Channel title and subtitle of a feed that has at least one entry."""
    feed = feedparser.parse(feed_content)
    if not getattr(feed, "entries", None):
        raise ValueError(f"Not a feed: {getattr(feed, 'bozo_exception', 'no entries')}")
    channel = getattr(feed, "feed", {}) or {}
    title = (channel.get("title") or "").strip() or None
    subtitle = (channel.get("subtitle") or "").strip() or None
    return title, subtitle


def _extract_author(entry: Any) -> Optional[str]:
    author = entry.get("author")
    if isinstance(author, str) and author.strip():
        return author.strip()
    detail = entry.get("author_detail")
    if isinstance(detail, dict) and detail.get("name"):
        return detail["name"]
    authors = entry.get("authors")
    if authors and isinstance(authors[0], dict) and authors[0].get("name"):
        return authors[0]["name"]
    return None


def _extract_image(entry: Any) -> Optional[str]:
    for media in entry.get("media_content", []) or []:
        url = media.get("url")
        medium = media.get("medium") or ""
        mime = media.get("type") or ""
        if url and (medium == "image" or mime.startswith("image/") or not (medium or mime)):
            return url
    for thumb in entry.get("media_thumbnail", []) or []:
        if thumb.get("url"):
            return thumb["url"]
    for link in entry.get("links", []) or []:
        if link.get("rel") == "enclosure" and str(link.get("type", "")).startswith("image/"):
            return link.get("href")
    for enclosure in entry.get("enclosures", []) or []:
        if str(enclosure.get("type", "")).startswith("image/"):
            return enclosure.get("href") or enclosure.get("url")
    return None


def _parse_datetime(struct_time) -> Optional[datetime]:
    if not struct_time:
        return None
    return datetime(*struct_time[:6], tzinfo=timezone.utc)
