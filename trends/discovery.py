"""
Feed auto-detection for user-added sources and YouTube channel lookup.

Detection tries, in order: the URL itself as a feed, ``<link rel="alternate">``
tags on the HTML page, then a handful of conventional feed paths on the host.
"""
from __future__ import annotations

import logging
import os
import re
from typing import Iterator, List, Mapping, Optional
from urllib.parse import urljoin, urlsplit

import requests
from bs4 import BeautifulSoup

from crawler.infra.http import HttpFetcher
from crawler.ingesters.rss_base import parse_feed_meta
from trends.adapters.youtube import YOUTUBE_API
from trends.errors import InvalidRequest, NotFoundError
from trends.models import DetectedFeed, YouTubeChannel
from utils.security import is_configured_key, redact_secrets

logger = logging.getLogger(__name__)

COMMON_FEED_PATHS = ("/feed", "/rss", "/rss.xml", "/atom.xml", "/feed.xml", "/feed/rss", "/feed/atom")
FEED_LINK_TYPES = ("application/rss+xml", "application/atom+xml")
NO_FEED_MESSAGE = "No RSS or Atom feed found. Try entering the feed URL directly."

_CHANNEL_ID_RE = re.compile(r"^(UC[\w-]{22})$")
_CHANNEL_URL_RE = re.compile(r"youtube\.com/channel/(UC[\w-]{22})")
_HANDLE_URL_RE = re.compile(r"youtube\.com/@([\w.-]+)")
_HANDLE_RE = re.compile(r"^@([\w.-]+)$")


def normalize_site_url(raw: Optional[str]) -> str:
    url = (raw or "").strip()
    if not url:
        raise InvalidRequest("URL is required")
    if not re.match(r"^https?://", url, re.IGNORECASE):
        url = "https://" + url
    try:
        host = urlsplit(url).hostname or ""
    except ValueError as exc:
        raise InvalidRequest("Invalid URL") from exc
    if "." not in host or any(ch.isspace() for ch in host):
        raise InvalidRequest("Invalid URL")
    return url


class FeedDetector:
    def __init__(self, fetcher: Optional[HttpFetcher] = None) -> None:
        self.fetcher = fetcher or HttpFetcher(timeout=8)

    def detect(self, raw_url: Optional[str]) -> DetectedFeed:
        url = normalize_site_url(raw_url)
        hostname = urlsplit(url).hostname or url

        response = self._get(url)
        if response is not None:
            feed = self._as_feed(url, response.content, hostname)
            if feed is not None:
                return feed
            if "text/html" in response.headers.get("Content-Type", ""):
                for candidate in self._alternate_links(url, response.text):
                    feed = self._try_feed(candidate, hostname)
                    if feed is not None:
                        return feed

        parts = urlsplit(url)
        base = f"{parts.scheme}://{parts.netloc}"
        for path in COMMON_FEED_PATHS:
            feed = self._try_feed(base + path, hostname)
            if feed is not None:
                return feed
        raise NotFoundError(NO_FEED_MESSAGE)

    def _get(self, url: str) -> Optional[requests.Response]:
        try:
            return self.fetcher.get(url)
        except requests.RequestException as exc:
            logger.debug("Feed detection could not fetch %s: %s", redact_secrets(url), exc)
            return None

    def _try_feed(self, url: str, hostname: str) -> Optional[DetectedFeed]:
        response = self._get(url)
        if response is None:
            return None
        return self._as_feed(url, response.content, hostname)

    @staticmethod
    def _as_feed(url: str, content: bytes, hostname: str) -> Optional[DetectedFeed]:
        try:
            title, description = parse_feed_meta(content)
        except ValueError:
            return None
        return DetectedFeed(feed_url=url, title=title or hostname, description=description)

    @staticmethod
    def _alternate_links(page_url: str, html: str) -> Iterator[str]:
        soup = BeautifulSoup(html, "lxml")
        for link in soup.find_all("link", href=True):
            rel = link.get("rel") or []
            rel = rel if isinstance(rel, list) else [rel]
            if "alternate" not in [r.lower() for r in rel]:
                continue
            if (link.get("type") or "").lower() in FEED_LINK_TYPES:
                yield urljoin(page_url, link["href"])


def resolve_youtube_channel(
    raw: Optional[str],
    fetcher: Optional[HttpFetcher] = None,
    env: Optional[Mapping[str, str]] = None,
) -> YouTubeChannel:
    """
    Turn a channel id, channel URL, ``@handle`` or handle URL into a channel.

    Ids resolve locally and use the id as the name; handles need the Data API.
    """
    value = (raw or "").strip()
    if not value:
        raise InvalidRequest("Input is required")

    direct = _CHANNEL_ID_RE.match(value) or _CHANNEL_URL_RE.search(value)
    if direct:
        return YouTubeChannel(channel_id=direct.group(1), name=direct.group(1))

    handle_match = _HANDLE_URL_RE.search(value) or _HANDLE_RE.match(value)
    if not handle_match:
        raise InvalidRequest("Invalid input. Provide a @handle, channel URL, or channel ID (UC...).")
    handle = handle_match.group(1)

    env = os.environ if env is None else env
    api_key = env.get("YOUTUBE_API_KEY")
    if not is_configured_key(api_key):
        raise InvalidRequest("No YouTube API key configured. Please provide a channel ID (UC...) directly.")

    fetcher = fetcher or HttpFetcher(timeout=8)
    payload = fetcher.get_json(
        f"{YOUTUBE_API}/channels",
        params={"part": "snippet", "forHandle": f"@{handle}", "key": api_key},
    )
    items: List[dict] = (payload or {}).get("items") or []
    if not items:
        raise NotFoundError(f"No channel found for @{handle}")
    channel = items[0]
    name = (channel.get("snippet") or {}).get("title") or handle
    logger.info("Resolved YouTube handle @%s to %s", handle, channel.get("id"))
    return YouTubeChannel(channel_id=channel["id"], name=name)
