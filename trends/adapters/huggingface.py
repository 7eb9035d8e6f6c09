"""
Recently updated models and spaces from the Hugging Face Hub API.

The two listings are fetched independently; one failing does not drop the
other.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from crawler.infra.http import HttpFetcher
from trends.adapters.base import call_with_retry, make_item
from trends.filters import filter_by_time_range, parse_iso
from trends.models import AdapterOptions, ContentItem, Engagement, SourceConfig

logger = logging.getLogger(__name__)

HF_API = "https://huggingface.co/api"


class HuggingFaceAdapter:
    def __init__(self, source: SourceConfig, fetcher: Optional[HttpFetcher] = None, limit: int = 20) -> None:
        self.source = source
        self.fetcher = fetcher or HttpFetcher()
        self.limit = limit

    def fetch(self, options: Optional[AdapterOptions] = None) -> List[ContentItem]:
        options = options or AdapterOptions()
        now = datetime.now(timezone.utc)
        items: List[ContentItem] = []
        for kind in ("models", "spaces"):
            try:
                items.extend(self._listing(kind, options, now))
            except Exception as exc:
                logger.warning("Hugging Face %s fetch failed: %s", kind, exc)
        items.sort(key=lambda item: item.published_at, reverse=True)
        return filter_by_time_range(items, options.time_range, now=now)

    def _listing(self, kind: str, options: AdapterOptions, now: datetime) -> List[ContentItem]:
        params = {"sort": "lastModified", "direction": -1, "limit": self.limit}
        if kind == "models":
            params["full"] = "true"
        payload = call_with_retry(lambda: self.fetcher.get_json(f"{HF_API}/{kind}", params=params), options)
        return [self._to_item(kind, entry, now) for entry in payload or [] if entry.get("id")]

    def _to_item(self, kind: str, entry: Dict[str, Any], now: datetime) -> ContentItem:
        repo_id = entry["id"]
        is_space = kind == "spaces"
        url = f"https://huggingface.co/spaces/{repo_id}" if is_space else f"https://huggingface.co/{repo_id}"
        if is_space:
            sdk = entry.get("sdk")
            description = f"Space built with {sdk}" if sdk else "Hugging Face Space"
            tags = ["space"] + ([sdk] if sdk else [])
        else:
            pipeline = entry.get("pipeline_tag")
            description = f"{pipeline} model" if pipeline else "Hugging Face model"
            tags = ["model"] + ([pipeline] if pipeline else [])
        return make_item(
            self.source,
            url,
            title=repo_id,
            url=url,
            published_at=parse_iso(entry.get("lastModified") or entry.get("createdAt")),
            description=description,
            author=entry.get("author") or repo_id.split("/")[0],
            tags=tags,
            engagement=Engagement(
                downloads=None if is_space else entry.get("downloads") or 0,
                likes=entry.get("likes") or 0,
            ),
            fetched_at=now,
        )
