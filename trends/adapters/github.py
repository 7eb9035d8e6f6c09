"""
Recently active, highly starred AI repositories from the GitHub search API.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from crawler.infra.http import HttpFetcher
from trends.adapters.base import call_with_retry, make_item
from trends.filters import filter_by_time_range, parse_iso
from trends.models import AdapterOptions, ContentItem, Engagement, SourceConfig
from utils.security import is_configured_key

logger = logging.getLogger(__name__)

GITHUB_SEARCH_URL = "https://api.github.com/search/repositories"
SEARCH_TERMS = '(AI OR LLM OR "machine learning" OR "deep learning" OR GPT OR transformer)'


class GitHubAdapter:
    def __init__(
        self,
        source: SourceConfig,
        fetcher: Optional[HttpFetcher] = None,
        env: Optional[Mapping[str, str]] = None,
        lookback_days: int = 7,
        per_page: int = 25,
    ) -> None:
        self.source = source
        self.fetcher = fetcher or HttpFetcher()
        env = os.environ if env is None else env
        token = env.get(source.api_key_env_var or "GITHUB_TOKEN")
        self.token = token if is_configured_key(token) else None
        self.lookback_days = lookback_days
        self.per_page = per_page

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def fetch(self, options: Optional[AdapterOptions] = None) -> List[ContentItem]:
        options = options or AdapterOptions()
        now = datetime.now(timezone.utc)
        since = (now - timedelta(days=self.lookback_days)).strftime("%Y-%m-%d")
        params = {
            "q": f"{SEARCH_TERMS} pushed:>{since}",
            "sort": "stars",
            "order": "desc",
            "per_page": self.per_page,
        }
        try:
            payload = call_with_retry(
                lambda: self.fetcher.get_json(GITHUB_SEARCH_URL, params=params, headers=self._headers()),
                options,
            )
            items = [self._to_item(repo, now) for repo in (payload or {}).get("items", [])]
            return filter_by_time_range(items, options.time_range, now=now)
        except Exception as exc:
            logger.warning("GitHub fetch failed for %s: %s", self.source.name, exc)
            return []

    def _to_item(self, repo: Dict[str, Any], now: datetime) -> ContentItem:
        tags = list(repo.get("topics") or [])[:3]
        if repo.get("language"):
            tags.append(repo["language"])
        owner = repo.get("owner") or {}
        return make_item(
            self.source,
            repo.get("html_url") or repo.get("full_name") or str(repo.get("id")),
            title=repo.get("full_name") or repo.get("name") or "",
            url=repo.get("html_url") or "",
            published_at=parse_iso(repo.get("pushed_at") or repo.get("updated_at")),
            description=repo.get("description") or "",
            image_url=owner.get("avatar_url"),
            author=owner.get("login"),
            tags=tags,
            engagement=Engagement(stars=repo.get("stargazers_count") or 0, forks=repo.get("forks_count") or 0),
            fetched_at=now,
        )
