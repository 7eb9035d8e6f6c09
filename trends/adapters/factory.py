"""
Map a source definition to a constructed adapter, or ``None``.

``None`` means "do not fetch this source in this pass": the source is
disabled, needs an API key that is not configured, or has no adapter for its
method/id. Callers skip it silently.
"""
from __future__ import annotations

import logging
import os
from typing import Callable, Dict, Mapping, Optional
from urllib.parse import urlsplit

from trends.adapters.anthropic import AnthropicNewsAdapter
from trends.adapters.base import SourceAdapter
from trends.adapters.github import GitHubAdapter
from trends.adapters.hackernews import HackerNewsAdapter
from trends.adapters.huggingface import HuggingFaceAdapter
from trends.adapters.medium import MediumAdapter
from trends.adapters.reddit import RedditAdapter
from trends.adapters.rss import FeedAdapter
from trends.adapters.youtube import YouTubeAdapter
from trends.models import FetchMethod, SourceConfig
from utils.security import has_env_key

logger = logging.getLogger(__name__)

AdapterBuilder = Callable[[SourceConfig, Mapping[str, str]], SourceAdapter]

_API_ADAPTERS: Dict[str, AdapterBuilder] = {
    "hackernews": lambda source, env: HackerNewsAdapter(source),
    "github-trending": lambda source, env: GitHubAdapter(source, env=env),
    "huggingface": lambda source, env: HuggingFaceAdapter(source),
    "youtube": lambda source, env: YouTubeAdapter(source, env=env),
}

_SCRAPE_ADAPTERS: Dict[str, AdapterBuilder] = {
    "anthropic-blog": lambda source, env: AnthropicNewsAdapter(source),
}


def _is_medium(feed_url: str) -> bool:
    host = urlsplit(feed_url).netloc.lower()
    return host == "medium.com" or host.endswith(".medium.com")


def _route(source: SourceConfig, env: Mapping[str, str]) -> Optional[SourceAdapter]:
    if source.method == FetchMethod.FEED:
        if not source.feed_url:
            logger.warning("No feed URL for feed source: %s", source.name)
            return None
        if _is_medium(source.feed_url):
            return MediumAdapter(source)
        return FeedAdapter(source)

    if source.method == FetchMethod.API:
        if source.id.startswith("reddit-"):
            return RedditAdapter(source)
        builder = _API_ADAPTERS.get(source.id)
    elif source.method == FetchMethod.SCRAPE:
        builder = _SCRAPE_ADAPTERS.get(source.id)
    else:
        builder = None

    if builder is None:
        logger.info("No adapter available for %s (%s)", source.name, source.method.value)
        return None
    return builder(source, env)


def create_adapter(source: SourceConfig, env: Optional[Mapping[str, str]] = None) -> Optional[SourceAdapter]:
    env = os.environ if env is None else env
    if not source.enabled:
        return None
    if source.requires_key and not has_env_key(env, source.api_key_env_var):
        logger.info("Skipping %s: API key not configured (%s)", source.name, source.api_key_env_var)
        return None
    try:
        return _route(source, env)
    except ValueError as exc:
        logger.info("Adapter for %s not available: %s", source.name, exc)
        return None
