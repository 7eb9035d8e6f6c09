"""
Static source catalogue: typed view over `sources.yaml`.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from trends.config_loader import load_sources_config
from trends.models import FetchMethod, SourceCategory, SourceConfig, Subreddit, YouTubeChannel

logger = logging.getLogger(__name__)


def _clamp_priority(value: Any, default: int = 3) -> int:
    try:
        return max(1, min(5, int(value)))
    except (TypeError, ValueError):
        return default


def source_from_mapping(entry: Mapping[str, Any]) -> SourceConfig:
    return SourceConfig(
        id=str(entry["id"]),
        name=str(entry.get("name") or entry["id"]),
        category=SourceCategory(entry["category"]),
        url=str(entry.get("url") or entry.get("feed_url") or ""),
        method=FetchMethod.parse(str(entry.get("method", "feed"))),
        feed_url=entry.get("feed_url") or None,
        enabled=bool(entry.get("enabled", True)),
        requires_key=bool(entry.get("requires_key", False)),
        api_key_env_var=entry.get("api_key_env_var") or None,
        default_priority=_clamp_priority(entry.get("priority", 3)),
        relevance_filter=bool(entry.get("relevance_filter", False)),
        icon=entry.get("icon"),
    )


class SourceCatalogue:
    """Immutable, ordered collection of static source definitions."""

    def __init__(
        self,
        sources: Iterable[SourceConfig],
        youtube_channels: Iterable[YouTubeChannel] = (),
        subreddits: Iterable[Subreddit] = (),
    ) -> None:
        self._sources: Dict[str, SourceConfig] = {}
        for source in sources:
            if source.id in self._sources:
                raise ValueError(f"Duplicate source id '{source.id}' in catalogue")
            self._sources[source.id] = source
        self.default_youtube_channels: List[YouTubeChannel] = list(youtube_channels)
        self.default_subreddits: List[Subreddit] = list(subreddits)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "SourceCatalogue":
        config = load_sources_config(path)
        sources: List[SourceConfig] = []
        for entry in config.get("sources", []) or []:
            try:
                sources.append(source_from_mapping(entry))
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping invalid source entry %s: %s", entry, exc)
        channels: List[YouTubeChannel] = []
        for entry in config.get("youtube_channels", []) or []:
            try:
                channels.append(YouTubeChannel(channel_id=str(entry["channel_id"]), name=str(entry["name"])))
            except (KeyError, TypeError) as exc:
                logger.warning("Skipping invalid channel entry %s: %s", entry, exc)
        subreddits = [Subreddit(name=str(name)) for name in config.get("subreddits", []) or []]
        return cls(sources, youtube_channels=channels, subreddits=subreddits)

    def covers_subreddit(self, name: str) -> bool:
        """True when a static source already reads r/<name>."""
        marker = f"/r/{name.lower()}/"
        return any(marker in (source.url or "").lower() for source in self._sources.values())

    def all(self) -> List[SourceConfig]:
        return list(self._sources.values())

    def get(self, source_id: str) -> Optional[SourceConfig]:
        return self._sources.get(source_id)

    def by_category(self, category: SourceCategory) -> List[SourceConfig]:
        return [s for s in self._sources.values() if s.category == category]

    def categories(self) -> List[SourceCategory]:
        seen: List[SourceCategory] = []
        for source in self._sources.values():
            if source.category not in seen:
                seen.append(source.category)
        return seen

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources

    def __len__(self) -> int:
        return len(self._sources)
