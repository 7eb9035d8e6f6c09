"""
Merge the static catalogue, user settings and per-source overrides into the
effective configuration the pipeline runs with.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

from trends.cache import MemoryCache
from trends.models import CustomSourceConfig, SourceCategory, SourceConfig, Subreddit, TimeRange, YouTubeChannel
from trends.settings_store import RESOLVED_PREFIX, SettingsRepository
from trends.sources import SourceCatalogue

logger = logging.getLogger(__name__)

EFFECTIVE_CONFIG_KEY = RESOLVED_PREFIX + "effectiveConfig"
SOURCE_LIST_KEY = RESOLVED_PREFIX + "sourceList"

DEFAULT_THEME = "dark"
DEFAULT_TIME_RANGE = TimeRange.DAY
DEFAULT_PRIORITY = 3


@dataclass(frozen=True)
class ResolvedSource:
    config: SourceConfig
    is_enabled: bool
    is_custom: bool
    effective_priority: int
    origin: str = "catalogue"

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def category(self) -> SourceCategory:
        return self.config.category

    def as_source_config(self) -> SourceConfig:
        """The static definition with user overrides applied."""
        return replace(self.config, enabled=self.is_enabled, default_priority=self.effective_priority)


@dataclass
class EffectiveSourceList:
    all: List[ResolvedSource]
    enabled: List[ResolvedSource]
    enabled_ids: List[str]
    active_categories: List[SourceCategory]


@dataclass
class EffectiveConfig:
    theme: str = DEFAULT_THEME
    time_range: TimeRange = DEFAULT_TIME_RANGE
    enabled_source_ids: List[str] = field(default_factory=list)
    priorities: Dict[str, int] = field(default_factory=dict)
    boost_keywords: List[str] = field(default_factory=list)
    custom_sources: List[CustomSourceConfig] = field(default_factory=list)
    deleted_source_ids: List[str] = field(default_factory=list)
    youtube_channels: List[YouTubeChannel] = field(default_factory=list)
    custom_subreddits: List[Subreddit] = field(default_factory=list)


def _parse_time_range(raw: object) -> TimeRange:
    try:
        return TimeRange(raw) if raw else DEFAULT_TIME_RANGE
    except ValueError:
        logger.warning("Stored timeRange %r is invalid; using %s", raw, DEFAULT_TIME_RANGE.value)
        return DEFAULT_TIME_RANGE


class ConfigResolver:
    def __init__(self, repository: SettingsRepository, cache: MemoryCache, catalogue: SourceCatalogue) -> None:
        self.repository = repository
        self.cache = cache
        self.catalogue = catalogue

    def get_effective_sources(self) -> EffectiveSourceList:
        cached = self.cache.get(SOURCE_LIST_KEY)
        if cached is not None:
            return cached

        generation = self.cache.generation
        self.repository.load_all_settings()
        deleted = set(self.repository.deleted_source_ids())
        rows = self.repository.source_rows()

        resolved: List[ResolvedSource] = []
        for source in self.catalogue.all():
            if source.id in deleted:
                continue
            enabled, priority = rows.get(source.id, (None, None))
            resolved.append(
                ResolvedSource(
                    config=source,
                    is_enabled=source.enabled if enabled is None else bool(enabled),
                    is_custom=False,
                    effective_priority=priority or source.default_priority or DEFAULT_PRIORITY,
                )
            )
        seen = {source.id for source in self.catalogue.all()}
        for generated, origin in self._followed_sources():
            if generated.id in deleted or generated.id in seen:
                continue
            seen.add(generated.id)
            enabled, priority = rows.get(generated.id, (None, None))
            resolved.append(
                ResolvedSource(
                    config=generated,
                    is_enabled=True if enabled is None else bool(enabled),
                    is_custom=False,
                    effective_priority=priority or generated.default_priority or DEFAULT_PRIORITY,
                    origin=origin,
                )
            )
        for custom in self.repository.custom_sources():
            if custom.id in deleted or custom.id in self.catalogue:
                continue
            resolved.append(
                ResolvedSource(
                    config=custom.to_source_config(),
                    is_enabled=custom.enabled,
                    is_custom=True,
                    effective_priority=custom.priority or DEFAULT_PRIORITY,
                    origin="custom",
                )
            )

        enabled_sources = [source for source in resolved if source.is_enabled]
        active: List[SourceCategory] = []
        for source in enabled_sources:
            if source.category not in active:
                active.append(source.category)
        result = EffectiveSourceList(
            all=resolved,
            enabled=enabled_sources,
            enabled_ids=[source.id for source in enabled_sources],
            active_categories=active,
        )
        self.cache.set(SOURCE_LIST_KEY, result, generation=generation)
        return result

    def get_effective_config(self) -> EffectiveConfig:
        cached = self.cache.get(EFFECTIVE_CONFIG_KEY)
        if cached is not None:
            return cached

        generation = self.cache.generation
        sources = self.get_effective_sources()
        repo = self.repository
        config = EffectiveConfig(
            theme=repo.get_setting("theme", DEFAULT_THEME),
            time_range=_parse_time_range(repo.get_setting("timeRange")),
            enabled_source_ids=list(sources.enabled_ids),
            priorities={source.id: source.effective_priority for source in sources.all},
            boost_keywords=[str(k) for k in repo.get_setting("boostKeywords", []) or []],
            custom_sources=repo.custom_sources(),
            deleted_source_ids=repo.deleted_source_ids(),
            youtube_channels=self.youtube_channels(),
            custom_subreddits=self.custom_subreddits(),
        )
        self.cache.set(EFFECTIVE_CONFIG_KEY, config, generation=generation)
        return config

    def youtube_channels(self) -> List[YouTubeChannel]:
        return self.repository.youtube_channels(self.catalogue.default_youtube_channels)

    def custom_subreddits(self) -> List[Subreddit]:
        return self.repository.custom_subreddits(self.catalogue.default_subreddits)

    def _followed_sources(self) -> List[Tuple[SourceConfig, str]]:
        """Sources generated from the channel and subreddit follow lists."""
        followed = [(channel.to_source_config(), "youtube-channel") for channel in self.youtube_channels()]
        for subreddit in self.custom_subreddits():
            if self.catalogue.covers_subreddit(subreddit.name):
                continue
            followed.append((subreddit.to_source_config(), "subreddit"))
        return followed

    def get_source(self, source_id: str) -> Optional[ResolvedSource]:
        for source in self.get_effective_sources().all:
            if source.id == source_id:
                return source
        return None

    def sources_for_categories(
        self, categories: Iterable[SourceCategory], enabled_only: bool = True
    ) -> List[ResolvedSource]:
        wanted = set(categories)
        sources = self.get_effective_sources()
        pool = sources.enabled if enabled_only else sources.all
        return [source for source in pool if source.category in wanted]

    def invalidate(self) -> None:
        self.cache.invalidate_pattern(RESOLVED_PREFIX)
