"""
Public API for the AI trends aggregation pipeline.

``TrendsContext`` wires the store, resolver, orchestrator and caches together
once per process; ``get_context()`` builds the default one lazily from the
environment.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy.engine import Engine

from trends.adapters.factory import create_adapter
from crawler.infra.http import HttpFetcher
from trends.cache import MemoryCache
from trends.db import create_db_engine, init_db
from trends.discovery import FeedDetector
from trends.feed import FeedService
from trends.freshness import FreshnessTracker
from trends.orchestrator import AdapterFactory, FreshnessOrchestrator
from trends.progress import RefreshProgress
from trends.rate_limiter import SlidingWindowLimiter
from trends.resolver import ConfigResolver
from trends.scoring import TrendingScorer
from trends.sentiment import SentimentAnalyzer
from trends.settings import TrendsSettings, load_settings
from trends.settings_store import SettingsRepository
from trends.sources import SourceCatalogue
from trends.store import ContentStore
from trends.tasks import BackgroundTasks
from trends.velocity import VelocityTracker

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT, handlers=handlers)


@dataclass
class TrendsContext:
    settings: TrendsSettings
    engine: Engine
    catalogue: SourceCatalogue
    settings_cache: MemoryCache
    feed_cache: MemoryCache
    repository: SettingsRepository
    resolver: ConfigResolver
    sentiment: SentimentAnalyzer
    store: ContentStore
    freshness: FreshnessTracker
    velocity: VelocityTracker
    tasks: BackgroundTasks
    progress: RefreshProgress
    orchestrator: FreshnessOrchestrator
    scorer: TrendingScorer
    rate_limiter: SlidingWindowLimiter
    detector: Optional[FeedDetector] = None
    env: Optional[Mapping[str, str]] = None
    feed: Optional[FeedService] = None

    @classmethod
    def build(
        cls,
        settings: Optional[TrendsSettings] = None,
        engine: Optional[Engine] = None,
        catalogue: Optional[SourceCatalogue] = None,
        adapter_factory: AdapterFactory = create_adapter,
        env: Optional[Mapping[str, str]] = None,
        fetcher: Optional[HttpFetcher] = None,
    ) -> "TrendsContext":
        settings = settings or load_settings()
        engine = engine or create_db_engine(settings.database_url)
        init_db(engine)
        if catalogue is None:
            catalogue = SourceCatalogue.load(settings.sources_file)

        settings_cache = MemoryCache()
        feed_cache = MemoryCache(ttl_seconds=settings.feed_cache_ttl, max_entries=settings.feed_cache_max_entries)
        repository = SettingsRepository(engine, settings_cache, feed_cache=feed_cache)
        sentiment = SentimentAnalyzer()
        store = ContentStore(engine, sentiment=sentiment)
        freshness = FreshnessTracker(engine, catalogue)
        velocity = VelocityTracker(engine)
        tasks = BackgroundTasks()
        progress = RefreshProgress()
        orchestrator = FreshnessOrchestrator(
            store,
            freshness,
            repository,
            velocity,
            tasks=tasks,
            progress=progress,
            adapter_factory=adapter_factory,
            adapter_timeout=settings.adapter_timeout,
            max_workers=settings.max_workers,
            env=env,
        )
        context = cls(
            settings=settings,
            engine=engine,
            catalogue=catalogue,
            settings_cache=settings_cache,
            feed_cache=feed_cache,
            repository=repository,
            resolver=ConfigResolver(repository, settings_cache, catalogue),
            sentiment=sentiment,
            store=store,
            freshness=freshness,
            velocity=velocity,
            tasks=tasks,
            progress=progress,
            orchestrator=orchestrator,
            scorer=TrendingScorer(),
            rate_limiter=SlidingWindowLimiter(settings.rate_limit_per_minute, 60.0),
            detector=FeedDetector(fetcher),
            env=env,
        )
        context.feed = FeedService(context)
        return context

    def close(self) -> None:
        self.tasks.drain(timeout=30)
        self.tasks.shutdown()
        self.engine.dispose()


_context: Optional[TrendsContext] = None
_context_lock = threading.Lock()


def get_context() -> TrendsContext:
    global _context
    with _context_lock:
        if _context is None:
            _context = TrendsContext.build()
        return _context


__all__ = ["TrendsContext", "configure_logging", "get_context", "LOG_FORMAT"]
