"""
Bring a set of sources up to date: fetch only the stale ones, concurrently,
within a bounded wait, and fold whatever came back into the store.
"""
from __future__ import annotations

import logging
import math
import os
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from crawler.pipelines.dedupe import dedupe_items
from utils.security import redact_secrets

from trends.adapters.base import SourceAdapter
from trends.adapters.factory import create_adapter
from trends.errors import AdapterTimeout
from trends.freshness import FreshnessTracker
from trends.models import AdapterOptions, ContentItem, FetchOutcome, FreshnessResult, SourceConfig, SourceFailure, TimeRange
from trends.progress import RefreshProgress
from trends.settings_store import SettingsRepository
from trends.store import ContentStore
from trends.tasks import BackgroundTasks
from trends.velocity import VelocityTracker

logger = logging.getLogger(__name__)

DEFAULT_ADAPTER_TIMEOUT = 10.0
DEFAULT_MAX_WORKERS = 16

AdapterFactory = Callable[[SourceConfig, Mapping[str, str]], Optional[SourceAdapter]]


class FreshnessOrchestrator:
    def __init__(
        self,
        store: ContentStore,
        freshness: FreshnessTracker,
        settings: SettingsRepository,
        velocity: VelocityTracker,
        tasks: Optional[BackgroundTasks] = None,
        progress: Optional[RefreshProgress] = None,
        adapter_factory: AdapterFactory = create_adapter,
        adapter_timeout: float = DEFAULT_ADAPTER_TIMEOUT,
        max_workers: int = DEFAULT_MAX_WORKERS,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.store = store
        self.freshness = freshness
        self.settings = settings
        self.velocity = velocity
        self.tasks = tasks
        self.progress = progress
        self.adapter_factory = adapter_factory
        self.adapter_timeout = adapter_timeout
        self.max_workers = max_workers
        self.env = os.environ if env is None else env

    def ensure_fresh(
        self,
        sources: Iterable[SourceConfig],
        time_range: Optional[TimeRange] = None,
        session_id: Optional[str] = None,
        force: bool = False,
    ) -> FreshnessResult:
        by_id: Dict[str, SourceConfig] = {}
        for source in sources:
            by_id.setdefault(source.id, source)
        if not by_id:
            return FreshnessResult(stale_count=0, fresh_count=0)

        if force:
            stale_ids = set(by_id)
        else:
            state = self.freshness.get_freshness(by_id, {sid: s.category for sid, s in by_id.items()})
            stale_ids = set(state.stale)
        stale = [source for sid, source in by_id.items() if sid in stale_ids]
        fresh_count = len(by_id) - len(stale)
        if not stale:
            logger.debug("All %s sources fresh for %s", fresh_count, time_range.value if time_range else "any range")
            return FreshnessResult(stale_count=0, fresh_count=fresh_count)

        adapters: List[Tuple[SourceConfig, SourceAdapter]] = []
        for source in stale:
            adapter = self.adapter_factory(source, self.env)
            if adapter is not None:
                adapters.append((source, adapter))
        logger.info(
            "Refreshing %s stale sources (%s with adapters, %s fresh)", len(stale), len(adapters), fresh_count
        )
        if not adapters:
            return FreshnessResult(stale_count=len(stale), fresh_count=fresh_count)

        if self.progress is not None and session_id:
            self.progress.start(session_id, [source for source, _ in adapters])
        outcomes = self._fan_out(adapters, session_id)
        if self.progress is not None and session_id:
            self.progress.end(session_id)

        items: List[ContentItem] = []
        for outcome in outcomes:
            if outcome.ok:
                items.extend(outcome.items)
        items = dedupe_items(items)

        self.freshness.register_sources(source.id for source, _ in adapters)
        if items:
            self.store.upsert(items)
        self.freshness.mark_fetched(outcome.source_id for outcome in outcomes if outcome.ok)

        self._background(self.settings.record_health, outcomes, name="record-health")
        snapshots = [(item.id, item.engagement) for item in items if item.engagement is not None]
        if snapshots:
            self._background(self.velocity.record_snapshots_batch, snapshots, name="engagement-snapshots")

        failures = [SourceFailure(source=o.source_name, error=o.error) for o in outcomes if not o.ok]
        for failure in failures:
            logger.warning("Fetch failed for %s: %s", failure.source, failure.error)
        return FreshnessResult(stale_count=len(stale), fresh_count=fresh_count, failures=failures)

    def _fan_out(self, adapters: List[Tuple[SourceConfig, SourceAdapter]], session_id: Optional[str]) -> List[FetchOutcome]:
        workers = max(1, min(self.max_workers, len(adapters)))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="trends-fetch")
        started: Dict[str, float] = {}
        futures = {
            executor.submit(self._call, adapter, source, session_id, started): source for source, adapter in adapters
        }
        timed_out = self._wait_per_call(futures, started, workers)
        # Stragglers keep running in their threads; their results are discarded.
        executor.shutdown(wait=False, cancel_futures=True)

        outcomes: List[FetchOutcome] = []
        for future, source in futures.items():
            if future in timed_out or not future.done():
                outcome = FetchOutcome(source.id, source.name, error=str(AdapterTimeout()))
            else:
                try:
                    result = future.result()
                except Exception as exc:
                    outcome = FetchOutcome(source.id, source.name, error=redact_secrets(str(exc)) or type(exc).__name__)
                else:
                    outcome = FetchOutcome(source.id, source.name, items=list(result or []))
            outcomes.append(outcome)
            self._report(session_id, outcome)
        return outcomes

    def _wait_per_call(self, futures: Dict[Future, SourceConfig], started: Dict[str, float], workers: int) -> Set[Future]:
        """
        Wait for every call, giving each ``adapter_timeout`` from the moment it
        starts running. Calls still queued when the pass ceiling (one timeout
        per wave of ``workers`` calls) is reached are given up on as well.
        Returns the futures that ran out of time.
        """
        timeout = self.adapter_timeout
        pass_deadline = time.monotonic() + timeout * math.ceil(len(futures) / workers)
        pending: Set[Future] = set(futures)
        expired: Set[Future] = set()
        while pending:
            now = time.monotonic()
            if now >= pass_deadline:
                expired |= pending
                break
            deadlines = [started[futures[f].id] + timeout for f in pending if futures[f].id in started]
            # A call starting after ``now`` cannot expire before ``now + timeout``.
            next_check = min(deadlines + [pass_deadline, now + timeout])
            _, pending = wait(pending, timeout=max(0.0, next_check - now), return_when=FIRST_COMPLETED)
            now = time.monotonic()
            late = {f for f in pending if futures[f].id in started and now >= started[futures[f].id] + timeout}
            expired |= late
            pending -= late
        return expired

    def _call(
        self, adapter: SourceAdapter, source: SourceConfig, session_id: Optional[str], started: Dict[str, float]
    ) -> List[ContentItem]:
        started[source.id] = time.monotonic()
        if self.progress is not None and session_id:
            self.progress.mark_fetching(session_id, source.id)
        # Fetch everything; the store filters by time range at read time.
        return adapter.fetch(AdapterOptions(time_range=None))

    def _report(self, session_id: Optional[str], outcome: FetchOutcome) -> None:
        if self.progress is None or not session_id:
            return
        if outcome.ok:
            self.progress.mark_done(session_id, outcome.source_id, len(outcome.items))
        else:
            self.progress.mark_failed(session_id, outcome.source_id, outcome.error)

    def _background(self, fn, *args, name: str) -> None:
        if self.tasks is None:
            try:
                fn(*args)
            except Exception:
                logger.exception("Task %s failed", name)
            return
        self.tasks.submit(fn, *args, name=name)
