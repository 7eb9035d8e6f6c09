"""
Periodic maintenance and the APScheduler worker entry point.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Dict, Iterable, Optional

from apscheduler.schedulers.blocking import BlockingScheduler

from trends.filters import parse_iso
from trends.models import FreshnessResult, SourceCategory

if TYPE_CHECKING:  # pragma: no cover
    from trends import TrendsContext

logger = logging.getLogger(__name__)

LAST_CLEANUP_KEY = "lastCleanupTime"
SWEEP_INTERVAL = timedelta(hours=24)


def run_sweep(context: "TrendsContext", retention_days: Optional[int] = None, now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or datetime.now(timezone.utc)
    days = retention_days or context.settings.retention_days
    snapshots = context.velocity.cleanup(days, now=now)
    removed = context.store.sweep(days, now=now)
    context.repository.update_setting(LAST_CLEANUP_KEY, now.isoformat())
    logger.info("Retention sweep removed %s items and %s snapshots older than %s days", removed, snapshots, days)
    return {"items": removed, "snapshots": snapshots}


def maybe_sweep(context: "TrendsContext", now: Optional[datetime] = None) -> bool:
    """Run the retention sweep if the last one is more than a day old."""
    now = now or datetime.now(timezone.utc)
    last_raw = context.repository.get_setting(LAST_CLEANUP_KEY)
    if last_raw and now - parse_iso(last_raw) < SWEEP_INTERVAL:
        return False
    run_sweep(context, now=now)
    return True


def refresh_sources(
    context: "TrendsContext",
    categories: Optional[Iterable[SourceCategory]] = None,
    force: bool = False,
) -> FreshnessResult:
    if categories:
        resolved = context.resolver.sources_for_categories(categories)
    else:
        resolved = context.resolver.get_effective_sources().enabled
    return context.orchestrator.ensure_fresh([source.as_source_config() for source in resolved], force=force)


def run_scheduler(context: "TrendsContext") -> None:
    scheduler = BlockingScheduler(timezone="UTC")

    def job_refresh():
        result = refresh_sources(context)
        context.tasks.drain(timeout=60)
        logger.info(
            "Scheduled refresh: %s stale, %s fresh, %s failures",
            result.stale_count,
            result.fresh_count,
            len(result.failures),
        )

    def job_sweep():
        run_sweep(context)

    scheduler.add_job(
        job_refresh,
        "interval",
        minutes=context.settings.refresh_minutes,
        id="refresh_sources",
        next_run_time=datetime.now(timezone.utc),
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(job_sweep, "cron", hour=3, minute=30, id="daily_sweep")
    logger.info("Starting scheduler: refresh every %s minutes", context.settings.refresh_minutes)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
