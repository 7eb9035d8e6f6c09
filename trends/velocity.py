"""
Engagement snapshots and velocity (rate of change of the primary metric).
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from trends.db import engagement_snapshots_table
from trends.models import Engagement

logger = logging.getLogger(__name__)

WRITE_LOOKBACK = timedelta(hours=6)
READ_LOOKBACK = timedelta(hours=24)
# Below this gap the previous velocity is carried forward instead of dividing
# by a near-zero interval.
MIN_ELAPSED_HOURS = 0.5
INSERT_BATCH_SIZE = 100
LOOKUP_CHUNK_SIZE = 500

_COUNTER_COLUMNS = ("upvotes", "comments", "views", "likes", "stars", "forks", "downloads", "claps")


def compute_velocity(
    current: int,
    prior: Optional[Tuple[datetime, int, float]],
    now: datetime,
) -> float:
    """
    ``prior`` is ``(snapshot_at, primary_metric, velocity_score)`` of the most
    recent earlier snapshot inside the lookback window, if any.
    """
    if prior is None:
        return 0.0
    snapshot_at, prior_metric, prior_velocity = prior
    hours = (now - snapshot_at).total_seconds() / 3600.0
    if hours < MIN_ELAPSED_HOURS:
        return prior_velocity
    return (current - prior_metric) / hours


def _chunks(values: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


class VelocityTracker:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def record_snapshots_batch(
        self,
        entries: Iterable[Tuple[str, Engagement]],
        now: Optional[datetime] = None,
    ) -> int:
        """Append one snapshot per entry; returns rows written."""
        batch = [(content_id, engagement) for content_id, engagement in entries if engagement is not None]
        if not batch:
            return 0
        now = now or datetime.now(timezone.utc)
        prior = self._latest_snapshots([content_id for content_id, _ in batch], now - WRITE_LOOKBACK)

        rows = []
        for content_id, engagement in batch:
            previous = prior.get(content_id)
            previous_tuple = None
            if previous is not None:
                previous_tuple = (previous["snapshot_at"], previous["primary"], previous["velocity_score"])
            counters = engagement.as_dict()
            row = {name: counters.get(name) for name in _COUNTER_COLUMNS}
            row.update(
                content_id=content_id,
                snapshot_at=now,
                velocity_score=compute_velocity(engagement.primary_metric(), previous_tuple, now),
            )
            rows.append(row)

        written = 0
        for start in range(0, len(rows), INSERT_BATCH_SIZE):
            chunk = rows[start : start + INSERT_BATCH_SIZE]
            try:
                with self.engine.begin() as conn:
                    conn.execute(insert(engagement_snapshots_table), chunk)
                written += len(chunk)
            except SQLAlchemyError as exc:
                logger.error("Failed to record engagement snapshots %s-%s: %s", start, start + len(chunk) - 1, exc)
        logger.debug("Recorded %s/%s engagement snapshots", written, len(rows))
        return written

    def bulk_velocities(self, content_ids: Iterable[str], now: Optional[datetime] = None) -> Dict[str, float]:
        ids = list(dict.fromkeys(content_ids))
        if not ids:
            return {}
        now = now or datetime.now(timezone.utc)
        latest = self._latest_snapshots(ids, now - READ_LOOKBACK)
        return {content_id: row["velocity_score"] for content_id, row in latest.items()}

    def cleanup(self, retention_days: int = 30, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=retention_days)
        t = engagement_snapshots_table
        with self.engine.begin() as conn:
            result = conn.execute(delete(t).where(t.c.snapshot_at < cutoff))
        return result.rowcount or 0

    def _latest_snapshots(self, content_ids: List[str], since: datetime) -> Dict[str, dict]:
        """Newest snapshot per id at or after ``since``, in one query per chunk."""
        t = engagement_snapshots_table
        latest: Dict[str, dict] = {}
        with self.engine.connect() as conn:
            for chunk in _chunks(content_ids, LOOKUP_CHUNK_SIZE):
                stmt = (
                    select(t)
                    .where(t.c.content_id.in_(list(chunk)), t.c.snapshot_at >= since)
                    .order_by(t.c.snapshot_at.desc(), t.c.id.desc())
                )
                for row in conn.execute(stmt).mappings():
                    if row["content_id"] in latest:
                        continue
                    engagement = Engagement.from_dict({name: row[name] for name in _COUNTER_COLUMNS})
                    latest[row["content_id"]] = {
                        "snapshot_at": row["snapshot_at"],
                        "primary": engagement.primary_metric() if engagement else 0,
                        "velocity_score": row["velocity_score"] or 0.0,
                    }
        return latest
