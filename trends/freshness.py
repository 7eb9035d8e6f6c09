"""
Per-source staleness bookkeeping backed by ``sources.last_fetched_at``.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.engine import Engine

from trends.db import dialect_insert, sources_table
from trends.models import Freshness, SourceCategory
from trends.sources import SourceCatalogue

logger = logging.getLogger(__name__)

CATEGORY_TTLS: Dict[SourceCategory, timedelta] = {
    SourceCategory.COMMUNITY: timedelta(minutes=5),
    SourceCategory.SOCIAL: timedelta(minutes=15),
    SourceCategory.NEWS: timedelta(minutes=15),
    SourceCategory.AI_LABS: timedelta(minutes=15),
    SourceCategory.CREATIVE_AI: timedelta(minutes=15),
    SourceCategory.DEV_PLATFORMS: timedelta(minutes=15),
    SourceCategory.NEWSLETTERS: timedelta(minutes=30),
    SourceCategory.LEADERBOARDS: timedelta(minutes=60),
}
DEFAULT_TTL = timedelta(minutes=15)


def ttl_for(category: Optional[SourceCategory]) -> timedelta:
    if category is None:
        return DEFAULT_TTL
    return CATEGORY_TTLS.get(category, DEFAULT_TTL)


class FreshnessTracker:
    def __init__(self, engine: Engine, catalogue: Optional[SourceCatalogue] = None) -> None:
        self.engine = engine
        self.catalogue = catalogue

    def get_freshness(
        self,
        source_ids: Iterable[str],
        categories: Optional[Mapping[str, SourceCategory]] = None,
        now: Optional[datetime] = None,
    ) -> Freshness:
        ids = list(dict.fromkeys(source_ids))
        now = now or datetime.now(timezone.utc)
        fetched = self.last_fetched(ids)
        stale, fresh = set(), set()
        for source_id in ids:
            last = fetched.get(source_id)
            if last is not None and now - last < ttl_for(self._category(source_id, categories)):
                fresh.add(source_id)
            else:
                stale.add(source_id)
        return Freshness(stale=frozenset(stale), fresh=frozenset(fresh))

    def last_fetched(self, source_ids: Iterable[str]) -> Dict[str, Optional[datetime]]:
        ids = list(source_ids)
        if not ids:
            return {}
        t = sources_table
        with self.engine.connect() as conn:
            rows = conn.execute(select(t.c.id, t.c.last_fetched_at).where(t.c.id.in_(ids))).all()
        return {row.id: row.last_fetched_at for row in rows}

    def register_sources(self, source_ids: Iterable[str]) -> None:
        """Ensure a ``sources`` row exists for each id without touching existing ones."""
        rows = [{"id": source_id} for source_id in dict.fromkeys(source_ids)]
        if not rows:
            return
        stmt = dialect_insert(self.engine)(sources_table).values(rows).on_conflict_do_nothing(index_elements=["id"])
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def mark_fetched(self, source_ids: Iterable[str], now: Optional[datetime] = None) -> None:
        ids = list(dict.fromkeys(source_ids))
        if not ids:
            return
        now = now or datetime.now(timezone.utc)
        stmt = dialect_insert(self.engine)(sources_table).values([{"id": i, "last_fetched_at": now} for i in ids])
        stmt = stmt.on_conflict_do_update(index_elements=["id"], set_={"last_fetched_at": stmt.excluded.last_fetched_at})
        with self.engine.begin() as conn:
            conn.execute(stmt)
        logger.debug("Marked %s sources fetched at %s", len(ids), now.isoformat())

    def reset(self, source_ids: Iterable[str]) -> None:
        """Forget fetch times so the next pass treats the sources as stale."""
        ids = list(source_ids)
        if not ids:
            return
        with self.engine.begin() as conn:
            conn.execute(update(sources_table).where(sources_table.c.id.in_(ids)).values(last_fetched_at=None))

    def _category(
        self, source_id: str, categories: Optional[Mapping[str, SourceCategory]]
    ) -> Optional[SourceCategory]:
        if categories and source_id in categories:
            return categories[source_id]
        if self.catalogue is not None:
            source = self.catalogue.get(source_id)
            if source is not None:
                return source.category
        return None
