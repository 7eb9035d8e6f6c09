"""
Content store: idempotent upserts and per-source-capped time-range queries.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from trends.db import content_items_table, dialect_insert, dumps, loads
from trends.models import ContentItem, Engagement, TimeRange
from trends.sentiment import SentimentAnalyzer

logger = logging.getLogger(__name__)

UPSERT_BATCH_SIZE = 100
MAX_ITEMS_PER_SOURCE = 50
DEFAULT_QUERY_LIMIT = 2000
DEFAULT_RETENTION_DAYS = 30

_UPDATABLE_COLUMNS = (
    "source_id",
    "title",
    "description",
    "url",
    "image_url",
    "published_at",
    "fetched_at",
    "author",
    "tags",
    "sentiment",
    "sentiment_score",
    "engagement",
)


def per_source_cap(limit: int, source_count: int, floor: int = MAX_ITEMS_PER_SOURCE) -> int:
    if source_count <= 0:
        return floor
    return max(floor, math.ceil(limit / source_count * 2))


class ContentStore:
    def __init__(
        self,
        engine: Engine,
        sentiment: Optional[SentimentAnalyzer] = None,
        batch_size: int = UPSERT_BATCH_SIZE,
        max_items_per_source: int = MAX_ITEMS_PER_SOURCE,
    ) -> None:
        self.engine = engine
        self.sentiment = sentiment
        self.batch_size = batch_size
        self.max_items_per_source = max_items_per_source

    def upsert(self, items: Iterable[ContentItem]) -> int:
        """
        Insert-or-update keyed by item id, in independent batches.

        A batch that violates a constraint (for example an unknown source id)
        is logged and dropped; the other batches still commit. Returns the
        number of rows written.
        """
        latest: Dict[str, ContentItem] = {}
        for item in items:
            latest[item.id] = item
        if not latest:
            return 0

        rows = [self._to_row(self._with_sentiment(item)) for item in latest.values()]
        insert = dialect_insert(self.engine)
        cached = 0
        for start in range(0, len(rows), self.batch_size):
            batch = rows[start : start + self.batch_size]
            stmt = insert(content_items_table).values(batch)
            stmt = stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={name: stmt.excluded[name] for name in _UPDATABLE_COLUMNS},
            )
            try:
                with self.engine.begin() as conn:
                    conn.execute(stmt)
                cached += len(batch)
            except SQLAlchemyError as exc:
                logger.error(
                    "Failed to cache batch %s-%s: %s",
                    start,
                    start + len(batch) - 1,
                    getattr(exc, "orig", None) or exc,
                )

        if cached != len(rows):
            logger.warning("Cached %s/%s items; %s dropped by failed batches", cached, len(rows), len(rows) - cached)
        else:
            logger.info("Cached %s/%s items", cached, len(rows))
        return cached

    def query_by_time_range(
        self,
        source_ids: Iterable[str],
        time_range: TimeRange,
        limit: int = DEFAULT_QUERY_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[ContentItem]:
        """
        Items published within ``time_range`` for the given sources, newest
        first. Each source contributes at most ``per_source_cap`` rows before
        the global limit applies, so a chatty source cannot crowd out the rest.
        """
        ids = sorted(set(source_ids))
        if not ids or limit <= 0:
            return []
        now = now or datetime.now(timezone.utc)
        cutoff = TimeRange(time_range).cutoff(now)
        cap = per_source_cap(limit, len(ids), self.max_items_per_source)

        t = content_items_table
        rank = (
            func.row_number()
            .over(partition_by=t.c.source_id, order_by=(t.c.published_at.desc(), t.c.id))
            .label("rn")
        )
        ranked = (
            select(*t.c, rank)
            .where(t.c.source_id.in_(ids), t.c.published_at >= cutoff)
            .subquery("ranked")
        )
        stmt = (
            select(*[ranked.c[column.name] for column in t.c])
            .where(ranked.c.rn <= cap)
            .order_by(ranked.c.published_at.desc(), ranked.c.id)
            .limit(limit)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [self._from_row(row) for row in rows]

    def get_items(self, ids: Sequence[str]) -> List[ContentItem]:
        if not ids:
            return []
        t = content_items_table
        with self.engine.connect() as conn:
            rows = conn.execute(select(t).where(t.c.id.in_(list(ids)))).mappings().all()
        return [self._from_row(row) for row in rows]

    def count(self, source_id: Optional[str] = None) -> int:
        t = content_items_table
        stmt = select(func.count()).select_from(t)
        if source_id is not None:
            stmt = stmt.where(t.c.source_id == source_id)
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def sweep(self, retention_days: int = DEFAULT_RETENTION_DAYS, now: Optional[datetime] = None) -> int:
        """Delete items fetched before the retention cutoff; returns rows removed."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=retention_days)
        with self.engine.begin() as conn:
            result = conn.execute(delete(content_items_table).where(content_items_table.c.fetched_at < cutoff))
        removed = result.rowcount or 0
        logger.info("Swept %s items fetched before %s", removed, cutoff.isoformat())
        return removed

    def _with_sentiment(self, item: ContentItem) -> ContentItem:
        if item.sentiment is not None or self.sentiment is None:
            return item
        label, score = self.sentiment.classify(f"{item.title} {item.description}")
        return replace(item, sentiment=label, sentiment_score=score)

    @staticmethod
    def _to_row(item: ContentItem) -> Dict[str, Any]:
        return {
            "id": item.id,
            "source_id": item.source_id,
            "title": item.title,
            "description": item.description,
            "url": item.url,
            "image_url": item.image_url,
            "published_at": item.published_at,
            "fetched_at": item.fetched_at,
            "author": item.author,
            "tags": dumps(list(item.tags or [])),
            "sentiment": item.sentiment,
            "sentiment_score": item.sentiment_score,
            "engagement": dumps(item.engagement.as_dict()) if item.engagement else None,
        }

    @staticmethod
    def _from_row(row: Mapping[str, Any]) -> ContentItem:
        return ContentItem(
            id=row["id"],
            source_id=row["source_id"],
            title=row["title"],
            description=row["description"] or "",
            url=row["url"],
            image_url=row["image_url"],
            published_at=row["published_at"],
            fetched_at=row["fetched_at"],
            author=row["author"],
            tags=loads(row["tags"], default=[]),
            engagement=Engagement.from_dict(loads(row["engagement"])),
            sentiment=row["sentiment"],
            sentiment_score=row["sentiment_score"],
        )
