"""
SQLAlchemy Core schema and engine helpers for the trends store.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.types import TypeDecorator

metadata = MetaData()


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


sources_table = Table(
    "sources",
    metadata,
    Column("id", String, primary_key=True),
    Column("enabled", Boolean, nullable=True),
    Column("priority", Integer, nullable=True),
    Column("last_fetched_at", UTCDateTime, nullable=True),
)

content_items_table = Table(
    "content_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("source_id", String, ForeignKey("sources.id", ondelete="CASCADE"), nullable=False),
    Column("title", Text, nullable=False),
    Column("description", Text, nullable=True),
    Column("url", Text, nullable=False),
    Column("image_url", Text, nullable=True),
    Column("published_at", UTCDateTime, nullable=False),
    Column("fetched_at", UTCDateTime, nullable=False),
    Column("author", String, nullable=True),
    Column("tags", Text, nullable=True),
    Column("sentiment", String, nullable=True),
    Column("sentiment_score", Float, nullable=True),
    Column("engagement", Text, nullable=True),
    Index("idx_content_source", "source_id"),
    Index("idx_content_published", "published_at"),
    Index("idx_content_source_published", "source_id", "published_at"),
)

engagement_snapshots_table = Table(
    "engagement_snapshots",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("content_id", String, ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False),
    Column("snapshot_at", UTCDateTime, nullable=False),
    Column("upvotes", Integer, nullable=True),
    Column("comments", Integer, nullable=True),
    Column("views", Integer, nullable=True),
    Column("likes", Integer, nullable=True),
    Column("stars", Integer, nullable=True),
    Column("forks", Integer, nullable=True),
    Column("downloads", Integer, nullable=True),
    Column("claps", Integer, nullable=True),
    Column("velocity_score", Float, nullable=False, default=0.0),
    Index("idx_snapshots_content", "content_id"),
    Index("idx_snapshots_time", "snapshot_at"),
)

settings_table = Table(
    "settings",
    metadata,
    Column("key", String, primary_key=True),
    Column("value", Text, nullable=False),
)

source_health_table = Table(
    "source_health",
    metadata,
    Column("source_id", String, primary_key=True),
    Column("last_fetch_at", UTCDateTime, nullable=False),
    Column("last_success_at", UTCDateTime, nullable=True),
    Column("last_item_count", Integer, nullable=False, default=0),
    Column("consecutive_failures", Integer, nullable=False, default=0),
    Column("last_error", Text, nullable=True),
)


def create_db_engine(url: str, echo: bool = False) -> Engine:
    parsed = make_url(url)
    connect_args = {}
    if parsed.get_backend_name() == "sqlite":
        connect_args = {"check_same_thread": False, "timeout": 30}
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(url, echo=echo, future=True, connect_args=connect_args)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db(engine: Engine) -> None:
    metadata.create_all(engine)


def dialect_insert(engine: Engine):
    """Return the dialect-specific ``insert`` that supports ``on_conflict_*``."""
    if engine.dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


def dumps(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def loads(raw: Optional[str], default: Any = None) -> Any:
    if raw is None or raw == "":
        return default
    return json.loads(raw)
