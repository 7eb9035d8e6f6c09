"""
Persistent user settings, source overrides and source health.

Reads go through the shared settings cache; every write invalidates the
affected ``setting:*`` keys plus all ``resolved:*`` keys before returning, and
clears the feed cache so ranked results never outlive the settings they were
built from.
"""
from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, HttpUrl, ValidationError, field_validator
from sqlalchemy import select
from sqlalchemy.engine import Engine

from trends.cache import MemoryCache
from trends.db import dialect_insert, dumps, loads, settings_table, source_health_table, sources_table
from trends.errors import InvalidRequest
from trends.models import (
    CustomSourceConfig,
    FetchOutcome,
    SourceCategory,
    SourceHealthRecord,
    Subreddit,
    YouTubeChannel,
)
from trends.sources import _clamp_priority

logger = logging.getLogger(__name__)

ALL_SETTINGS_KEY = "allSettings:loaded"
RESOLVED_PREFIX = "resolved:"
CUSTOM_SOURCES = "customSources"
DELETED_SOURCES = "deletedSources"
YOUTUBE_CHANNELS = "youtubeChannels"
CUSTOM_SUBREDDITS = "customSubreddits"

FAILURE_WARN_THRESHOLD = 3

_MISSING = object()


def setting_key(key: str) -> str:
    return f"setting:{key}"


class CustomSourceInput(BaseModel):
    """Shape of a stored custom source entry (camelCase, as persisted)."""

    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=200)
    feedUrl: HttpUrl
    category: SourceCategory = SourceCategory.NEWS
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    enabled: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class YouTubeChannelInput(BaseModel):
    channelId: str = Field(pattern=r"^UC[\w-]{22}$")
    name: str = Field(min_length=1, max_length=200)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class SubredditInput(BaseModel):
    name: str = Field(pattern=r"^[A-Za-z0-9_]{2,21}$")

    @field_validator("name", mode="before")
    @classmethod
    def _strip_prefix(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            for prefix in ("/r/", "r/"):
                if value.lower().startswith(prefix):
                    value = value[len(prefix):]
        return value


def custom_source_id(feed_url: str) -> str:
    return "custom-" + hashlib.sha256(feed_url.encode("utf-8")).hexdigest()[:12]


def _custom_from_entry(entry: Dict[str, Any]) -> Optional[CustomSourceConfig]:
    try:
        data = CustomSourceInput.model_validate(entry)
    except ValidationError as exc:
        logger.warning("Ignoring invalid stored custom source %s: %s", entry.get("id"), exc.errors()[0]["msg"])
        return None
    feed_url = str(data.feedUrl)
    return CustomSourceConfig(
        id=data.id or custom_source_id(feed_url),
        name=data.name,
        feed_url=feed_url,
        category=data.category,
        priority=data.priority,
        enabled=data.enabled is not False,
    )


class SettingsRepository:
    def __init__(self, engine: Engine, cache: MemoryCache, feed_cache: Optional[MemoryCache] = None) -> None:
        self.engine = engine
        self.cache = cache
        self.feed_cache = feed_cache

    # -- key/value settings -------------------------------------------------

    def get_setting(self, key: str, default: Any = None) -> Any:
        cache_key = setting_key(key)
        cached = self.cache.get(cache_key, _MISSING)
        if cached is not _MISSING:
            return default if cached is None else cached
        if self.cache.get(ALL_SETTINGS_KEY):
            # Bulk load already ran and the key was not in it.
            return default
        generation = self.cache.generation
        with self.engine.connect() as conn:
            raw = conn.execute(select(settings_table.c.value).where(settings_table.c.key == key)).scalar_one_or_none()
        value = loads(raw)
        self.cache.set(cache_key, value, generation=generation)
        return default if value is None else value

    def load_all_settings(self) -> None:
        """Read every setting in one query and prime the per-key cache."""
        if self.cache.get(ALL_SETTINGS_KEY):
            return
        generation = self.cache.generation
        with self.engine.connect() as conn:
            rows = conn.execute(select(settings_table.c.key, settings_table.c.value)).all()
        for row in rows:
            self.cache.set(setting_key(row.key), loads(row.value), generation=generation)
        self.cache.set(ALL_SETTINGS_KEY, True, generation=generation)

    def update_setting(self, key: str, value: Any) -> None:
        stmt = dialect_insert(self.engine)(settings_table).values(key=key, value=dumps(value))
        stmt = stmt.on_conflict_do_update(index_elements=["key"], set_={"value": stmt.excluded.value})
        with self.engine.begin() as conn:
            conn.execute(stmt)
        self._invalidate(key)

    # -- per-source overrides -----------------------------------------------

    def source_rows(self) -> Dict[str, Tuple[Optional[bool], Optional[int]]]:
        t = sources_table
        with self.engine.connect() as conn:
            rows = conn.execute(select(t.c.id, t.c.enabled, t.c.priority)).all()
        return {row.id: (row.enabled, row.priority) for row in rows}

    def set_source_enabled(self, source_id: str, enabled: bool) -> None:
        self.set_sources_enabled([source_id], enabled)

    def set_sources_enabled(self, source_ids: Iterable[str], enabled: bool) -> None:
        ids = list(dict.fromkeys(source_ids))
        if not ids:
            return
        custom_ids = {c.id for c in self.custom_sources()}
        custom_hits = [i for i in ids if i in custom_ids]
        if custom_hits:
            self._update_custom(custom_hits, enabled=enabled)
        static_ids = [i for i in ids if i not in custom_ids]
        if static_ids:
            self._upsert_source_columns([{"id": i, "enabled": bool(enabled)} for i in static_ids], "enabled")
        self._invalidate()

    def set_source_priority(self, source_id: str, priority: int) -> int:
        value = _clamp_priority(priority)
        if source_id in {c.id for c in self.custom_sources()}:
            self._update_custom([source_id], priority=value)
        else:
            self._upsert_source_columns([{"id": source_id, "priority": value}], "priority")
        self._invalidate()
        return value

    # -- custom and deleted sources -------------------------------------------

    def custom_sources(self) -> List[CustomSourceConfig]:
        entries = self.get_setting(CUSTOM_SOURCES, []) or []
        parsed = (_custom_from_entry(entry) for entry in entries if isinstance(entry, dict))
        return [config for config in parsed if config is not None]

    def deleted_source_ids(self) -> List[str]:
        return [str(i) for i in self.get_setting(DELETED_SOURCES, []) or []]

    def add_custom_source(self, payload: Dict[str, Any]) -> CustomSourceConfig:
        try:
            data = CustomSourceInput.model_validate(payload)
        except ValidationError as exc:
            raise InvalidRequest(f"Invalid custom source: {_first_error(exc)}") from exc
        feed_url = str(data.feedUrl)
        source_id = data.id or custom_source_id(feed_url)
        existing = self.get_setting(CUSTOM_SOURCES, []) or []
        if any(entry.get("id") == source_id or entry.get("feedUrl") == feed_url for entry in existing):
            raise InvalidRequest(f"Custom source already exists: {feed_url}")
        entry = {
            "id": source_id,
            "name": data.name,
            "feedUrl": feed_url,
            "category": data.category.value,
            "priority": data.priority,
            "enabled": True if data.enabled is None else data.enabled,
        }
        self.update_setting(CUSTOM_SOURCES, list(existing) + [entry])
        logger.info("Added custom source %s (%s)", data.name, source_id)
        return _custom_from_entry(entry)

    def delete_source(self, source_id: str) -> None:
        """Custom sources are removed outright; static ones are hidden via ``deletedSources``."""
        existing = self.get_setting(CUSTOM_SOURCES, []) or []
        remaining = [entry for entry in existing if entry.get("id") != source_id]
        if len(remaining) != len(existing):
            self.update_setting(CUSTOM_SOURCES, remaining)
            return
        deleted = self.deleted_source_ids()
        if source_id not in deleted:
            self.update_setting(DELETED_SOURCES, deleted + [source_id])

    def restore_source(self, source_id: str) -> None:
        deleted = self.deleted_source_ids()
        if source_id in deleted:
            self.update_setting(DELETED_SOURCES, [i for i in deleted if i != source_id])

    # -- follow lists ---------------------------------------------------------

    def youtube_channels(self, default: Sequence[YouTubeChannel] = ()) -> List[YouTubeChannel]:
        """Stored channel list, or ``default`` when the setting was never written."""
        entries = self.get_setting(YOUTUBE_CHANNELS)
        if entries is None:
            return list(default)
        channels = []
        for entry in entries:
            try:
                data = YouTubeChannelInput.model_validate(entry)
            except ValidationError:
                logger.warning("Ignoring invalid stored channel %s", entry)
                continue
            channels.append(YouTubeChannel(channel_id=data.channelId, name=data.name))
        return channels

    def set_youtube_channels(self, entries: Sequence[Dict[str, Any]]) -> List[YouTubeChannel]:
        channels: List[YouTubeChannel] = []
        for entry in entries:
            try:
                data = YouTubeChannelInput.model_validate(entry)
            except ValidationError as exc:
                raise InvalidRequest(f"Invalid YouTube channel: {_first_error(exc)}") from exc
            if all(c.channel_id != data.channelId for c in channels):
                channels.append(YouTubeChannel(channel_id=data.channelId, name=data.name))
        self.update_setting(YOUTUBE_CHANNELS, [c.as_dict() for c in channels])
        return channels

    def custom_subreddits(self, default: Sequence[Subreddit] = ()) -> List[Subreddit]:
        entries = self.get_setting(CUSTOM_SUBREDDITS)
        if entries is None:
            return list(default)
        subreddits = []
        for entry in entries:
            try:
                data = SubredditInput.model_validate(entry)
            except ValidationError:
                logger.warning("Ignoring invalid stored subreddit %s", entry)
                continue
            subreddits.append(Subreddit(name=data.name))
        return subreddits

    def set_custom_subreddits(self, entries: Sequence[Dict[str, Any]]) -> List[Subreddit]:
        subreddits: List[Subreddit] = []
        for entry in entries:
            try:
                data = SubredditInput.model_validate(entry)
            except ValidationError as exc:
                raise InvalidRequest(f"Invalid subreddit: {_first_error(exc)}") from exc
            if all(s.name.lower() != data.name.lower() for s in subreddits):
                subreddits.append(Subreddit(name=data.name))
        self.update_setting(CUSTOM_SUBREDDITS, [s.as_dict() for s in subreddits])
        return subreddits

    # -- health -------------------------------------------------------------

    def get_health(self) -> Dict[str, SourceHealthRecord]:
        t = source_health_table
        with self.engine.connect() as conn:
            rows = conn.execute(select(t)).mappings().all()
        return {row["source_id"]: SourceHealthRecord(**dict(row)) for row in rows}

    def record_health(self, outcomes: Sequence[FetchOutcome], now: Optional[datetime] = None) -> List[SourceHealthRecord]:
        """
        Apply one fetch pass to the health table. Items reset the failure
        streak; an empty result or an error extends it.
        """
        if not outcomes:
            return []
        now = now or datetime.now(timezone.utc)
        current = self.get_health()
        records: List[SourceHealthRecord] = []
        for outcome in outcomes:
            previous = current.get(outcome.source_id)
            failures = previous.consecutive_failures if previous else 0
            last_success = previous.last_success_at if previous else None
            last_count = previous.last_item_count if previous else 0
            if outcome.ok and outcome.items:
                record = SourceHealthRecord(outcome.source_id, now, now, len(outcome.items), 0, None)
            else:
                error = outcome.error if not outcome.ok else "Returned 0 items"
                record = SourceHealthRecord(outcome.source_id, now, last_success, last_count, failures + 1, error)
                if record.consecutive_failures >= FAILURE_WARN_THRESHOLD:
                    logger.warning(
                        "Source %s has failed %s times in a row: %s",
                        outcome.source_name,
                        record.consecutive_failures,
                        error,
                    )
            records.append(record)

        rows = [vars(record).copy() for record in records]
        stmt = dialect_insert(self.engine)(source_health_table).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["source_id"],
            set_={c.name: stmt.excluded[c.name] for c in source_health_table.c if c.name != "source_id"},
        )
        with self.engine.begin() as conn:
            conn.execute(stmt)
        return records

    # -- internals ----------------------------------------------------------

    def _update_custom(self, source_ids: Sequence[str], **changes: Any) -> None:
        entries = []
        for entry in self.get_setting(CUSTOM_SOURCES, []) or []:
            if entry.get("id") in source_ids:
                entry = {**entry, **changes}
            entries.append(entry)
        self.update_setting(CUSTOM_SOURCES, entries)

    def _upsert_source_columns(self, rows: List[Dict[str, Any]], column: str) -> None:
        stmt = dialect_insert(self.engine)(sources_table).values(rows)
        stmt = stmt.on_conflict_do_update(index_elements=["id"], set_={column: stmt.excluded[column]})
        with self.engine.begin() as conn:
            conn.execute(stmt)

    def _invalidate(self, key: Optional[str] = None) -> None:
        if key is not None:
            self.cache.invalidate(setting_key(key))
        self.cache.invalidate(ALL_SETTINGS_KEY)
        self.cache.invalidate_pattern(RESOLVED_PREFIX)
        if self.feed_cache is not None:
            self.feed_cache.clear()


def _first_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error['msg']}" if location else error["msg"]
