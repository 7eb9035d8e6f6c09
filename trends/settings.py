"""
Centralised runtime settings for the trends service (env-first).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class TrendsSettings:
    database_url: str
    adapter_timeout: int
    max_workers: int
    retention_days: int
    feed_cache_ttl: int
    feed_cache_max_entries: int
    query_limit: int
    rate_limit_per_minute: int
    refresh_minutes: int
    sources_file: Optional[Path]
    log_level: str
    log_file: Optional[str]


def _int_from_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid int value for %s=%s; using default %s", key, raw, default)
        return default
    return value if value > 0 else default


def load_settings() -> TrendsSettings:
    sources_file = os.getenv("TRENDS_SOURCES_FILE")
    return TrendsSettings(
        database_url=os.getenv("TRENDS_DATABASE_URL") or "sqlite:///trends.db",
        adapter_timeout=_int_from_env("TRENDS_ADAPTER_TIMEOUT", 10),
        max_workers=_int_from_env("TRENDS_MAX_WORKERS", 16),
        retention_days=_int_from_env("TRENDS_RETENTION_DAYS", 30),
        feed_cache_ttl=_int_from_env("TRENDS_FEED_CACHE_TTL", 300),
        feed_cache_max_entries=_int_from_env("TRENDS_FEED_CACHE_MAX_ENTRIES", 64),
        query_limit=_int_from_env("TRENDS_QUERY_LIMIT", 2000),
        rate_limit_per_minute=_int_from_env("API_RATE_LIMIT_PER_MINUTE", 120),
        refresh_minutes=_int_from_env("TRENDS_REFRESH_MINUTES", 15),
        sources_file=Path(sources_file) if sources_file else None,
        log_level=(os.getenv("TRENDS_LOG_LEVEL") or "INFO").upper(),
        log_file=os.getenv("TRENDS_LOG_FILE") or None,
    )
