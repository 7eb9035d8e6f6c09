"""
Status/health payloads for the API.

Kept light-weight and redacted: no item payloads, no credentials.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.engine import make_url

from trends.models import SourceHealthRecord
from trends.scoring import platform_for, quality_baseline
from trends.settings_store import FAILURE_WARN_THRESHOLD

if TYPE_CHECKING:  # pragma: no cover
    from trends import TrendsContext


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _health_to_dict(record: Optional[SourceHealthRecord]) -> Optional[Dict[str, Any]]:
    if record is None:
        return None
    return {
        "lastFetchAt": _iso(record.last_fetch_at),
        "lastSuccessAt": _iso(record.last_success_at),
        "lastItemCount": record.last_item_count,
        "consecutiveFailures": record.consecutive_failures,
        "lastError": record.last_error,
        "healthy": record.consecutive_failures < FAILURE_WARN_THRESHOLD,
    }


def source_overview(context: "TrendsContext") -> List[Dict[str, Any]]:
    health = context.repository.get_health()
    fetched = context.freshness.last_fetched(s.id for s in context.resolver.get_effective_sources().all)
    overview = []
    for source in context.resolver.get_effective_sources().all:
        config = source.config
        overview.append(
            {
                "id": source.id,
                "name": source.name,
                "category": source.category.value,
                "method": config.method.value,
                "url": config.url,
                "icon": config.icon,
                "enabled": source.is_enabled,
                "custom": source.is_custom,
                "priority": source.effective_priority,
                "requiresKey": config.requires_key,
                "qualityTier": None if platform_for(source.id) else quality_baseline(source.id, source.category),
                "lastFetchedAt": _iso(fetched.get(source.id)),
                "health": _health_to_dict(health.get(source.id)),
            }
        )
    return overview


def build_status(context: "TrendsContext") -> Dict[str, Any]:
    sources = context.resolver.get_effective_sources()
    health = context.repository.get_health()
    failing = sorted(
        source_id for source_id, record in health.items() if record.consecutive_failures >= FAILURE_WARN_THRESHOLD
    )
    settings = context.settings
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "database": {
            "url": make_url(settings.database_url).render_as_string(hide_password=True),
            "content_items": context.store.count(),
        },
        "sources": {
            "total": len(sources.all),
            "enabled": len(sources.enabled_ids),
            "active_categories": [c.value for c in sources.active_categories],
            "failing": failing,
        },
        "cache": {
            "feed": context.feed_cache.snapshot(),
            "settings_entries": context.settings_cache.snapshot()["size"],
        },
        "config": {
            "adapter_timeout": settings.adapter_timeout,
            "max_workers": settings.max_workers,
            "retention_days": settings.retention_days,
            "query_limit": settings.query_limit,
            "rate_limit_per_minute": settings.rate_limit_per_minute,
            "refresh_minutes": settings.refresh_minutes,
        },
    }
