"""
Settings actions accepted by ``POST /api/settings``.

Each action is ``{"type": ..., "payload": {...}}``; payloads are validated with
pydantic and applied through the settings repository, which takes care of
cache invalidation.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ValidationError, field_validator

from trends.errors import InvalidRequest
from trends.feed import API_CATEGORIES, VALID_TIME_RANGES, parse_feed_category
from trends.models import SourceCategory, TimeRange

if TYPE_CHECKING:  # pragma: no cover
    from trends import TrendsContext

logger = logging.getLogger(__name__)

VALID_THEMES = ["dark", "light"]


class ThemePayload(BaseModel):
    theme: Literal["dark", "light"]


class TimeRangePayload(BaseModel):
    timeRange: TimeRange


class SourcePayload(BaseModel):
    sourceId: str
    enabled: Optional[bool] = None

    @field_validator("sourceId")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("sourceId must be a non-empty string")
        return value


class CategoryPayload(BaseModel):
    category: str
    enabled: bool


class BulkPayload(BaseModel):
    sourceIds: Optional[List[str]] = None


class PriorityPayload(BaseModel):
    sourceId: str
    priority: int


class KeywordsPayload(BaseModel):
    keywords: List[str]


class ChannelsPayload(BaseModel):
    channels: List[Dict[str, Any]]


class SubredditsPayload(BaseModel):
    subreddits: List[Dict[str, Any]]


class SettingsAction(BaseModel):
    type: str
    payload: Dict[str, Any] = {}


def _validate(model, payload: Dict[str, Any], valid_values: Optional[List[str]] = None):
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error.get("loc", ()))
        raise InvalidRequest(f"Invalid {field or 'payload'}: {error['msg']}", valid_values) from None


def normalize_keywords(keywords: List[str]) -> List[str]:
    cleaned = (str(keyword).strip().lower() for keyword in keywords)
    return list(dict.fromkeys(keyword for keyword in cleaned if keyword))


def _require_source(context: "TrendsContext", source_id: str):
    source = context.resolver.get_source(source_id)
    if source is None:
        raise InvalidRequest(f"Unknown source: {source_id}")
    return source


def _update_theme(context, payload):
    data = _validate(ThemePayload, payload, VALID_THEMES)
    context.repository.update_setting("theme", data.theme)


def _update_time_range(context, payload):
    data = _validate(TimeRangePayload, payload, VALID_TIME_RANGES)
    context.repository.update_setting("timeRange", data.timeRange.value)


def _toggle_source(context, payload):
    data = _validate(SourcePayload, payload)
    source = _require_source(context, data.sourceId)
    enabled = (not source.is_enabled) if data.enabled is None else data.enabled
    context.repository.set_source_enabled(source.id, enabled)


def _toggle_category(context, payload):
    data = _validate(CategoryPayload, payload, list(API_CATEGORIES))
    category: SourceCategory = parse_feed_category(data.category)
    ids = [s.id for s in context.resolver.get_effective_sources().all if s.category == category]
    context.repository.set_sources_enabled(ids, data.enabled)


def _set_all(enabled: bool) -> Callable:
    def apply(context, payload):
        data = _validate(BulkPayload, payload)
        ids = data.sourceIds
        if ids is None:
            ids = [s.id for s in context.resolver.get_effective_sources().all]
        context.repository.set_sources_enabled(ids, enabled)

    return apply


def _set_priority(context, payload):
    data = _validate(PriorityPayload, payload)
    source = _require_source(context, data.sourceId)
    context.repository.set_source_priority(source.id, data.priority)


def _set_boost_keywords(context, payload):
    data = _validate(KeywordsPayload, payload)
    context.repository.update_setting("boostKeywords", normalize_keywords(data.keywords))


def _add_custom_source(context, payload):
    """A bare site ``url`` is run through feed detection first."""
    if not payload.get("feedUrl") and payload.get("url"):
        detected = context.detector.detect(payload["url"])
        payload = {**payload, "feedUrl": detected.feed_url}
        if not payload.get("name"):
            payload["name"] = detected.title
        payload.pop("url")
    context.repository.add_custom_source(payload)


def _set_youtube_channels(context, payload):
    data = _validate(ChannelsPayload, payload)
    context.repository.set_youtube_channels(data.channels)


def _set_custom_subreddits(context, payload):
    data = _validate(SubredditsPayload, payload)
    context.repository.set_custom_subreddits(data.subreddits)


def _delete_source(context, payload):
    data = _validate(SourcePayload, payload)
    context.repository.delete_source(data.sourceId)


def _restore_source(context, payload):
    data = _validate(SourcePayload, payload)
    context.repository.restore_source(data.sourceId)


ACTIONS: Dict[str, Callable[["TrendsContext", Dict[str, Any]], None]] = {
    "UPDATE_THEME": _update_theme,
    "UPDATE_TIME_RANGE": _update_time_range,
    "TOGGLE_SOURCE": _toggle_source,
    "TOGGLE_CATEGORY": _toggle_category,
    "ENABLE_ALL": _set_all(True),
    "DISABLE_ALL": _set_all(False),
    "SET_PRIORITY": _set_priority,
    "SET_BOOST_KEYWORDS": _set_boost_keywords,
    "ADD_CUSTOM_SOURCE": _add_custom_source,
    "DELETE_SOURCE": _delete_source,
    "RESTORE_SOURCE": _restore_source,
    "SET_YOUTUBE_CHANNELS": _set_youtube_channels,
    "SET_CUSTOM_SUBREDDITS": _set_custom_subreddits,
}


def apply_settings_action(context: "TrendsContext", body: Any) -> str:
    if not isinstance(body, dict):
        raise InvalidRequest("Invalid request format. Expected { type, payload }")
    action = _validate(SettingsAction, body, list(ACTIONS))
    handler = ACTIONS.get(action.type)
    if handler is None:
        raise InvalidRequest(f"Invalid action type: {action.type}", list(ACTIONS))
    handler(context, action.payload or {})
    logger.info("Applied settings action %s", action.type)
    return action.type


def settings_payload(context: "TrendsContext") -> Dict[str, Any]:
    config = context.resolver.get_effective_config()
    sources = context.resolver.get_effective_sources()
    return {
        "theme": config.theme,
        "timeRange": config.time_range.value,
        "enabledSources": config.enabled_source_ids,
        "priorities": config.priorities,
        "boostKeywords": config.boost_keywords,
        "customSources": [
            {
                "id": custom.id,
                "name": custom.name,
                "feedUrl": custom.feed_url,
                "category": custom.category.value,
                "priority": custom.priority,
                "enabled": custom.enabled,
            }
            for custom in config.custom_sources
        ],
        "deletedSources": config.deleted_source_ids,
        "youtubeChannels": [channel.as_dict() for channel in config.youtube_channels],
        "customSubreddits": [subreddit.as_dict() for subreddit in config.custom_subreddits],
        "activeCategories": [category.value for category in sources.active_categories],
        "sources": [
            {
                "id": source.id,
                "name": source.name,
                "category": source.category.value,
                "enabled": source.is_enabled,
                "custom": source.is_custom,
                "origin": source.origin,
                "priority": source.effective_priority,
            }
            for source in sources.all
        ],
    }
