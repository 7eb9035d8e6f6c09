"""
Feed serving: request validation, freshness, ranking and response shaping for
the discovery API and the dashboard feed.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence, Union

from trends.errors import InvalidRequest
from trends.jobs import maybe_sweep
from trends.models import ContentItem, FeedMode, FreshnessResult, SourceCategory, TimeRange
from trends.resolver import ResolvedSource
from trends.scoring import score_by_feed_mode

if TYPE_CHECKING:  # pragma: no cover
    from trends import TrendsContext

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 100

API_CATEGORIES: Dict[str, SourceCategory] = {
    "news": SourceCategory.NEWS,
    "newsletters": SourceCategory.NEWSLETTERS,
    "social-blogs": SourceCategory.SOCIAL,
    "ai-labs": SourceCategory.AI_LABS,
    "dev-platforms": SourceCategory.DEV_PLATFORMS,
    "community": SourceCategory.COMMUNITY,
    "leaderboards": SourceCategory.LEADERBOARDS,
}
VALID_TIME_RANGES = [tr.value for tr in TimeRange]
VALID_MODES = [mode.value for mode in FeedMode]


def api_category_name(category: SourceCategory) -> str:
    if category == SourceCategory.SOCIAL:
        return "social-blogs"
    return category.value


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_api_categories(raw: Union[None, str, Sequence[str]]) -> List[str]:
    valid = list(API_CATEGORIES)
    if isinstance(raw, str):
        names = [part.strip() for part in raw.split(",")]
    else:
        names = [str(part).strip() for part in raw or []]
    names = [name for name in dict.fromkeys(names) if name]
    if not names:
        raise InvalidRequest("Missing required parameter: categories", valid)
    invalid = [name for name in names if name not in API_CATEGORIES]
    if invalid:
        raise InvalidRequest(f"Invalid categories: {', '.join(invalid)}", valid)
    return names


def parse_time_range(raw: Union[None, str, TimeRange], required: bool = True) -> Optional[TimeRange]:
    if raw is None or raw == "":
        if required:
            raise InvalidRequest("Missing required parameter: timeRange", VALID_TIME_RANGES)
        return None
    try:
        return TimeRange(raw)
    except ValueError:
        raise InvalidRequest(f"Invalid timeRange: {raw}", VALID_TIME_RANGES) from None


def parse_int(raw: Any, name: str, default: int, minimum: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidRequest(f"Invalid {name}: must be an integer >= {minimum}") from None
    if value < minimum:
        raise InvalidRequest(f"Invalid {name}: must be an integer >= {minimum}")
    return value


def parse_mode(raw: Union[None, str, FeedMode]) -> Optional[FeedMode]:
    if raw is None or raw == "":
        return None
    try:
        return FeedMode(raw)
    except ValueError:
        raise InvalidRequest(f"Invalid mode: {raw}", VALID_MODES) from None


def parse_feed_category(raw: Optional[str]) -> Optional[SourceCategory]:
    if not raw:
        return None
    if raw in API_CATEGORIES:
        return API_CATEGORIES[raw]
    try:
        return SourceCategory(raw)
    except ValueError:
        raise InvalidRequest(f"Invalid category: {raw}", [c.value for c in SourceCategory]) from None


def serialize_item(item: ContentItem, source: Optional[ResolvedSource] = None) -> Dict[str, Any]:
    return {
        "id": item.id,
        "sourceId": item.source_id,
        "source": source.name if source else item.source_id,
        "category": source.category.value if source else None,
        "title": item.title,
        "description": item.description,
        "url": item.url,
        "imageUrl": item.image_url,
        "author": item.author,
        "tags": list(item.tags or []),
        "publishedAt": _iso(item.published_at),
        "fetchedAt": _iso(item.fetched_at),
        "engagement": item.engagement.as_dict() if item.engagement else None,
        "sentiment": item.sentiment,
        "sentimentScore": item.sentiment_score,
        "trendingScore": item.trending_score,
        "velocityScore": item.velocity_score,
        "matchedKeywords": item.matched_keywords,
    }


def serialize_discovery_item(item: ContentItem, source: Optional[ResolvedSource]) -> Dict[str, Any]:
    return {
        "id": item.id,
        "title": item.title,
        "source": source.name if source else item.source_id,
        "summary": item.description or None,
        "url": item.url,
        "category": api_category_name(source.category) if source else "news",
        "tags": list(item.tags or []),
        "trendingScore": item.trending_score,
        "publishedAt": _iso(item.published_at),
        "addedAt": _iso(item.fetched_at),
    }


def _failures(result: Optional[FreshnessResult]) -> List[Dict[str, str]]:
    if result is None:
        return []
    return [{"source": failure.source, "error": failure.error} for failure in result.failures]


class FeedService:
    def __init__(self, context: "TrendsContext") -> None:
        self.context = context

    def discover(
        self,
        categories: Union[None, str, Sequence[str]],
        time_range: Union[None, str, TimeRange],
        limit: Any = None,
        offset: Any = None,
    ) -> Dict[str, Any]:
        names = parse_api_categories(categories)
        window = parse_time_range(time_range)
        page_limit = parse_int(limit, "limit", DEFAULT_PAGE_LIMIT, 1)
        page_offset = parse_int(offset, "offset", 0, 0)

        ctx = self.context
        wanted = [API_CATEGORIES[name] for name in names]
        targets = ctx.resolver.sources_for_categories(wanted)
        source_map = {source.id: source for source in targets}
        meta = {
            "totalItems": 0,
            "returnedItems": 0,
            "offset": page_offset,
            "limit": page_limit,
            "timeRange": window.value,
            "categories": {name: 0 for name in names},
        }
        if not targets:
            return {"meta": meta, "items": []}

        cache_key = f"discovery:{','.join(sorted(source_map))}:{window.value}"
        ranked = ctx.feed_cache.get(cache_key)
        result: Optional[FreshnessResult] = None
        if ranked is None:
            generation = ctx.feed_cache.generation
            result = ctx.orchestrator.ensure_fresh([s.as_source_config() for s in targets], window)
            ranked = self._rank(list(source_map), window)
            ctx.feed_cache.set(cache_key, ranked, generation=generation)

        for item in ranked:
            source = source_map.get(item.source_id)
            if source is not None:
                api_name = api_category_name(source.category)
                if api_name in meta["categories"]:
                    meta["categories"][api_name] += 1
        page = ranked[page_offset : page_offset + page_limit]
        meta["totalItems"] = len(ranked)
        meta["returnedItems"] = len(page)
        payload: Dict[str, Any] = {
            "meta": meta,
            "items": [serialize_discovery_item(item, source_map.get(item.source_id)) for item in page],
        }
        failures = _failures(result)
        if failures:
            payload["failures"] = failures
        return payload

    def feed(
        self,
        category: Optional[str] = None,
        source_id: Optional[str] = None,
        time_range: Union[None, str, TimeRange] = None,
        mode: Union[None, str, FeedMode] = None,
        limit: Any = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        wanted_category = parse_feed_category(category)
        feed_mode = parse_mode(mode)
        max_items = parse_int(limit, "limit", 0, 1)
        ctx = self.context
        config = ctx.resolver.get_effective_config()
        window = parse_time_range(time_range, required=False) or config.time_range

        ctx.tasks.submit(maybe_sweep, ctx, name="maybe-sweep")

        targets: Iterable[ResolvedSource] = ctx.resolver.get_effective_sources().enabled
        if wanted_category is not None:
            targets = [s for s in targets if s.category == wanted_category]
        if source_id:
            targets = [s for s in targets if s.id == source_id]
        source_map = {source.id: source for source in targets}

        cache_key = f"feed:{','.join(sorted(source_map))}:{window.value}:{feed_mode.value if feed_mode else 'ranked'}"
        cached = ctx.feed_cache.get(cache_key)
        if cached is not None:
            return self._feed_payload(cached, source_map, feed_mode, max_items, cached=True)

        generation = ctx.feed_cache.generation
        result = ctx.orchestrator.ensure_fresh(
            [s.as_source_config() for s in source_map.values()], window, session_id=session_id
        )
        ranked = self._rank(list(source_map), window, feed_mode)
        ctx.feed_cache.set(cache_key, ranked, generation=generation)
        return self._feed_payload(
            ranked, source_map, feed_mode, max_items, cached=result.stale_count == 0, failures=_failures(result)
        )

    def _rank(self, source_ids: List[str], window: TimeRange, mode: Optional[FeedMode] = None) -> List[ContentItem]:
        ctx = self.context
        items = ctx.store.query_by_time_range(source_ids, window, limit=ctx.settings.query_limit)
        velocities = ctx.velocity.bulk_velocities(item.id for item in items)
        if mode is not None:
            return score_by_feed_mode(items, velocities, mode)
        config = ctx.resolver.get_effective_config()
        categories = {source.id: source.category for source in ctx.resolver.get_effective_sources().all}
        return ctx.scorer.rank(items, config.priorities, config.boost_keywords, velocities, categories=categories)

    def _feed_payload(
        self,
        ranked: List[ContentItem],
        source_map: Dict[str, ResolvedSource],
        mode: Optional[FeedMode],
        max_items: int,
        cached: bool,
        failures: Optional[List[Dict[str, str]]] = None,
    ) -> Dict[str, Any]:
        items = ranked[:max_items] if max_items else ranked
        payload: Dict[str, Any] = {
            "success": True,
            "count": len(items),
            "items": [serialize_item(item, source_map.get(item.source_id)) for item in items],
            "fetchedAt": _iso(datetime.now(timezone.utc)),
            "cached": cached,
            "mode": mode.value if mode else None,
            "sentiment": self.context.sentiment.summarize(items),
        }
        if failures:
            payload["failures"] = failures
        return payload
