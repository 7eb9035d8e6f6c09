"""
Item-level helpers shared by all adapters: relevance, time window, text cleanup.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup

from trends.models import ContentItem, TimeRange
from utils.keywords import AI_PHRASES, AI_SHORT_TOKENS

DESCRIPTION_MAX_CHARS = 300


def _compile_short_tokens(tokens: Iterable[str]) -> re.Pattern:
    alternatives = "|".join(re.escape(token) for token in sorted(set(tokens), key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


_SHORT_TOKEN_RE = _compile_short_tokens(AI_SHORT_TOKENS)


def is_ai_relevant(
    text: str,
    short_tokens: Optional[Sequence[str]] = None,
    phrases: Optional[Sequence[str]] = None,
) -> bool:
    if not text:
        return False
    pattern = _SHORT_TOKEN_RE if short_tokens is None else _compile_short_tokens(short_tokens)
    if pattern.search(text):
        return True
    lowered = text.lower()
    return any(phrase in lowered for phrase in (AI_PHRASES if phrases is None else phrases))


def filter_relevant(items: Iterable[ContentItem]) -> List[ContentItem]:
    return [item for item in items if is_ai_relevant(f"{item.title} {item.description}")]


def filter_by_time_range(
    items: Iterable[ContentItem],
    time_range: Optional[TimeRange],
    now: Optional[datetime] = None,
) -> List[ContentItem]:
    """Drop items published before the range cutoff; no range keeps everything."""
    if time_range is None:
        return list(items)
    cutoff = TimeRange(time_range).cutoff(now or datetime.now(timezone.utc))
    return [item for item in items if item.published_at >= cutoff]


def clean_description(html: Optional[str], max_chars: int = DESCRIPTION_MAX_CHARS) -> str:
    if not html:
        return ""
    text = BeautifulSoup(html, "lxml").get_text(" ") if "<" in html else html
    cleaned = " ".join(text.split())
    if len(cleaned) > max_chars:
        return cleaned[:max_chars] + "..."
    return cleaned


def ensure_utc(value: Optional[datetime], fallback: Optional[datetime] = None) -> datetime:
    """Coerce to an aware UTC datetime; missing values fall back to now."""
    if value is None:
        return fallback or datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_timestamp(seconds: Optional[float]) -> datetime:
    if not seconds:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(float(seconds), tz=timezone.utc)


def parse_iso(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return datetime.now(timezone.utc)
