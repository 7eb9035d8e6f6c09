"""
Extract engagement counters (claps, responses) from article pages via JSON-LD,
with text patterns as a fallback for pages that render counters inline.
"""
from __future__ import annotations

import json
import re
from typing import Any, Iterable, List, Optional

from bs4 import BeautifulSoup

from crawler.schemas.models import EngagementStats

_CLAP_PATTERNS = [
    re.compile(r'"clapCount"\s*:\s*(\d+)'),
    re.compile(r"(\d+(?:\.\d+)?\s*[KkMm]?)\s+claps?\b"),
]
_RESPONSE_PATTERNS = [
    re.compile(r'"responsesCount"\s*:\s*(\d+)'),
    re.compile(r"(\d+(?:\.\d+)?\s*[KkMm]?)\s+responses?\b"),
]


def parse_count(raw: str) -> Optional[int]:
    """Parse counters such as ``"812"``, ``"1.2K"`` or ``"3M"``."""
    if raw is None:
        return None
    text = str(raw).strip().replace(",", "")
    match = re.fullmatch(r"(\d+(?:\.\d+)?)\s*([KkMm]?)", text)
    if not match:
        return None
    value = float(match.group(1))
    suffix = match.group(2).upper()
    if suffix == "K":
        value *= 1_000
    elif suffix == "M":
        value *= 1_000_000
    return int(round(value))


def parse_engagement(html: str) -> EngagementStats:
    soup = BeautifulSoup(html, "lxml")
    stats = EngagementStats()

    for candidate in _jsonld_candidates(soup):
        for counter in _as_list(candidate.get("interactionStatistic")):
            if not isinstance(counter, dict):
                continue
            count = parse_count(str(counter.get("userInteractionCount", "")))
            if count is None:
                continue
            kind = _interaction_type(counter.get("interactionType"))
            if "like" in kind and stats.claps is None:
                stats.claps = count
            elif "comment" in kind and stats.responses is None:
                stats.responses = count

    if stats.claps is None:
        stats.claps = _first_match(_CLAP_PATTERNS, html)
    if stats.responses is None:
        stats.responses = _first_match(_RESPONSE_PATTERNS, html)
    return stats


def _jsonld_candidates(soup: BeautifulSoup) -> List[dict]:
    candidates: List[dict] = []
    for tag in soup.select('script[type="application/ld+json"]'):
        try:
            payload = json.loads(tag.string or "{}")
        except json.JSONDecodeError:
            continue
        for item in _as_list(payload):
            if isinstance(item, dict):
                candidates.append(item)
                candidates.extend(g for g in _as_list(item.get("@graph")) if isinstance(g, dict))
    return candidates


def _interaction_type(value: Any) -> str:
    if isinstance(value, dict):
        value = value.get("@type", "")
    return str(value or "").lower()


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _first_match(patterns: Iterable[re.Pattern], text: str) -> Optional[int]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            count = parse_count(match.group(1))
            if count is not None:
                return count
    return None
