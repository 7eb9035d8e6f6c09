"""
Identity and deduplication helpers for ingested content.
"""
from __future__ import annotations

import hashlib
from typing import Callable, Hashable, Iterable, List, TypeVar

T = TypeVar("T")

CONTENT_ID_HEX_CHARS = 16  # 64 bits


def make_content_id(source_id: str, unique_identifier: str) -> str:
    """
    Stable id for an upstream item: the source id plus a truncated sha256 of
    ``"<source_id>:<unique_identifier>"``. Re-ingesting the same upstream
    item always yields the same id, so the store updates instead of duplicating.
    """
    digest = hashlib.sha256(f"{source_id}:{unique_identifier}".encode("utf-8")).hexdigest()
    return f"{source_id}-{digest[:CONTENT_ID_HEX_CHARS]}"


def dedupe_by_key(items: Iterable[T], key_fn: Callable[[T], Hashable]) -> List[T]:
    seen = set()
    result: List[T] = []
    for item in items:
        key = key_fn(item)
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def dedupe_items(items: Iterable[T]) -> List[T]:
    """First occurrence of each ``item.id`` wins."""
    return dedupe_by_key(items, key_fn=lambda item: item.id)
