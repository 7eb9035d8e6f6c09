"""
Pydantic models for raw crawler outputs, before they are mapped into ContentItem.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, HttpUrl, field_validator


class ArticleItem(BaseModel):
    source: str
    title: str
    url: HttpUrl
    guid: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    summary: Optional[str] = None
    tags: List[str] = []
    image_url: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def _trim_title(cls, value: str) -> str:
        return " ".join((value or "").split())

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value) -> List[str]:
        if not value:
            return []
        cleaned: List[str] = []
        for tag in value:
            if isinstance(tag, str) and tag.strip() and tag.strip() not in cleaned:
                cleaned.append(tag.strip())
        return cleaned

    @property
    def unique_key(self) -> str:
        return self.guid or str(self.url)


class EngagementStats(BaseModel):
    claps: Optional[int] = None
    responses: Optional[int] = None

    @property
    def empty(self) -> bool:
        return self.claps is None and self.responses is None
