"""
Exception types raised by the trends pipeline.
"""
from __future__ import annotations

from typing import List, Optional

from crawler.infra.http import HttpStatusError

__all__ = ["TrendsError", "InvalidRequest", "NotFoundError", "AdapterTimeout", "HttpStatusError"]


class TrendsError(Exception):
    pass


class InvalidRequest(TrendsError):
    """Request validation failure; maps to HTTP 400."""

    def __init__(self, message: str, valid_values: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.valid_values = valid_values

    def to_dict(self):
        payload = {"error": self.message}
        if self.valid_values is not None:
            payload["validValues"] = list(self.valid_values)
        return payload


class NotFoundError(TrendsError):
    """Lookup that found nothing; maps to HTTP 404."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message}


class AdapterTimeout(TrendsError):
    def __init__(self, message: str = "Adapter timeout") -> None:
        super().__init__(message)
