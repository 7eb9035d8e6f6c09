"""
Reusable HTTP fetching utilities with polite defaults (per-host delay, retries).
"""
from __future__ import annotations

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, Optional, TypeVar

import requests

from utils.security import redact_secrets

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_USER_AGENT = "AITrendsAggregator/1.0 (+https://github.com/ai-trends/aggregator)"

# Status codes that will not change on a retry.
NON_RETRYABLE_STATUS = ("401", "403", "404")


class HttpStatusError(requests.HTTPError):
    """Raised for upstream responses with status >= 400."""

    def __init__(self, status_code: int, url: str) -> None:
        self.status_code = status_code
        self.url = redact_secrets(url)
        super().__init__(f"HTTP {status_code} for {self.url}")


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, HttpStatusError):
        return str(exc.status_code) not in NON_RETRYABLE_STATUS
    message = str(exc)
    return not any(code in message for code in NON_RETRYABLE_STATUS)


def with_retry(
    fn: Callable[[], T],
    max_retries: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``fn`` up to ``max_retries`` times with exponential backoff
    (``base_delay``, then doubled on each attempt). Auth and not-found
    failures are raised immediately.
    """
    attempts = max(1, int(max_retries))
    last_error: BaseException = RuntimeError("with_retry made no attempts")
    for attempt in range(attempts):
        try:
            return fn()
        except Exception as exc:
            last_error = exc
            if not is_retryable(exc):
                raise
            if attempt < attempts - 1:
                delay = base_delay * (2 ** attempt)
                logger.debug(
                    "Attempt %s/%s failed (%s); retrying in %.2fs",
                    attempt + 1,
                    attempts,
                    redact_secrets(str(exc)),
                    delay,
                )
                sleep(delay)
    raise last_error


class HttpFetcher:
    """
    Thin wrapper over requests.Session with polite per-host throttling.

    Every call is a single attempt that raises on failure; callers wrap it in
    :func:`with_retry` so the retry policy lives in one place.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        min_delay: float = 0.0,
        timeout: int = 15,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.session = requests.Session()
        self.session.headers.update(
            {
                "User-Agent": user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.8",
            }
        )
        if headers:
            self.session.headers.update(headers)
        self.min_delay = min_delay
        self.timeout = timeout
        self._last_hit: Dict[str, float] = {}
        self._lock = threading.RLock()

    def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        self._respect_delay(url)
        response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        if response.status_code >= 400:
            logger.debug("GET %s -> %s", redact_secrets(response.url or url), response.status_code)
            raise HttpStatusError(response.status_code, url)
        return response

    def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        return self.get(url, headers=headers).content

    def fetch_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        return self.get(url, headers=headers).text

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        merged = {"Accept": "application/json"}
        if headers:
            merged.update(headers)
        return self.get(url, params=params, headers=merged).json()

    def _respect_delay(self, url: str) -> None:
        if self.min_delay <= 0:
            return
        domain = self._extract_domain(url)
        with self._lock:
            last = self._last_hit.get(domain)
            now = time.time()
            if last and now - last < self.min_delay:
                wait = self.min_delay - (now - last) + random.random() * 0.1
                time.sleep(wait)
            self._last_hit[domain] = time.time()

    @staticmethod
    def _extract_domain(url: str) -> str:
        return url.split("/")[2] if "://" in url else url
