"""
Simple rate limiters shared across adapters and the HTTP layer.
"""
from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple


class RateLimiter:
    """Minimum-interval throttle keyed by host (blocking)."""

    def __init__(self, default_interval: Optional[float] = None, sleep: Callable[[float], None] = time.sleep) -> None:
        self._limits: Dict[str, float] = {}
        self._last_hit: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._default = default_interval
        self._sleep = sleep

    def configure(self, key: str, min_interval: float) -> None:
        self._limits[key] = min_interval

    def wait(self, key: str) -> None:
        interval = self._limits.get(key, self._default)
        if interval is None:
            return
        with self._lock:
            now = time.monotonic()
            last = self._last_hit.get(key)
            if last is not None and now - last < interval:
                self._sleep(interval - (now - last))
            self._last_hit[key] = time.monotonic()


class SlidingWindowLimiter:
    """Non-blocking per-client request allowance over a rolling window."""

    def __init__(self, max_requests: int, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def try_acquire(self, key: str) -> Tuple[bool, int]:
        """Return ``(allowed, retry_after_seconds)``."""
        if self.max_requests <= 0:
            return True, 0
        now = self._clock()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                retry_after = max(1, int(self.window_seconds - (now - hits[0]) + 0.999))
                return False, retry_after
            hits.append(now)
            return True, 0
