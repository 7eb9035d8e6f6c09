"""
Process-scoped in-memory cache.

One instance backs the settings/resolver lookups (no expiry, explicit
invalidation); another backs ranked feed results (TTL plus a size bound).
"""
from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

_MISSING = object()


class MemoryCache:
    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, Tuple[Any, float]] = {}
        self._generation = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key, _MISSING)
            if entry is _MISSING:
                return default
            value, stored_at = entry
            if self._expired(stored_at, now):
                del self._entries[key]
                return default
            return value

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    @property
    def generation(self) -> int:
        """Bumped by every invalidation; see ``set(..., generation=...)``."""
        with self._lock:
            return self._generation

    def set(self, key: Hashable, value: Any, generation: Optional[int] = None) -> bool:
        """
        Store ``value``. When ``generation`` is given, the write is skipped if
        any invalidation happened since it was read, so a value computed from
        data that a concurrent writer has since replaced is never cached.
        Returns whether the value was stored.
        """
        now = self._clock()
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            # Re-insert so dict order tracks write age.
            self._entries.pop(key, None)
            self._entries[key] = (value, now)
            self._prune(now)
        return True

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._generation += 1
            self._entries.pop(key, None)

    def invalidate_pattern(self, prefix: str) -> int:
        """Drop every string key starting with ``prefix``; returns the count."""
        with self._lock:
            self._generation += 1
            doomed = [key for key in self._entries if isinstance(key, str) and key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._entries.clear()

    def snapshot(self) -> Dict[str, object]:
        """Key/age listing for status endpoints; values are not exposed."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            entries = [
                {"key": str(key), "age_seconds": round(now - stored_at, 2)}
                for key, (_, stored_at) in self._entries.items()
            ]
        return {
            "ttl_seconds": self.ttl_seconds,
            "max_entries": self.max_entries,
            "size": len(entries),
            "entries": entries,
        }

    def _expired(self, stored_at: float, now: float) -> bool:
        return self.ttl_seconds is not None and now - stored_at >= self.ttl_seconds

    def _prune(self, now: float) -> None:
        if self.ttl_seconds is not None:
            for key in [k for k, (_, ts) in self._entries.items() if self._expired(ts, now)]:
                del self._entries[key]
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
