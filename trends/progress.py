"""
In-memory progress tracking for refresh passes, polled by the dashboard.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from trends.models import SourceConfig

SESSION_MAX_AGE = 90.0
COMPLETED_GRACE = 10.0

PENDING = "pending"
FETCHING = "fetching"
DONE = "done"
FAILED = "failed"


@dataclass
class _SourceEntry:
    id: str
    name: str
    icon: str = ""
    status: str = PENDING
    items: int = 0
    error: Optional[str] = None


@dataclass
class _Session:
    started_at: float
    sources: Dict[str, _SourceEntry] = field(default_factory=dict)
    completed_at: Optional[float] = None


class RefreshProgress:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, _Session] = {}

    def start(self, session_id: str, sources: Iterable[SourceConfig]) -> None:
        with self._lock:
            self._expire(self._clock())
            session = _Session(started_at=self._clock())
            for source in sources:
                session.sources[source.id] = _SourceEntry(source.id, source.name, source.icon or "")
            self._sessions[session_id] = session

    def mark_fetching(self, session_id: str, source_id: str) -> None:
        with self._lock:
            entry = self._entry(session_id, source_id)
            if entry is not None and entry.status == PENDING:
                entry.status = FETCHING

    def mark_done(self, session_id: str, source_id: str, count: int = 0) -> None:
        with self._lock:
            entry = self._entry(session_id, source_id)
            if entry is not None and entry.status in (PENDING, FETCHING):
                entry.status = DONE
                entry.items = count

    def mark_failed(self, session_id: str, source_id: str, error: str) -> None:
        with self._lock:
            entry = self._entry(session_id, source_id)
            if entry is not None and entry.status in (PENDING, FETCHING):
                entry.status = FAILED
                entry.error = error

    def end(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.completed_at is None:
                session.completed_at = self._clock()

    def snapshot(self, session_id: str) -> Optional[Dict[str, object]]:
        """Current view of a session, or ``None`` once it is unknown or expired."""
        with self._lock:
            self._expire(self._clock())
            session = self._sessions.get(session_id)
            if session is None:
                return None
            entries: List[_SourceEntry] = list(session.sources.values())
            total = len(entries)
            finished = sum(1 for e in entries if e.status in (DONE, FAILED))
            return {
                "status": "done" if session.completed_at is not None else "running",
                "total": total,
                "completed": finished,
                "failed": sum(1 for e in entries if e.status == FAILED),
                "percent": round(finished / total * 100) if total else 0,
                "sources": [
                    {"id": e.id, "name": e.name, "icon": e.icon, "status": e.status, "items": e.items, "error": e.error}
                    for e in entries
                ],
            }

    def _entry(self, session_id: str, source_id: str) -> Optional[_SourceEntry]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return session.sources.get(source_id)

    def _expire(self, now: float) -> None:
        for session_id, session in list(self._sessions.items()):
            too_old = now - session.started_at > SESSION_MAX_AGE
            lingering = session.completed_at is not None and now - session.completed_at > COMPLETED_GRACE
            if too_old or lingering:
                del self._sessions[session_id]
