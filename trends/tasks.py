"""
Fire-and-forget background work (health records, snapshots, sweeps).
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundTasks:
    def __init__(self, max_workers: int = 4) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="trends-bg")
        self._lock = threading.Lock()
        self._pending: Set[Future] = set()

    def submit(self, fn: Callable[..., Any], *args: Any, name: Optional[str] = None, **kwargs: Any) -> Future:
        label = name or getattr(fn, "__name__", repr(fn))
        future = self._executor.submit(fn, *args, **kwargs)
        with self._lock:
            self._pending.add(future)

        def _done(f: Future) -> None:
            with self._lock:
                self._pending.discard(f)
            if f.cancelled():
                return
            exc = f.exception()
            if exc is not None:
                logger.error("Background task %s failed", label, exc_info=(type(exc), exc, exc.__traceback__))

        future.add_done_callback(_done)
        return future

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight tasks; returns False if some are still running."""
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_tasks)
