import logging
import time
from collections import deque
from threading import Lock
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 900
DEFAULT_THRESHOLDS = {
    "TRANSITION_CONFLICT": 5,
    "TRANSITION_REJECTED": 20,
    "INVOICE_REFERENCE_COLLISION": 3,
    "REPOSITORY_FAILURE": 3,
}


class WorkflowAlertTracker:
    """Sliding-window counter that logs an ALERT line when a workflow event repeats too often."""

    def __init__(self, window_seconds: int, thresholds: dict[str, int]) -> None:
        self._window_seconds = window_seconds
        self._thresholds = dict(thresholds)
        self._events: dict[str, deque[float]] = {}
        self._lock = Lock()

    def record(self, event: str, context: Optional[dict] = None) -> bool:
        """Count ``event``; returns True when this occurrence raised an alert."""
        limit = self._thresholds.get(event)
        if limit is None:
            return False
        now = time.monotonic()
        with self._lock:
            window = self._events.setdefault(event, deque())
            cutoff = now - self._window_seconds
            while window and window[0] <= cutoff:
                window.popleft()
            window.append(now)
            count = len(window)

        # Alert at the threshold and at every multiple of it.
        if count % limit != 0:
            return False
        logger.warning(
            "ALERT workflow_event=%s count=%s window_seconds=%s context=%s",
            event,
            count,
            self._window_seconds,
            context or {},
        )
        return True

    def count(self, event: str) -> int:
        with self._lock:
            return len(self._events.get(event, ()))

    def reset(self) -> None:
        with self._lock:
            self._events.clear()


alert_tracker = WorkflowAlertTracker(DEFAULT_WINDOW_SECONDS, DEFAULT_THRESHOLDS)
