"""In-memory "new" / "status updated" markers for the request list.

Purely presentational: the workflow never reads them and they are lost on
restart. Markers older than ``max_age_seconds`` are pruned periodically and
the oldest are evicted once ``max_entries`` is exceeded.
"""

import time
from dataclasses import dataclass
from threading import Lock
from typing import Iterable

_MAX_ENTRIES = 50_000
_MAX_AGE_SECONDS = 7 * 24 * 3600
_PRUNE_INTERVAL_SECONDS = 60


@dataclass(frozen=True)
class BadgeState:
    is_new: bool = False
    has_status_update: bool = False


class RequestBadges:
    def __init__(
        self,
        *,
        max_entries: int = _MAX_ENTRIES,
        max_age_seconds: int = _MAX_AGE_SECONDS,
        prune_interval_seconds: int = _PRUNE_INTERVAL_SECONDS,
    ) -> None:
        # request id -> time the marker was set; dicts keep insertion order (oldest first).
        self._new: dict[str, float] = {}
        self._updated: dict[str, float] = {}
        self._lock = Lock()
        self._max_entries = max(1, int(max_entries))
        self._max_age_seconds = max_age_seconds
        self._prune_interval_seconds = max(1, int(prune_interval_seconds))
        self._last_prune_at = time.monotonic()

    def _mark(self, markers: dict[str, float], request_id: str) -> None:
        now = time.monotonic()
        with self._lock:
            if (now - self._last_prune_at) >= self._prune_interval_seconds:
                self._prune_stale(now)
                self._last_prune_at = now
            key = str(request_id)
            markers.pop(key, None)
            markers[key] = now
            while len(markers) > self._max_entries:
                del markers[next(iter(markers))]

    def _prune_stale(self, now: float) -> None:
        """Drop markers older than the max age (called under lock)."""
        cutoff = now - self._max_age_seconds
        for markers in (self._new, self._updated):
            while markers:
                oldest = next(iter(markers))
                if markers[oldest] > cutoff:
                    break
                del markers[oldest]

    def mark_new(self, request_id: str) -> None:
        self._mark(self._new, request_id)

    def mark_status_update(self, request_id: str) -> None:
        self._mark(self._updated, request_id)

    def open(self, request_id: str) -> None:
        """The request was viewed: clear both markers."""
        with self._lock:
            self._new.pop(str(request_id), None)
            self._updated.pop(str(request_id), None)

    def state(self, request_id: str) -> BadgeState:
        key = str(request_id)
        with self._lock:
            return BadgeState(is_new=key in self._new, has_status_update=key in self._updated)

    def counts(self, request_ids: Iterable[str]) -> tuple[int, int]:
        """(new, status updates) among ``request_ids``."""
        keys = {str(request_id) for request_id in request_ids}
        with self._lock:
            return len(keys & self._new.keys()), len(keys & self._updated.keys())

    def size(self) -> int:
        with self._lock:
            return len(self._new) + len(self._updated)

    def clear(self) -> None:
        with self._lock:
            self._new.clear()
            self._updated.clear()


request_badges = RequestBadges()
