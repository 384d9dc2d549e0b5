"""List-view helpers: summary counts, single-selection filters and sorting.

Everything here works on an already fetched snapshot of ``RequestRecord``
values. Counts are "as of last fetch"; nothing is written back.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Iterable, Optional

from boatcare.schemas.service_request import RequestStatus, SortKey, Urgency
from boatcare.services.request_records import RequestRecord
from boatcare.services.status_catalog import BILLING_STATUSES, STATUS_GROUPS, statuses_for_filter

SOURCE_BOAT_MANAGER = "boat_manager"
SOURCE_COMPANY = "company"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Summary counts
# ---------------------------------------------------------------------------


@dataclass
class RequestSummary:
    total: int = 0
    by_status: dict[str, int] = field(default_factory=lambda: {status.value: 0 for status in RequestStatus})
    by_group: dict[str, int] = field(default_factory=lambda: {key: 0 for key in STATUS_GROUPS})
    urgent: int = 0
    billing_by_source: dict[str, dict[str, int]] = field(
        default_factory=lambda: {
            status.value: {SOURCE_BOAT_MANAGER: 0, SOURCE_COMPANY: 0} for status in BILLING_STATUSES
        }
    )


def request_source(record: RequestRecord) -> Optional[str]:
    """Which party fulfilled the work: a company if one is attached, else a lone boat manager."""
    if record.company is not None:
        return SOURCE_COMPANY
    if record.boat_manager is not None:
        return SOURCE_BOAT_MANAGER
    return None


def summarize_requests(records: Iterable[RequestRecord]) -> RequestSummary:
    summary = RequestSummary()
    group_of = {status: key for key, statuses in STATUS_GROUPS.items() for status in statuses}

    for record in records:
        summary.total += 1
        summary.by_status[record.status.value] += 1
        summary.by_group[group_of[record.status]] += 1
        if record.urgency == Urgency.URGENT:
            summary.urgent += 1
        if record.status in BILLING_STATUSES:
            source = request_source(record)
            if source is not None:
                summary.billing_by_source[record.status.value][source] += 1

    return summary


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestListFilter:
    """Free-text search plus at most one of (status filter, urgency filter).

    Selecting one dimension clears the other, and selecting the active value
    again clears it (radio-button semantics).
    """

    search: str = ""
    status_filter: Optional[str] = None
    urgency: Optional[Urgency] = None

    def __post_init__(self) -> None:
        if self.status_filter is not None and self.urgency is not None:
            raise ValueError("status_filter and urgency are mutually exclusive")
        if self.status_filter is not None:
            statuses_for_filter(self.status_filter)

    def with_search(self, search: str) -> "RequestListFilter":
        return replace(self, search=search or "")

    def select_status(self, key: Optional[str]) -> "RequestListFilter":
        selected = None if key is None or key == self.status_filter else key
        return replace(self, status_filter=selected, urgency=None)

    def select_urgency(self, urgency: Optional[Urgency]) -> "RequestListFilter":
        selected = None if urgency is None or urgency == self.urgency else urgency
        return replace(self, status_filter=None, urgency=selected)

    def matches(self, record: RequestRecord) -> bool:
        if self.search and not _matches_search(record, self.search):
            return False
        if self.status_filter is not None and record.status not in statuses_for_filter(self.status_filter):
            return False
        if self.urgency is not None and record.urgency != self.urgency:
            return False
        return True


def _search_haystack(record: RequestRecord) -> list[str]:
    values = [
        record.client.name,
        record.company.name if record.company else "",
        record.boat_manager.name if record.boat_manager else "",
        record.title,
        record.category.label,
        record.category.value,
        record.boat.name if record.boat else "",
    ]
    return [value for value in values if value]


def _matches_search(record: RequestRecord, search: str) -> bool:
    needle = search.strip().casefold()
    if not needle:
        return True
    return any(needle in value.casefold() for value in _search_haystack(record))


def filter_requests(records: Iterable[RequestRecord], request_filter: RequestListFilter) -> list[RequestRecord]:
    return [record for record in records if request_filter.matches(record)]


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


def collation_key(value: Optional[str]) -> tuple[str, str]:
    """Locale-independent collation: NFKD accent folding then casefolding.

    Gives the same order on every host regardless of the process locale;
    the raw value breaks ties.
    """
    raw = value or ""
    decomposed = unicodedata.normalize("NFKD", raw)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return (stripped.casefold(), raw)


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _sort_value(record: RequestRecord, sort_key: SortKey):
    if sort_key == SortKey.DATE:
        return _as_utc(record.created_at)
    if sort_key == SortKey.TYPE:
        return collation_key(record.category.label)
    if sort_key == SortKey.CLIENT:
        return collation_key(record.client.name)
    if sort_key == SortKey.BOAT_MANAGER:
        return collation_key(record.boat_manager.name if record.boat_manager else "")
    if sort_key == SortKey.COMPANY:
        return collation_key(record.company.name if record.company else "")
    raise ValueError(f"Unsupported sort key: {sort_key!r}")


def sort_requests(
    records: Iterable[RequestRecord],
    sort_key: SortKey = SortKey.DATE,
    ascending: bool = False,
) -> list[RequestRecord]:
    return sorted(
        records,
        key=lambda record: (_sort_value(record, sort_key), record.id),
        reverse=not ascending,
    )


def list_requests(
    records: Iterable[RequestRecord],
    request_filter: Optional[RequestListFilter] = None,
    sort_key: SortKey = SortKey.DATE,
    ascending: bool = False,
) -> list[RequestRecord]:
    request_filter = request_filter or RequestListFilter()
    return sort_requests(filter_requests(records, request_filter), sort_key, ascending)
