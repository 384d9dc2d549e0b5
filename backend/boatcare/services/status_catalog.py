from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from boatcare.schemas.service_request import RequestStatus, TransitionIntent


@dataclass(frozen=True)
class StatusMeta:
    status: RequestStatus
    label: str
    description: str
    color: str
    order: int
    terminal: bool
    # Action expected from whoever currently handles the request; None when the
    # state is terminal or waits on another party (client acceptance/payment).
    next_action: Optional[TransitionIntent]

    @property
    def next_action_label(self) -> Optional[str]:
        return intent_label(self.next_action) if self.next_action else None


STATUS_CATALOG: dict[RequestStatus, StatusMeta] = {
    RequestStatus.SUBMITTED: StatusMeta(
        RequestStatus.SUBMITTED, "New", "Waiting to be taken in charge", "#F97316", 1, False,
        TransitionIntent.TAKE_CHARGE,
    ),
    RequestStatus.IN_PROGRESS: StatusMeta(
        RequestStatus.IN_PROGRESS, "In progress", "Being handled", "#3B82F6", 2, False,
        TransitionIntent.FORWARD,
    ),
    RequestStatus.FORWARDED: StatusMeta(
        RequestStatus.FORWARDED, "Forwarded", "Forwarded to a nautical company", "#A855F7", 3, False,
        TransitionIntent.REQUEST_QUOTE,
    ),
    RequestStatus.QUOTE_SENT: StatusMeta(
        RequestStatus.QUOTE_SENT, "Quote sent", "Waiting for the client's answer", "#22C55E", 4, False,
        None,
    ),
    RequestStatus.QUOTE_ACCEPTED: StatusMeta(
        RequestStatus.QUOTE_ACCEPTED, "Quote accepted", "The client accepted the quote", "#15803D", 5, False,
        TransitionIntent.SCHEDULE,
    ),
    RequestStatus.SCHEDULED: StatusMeta(
        RequestStatus.SCHEDULED, "Scheduled", "Intervention scheduled", "#2563EB", 6, False,
        TransitionIntent.MARK_COMPLETE,
    ),
    RequestStatus.COMPLETED: StatusMeta(
        RequestStatus.COMPLETED, "Completed", "Intervention completed", "#0EA5E9", 7, False,
        TransitionIntent.MARK_BILLABLE,
    ),
    RequestStatus.READY_TO_BILL: StatusMeta(
        RequestStatus.READY_TO_BILL, "Ready to bill", "Ready for invoicing", "#F59E0B", 8, False,
        TransitionIntent.GENERATE_INVOICE,
    ),
    RequestStatus.TO_PAY: StatusMeta(
        RequestStatus.TO_PAY, "To pay", "Invoice sent to the client", "#10B981", 9, False,
        None,
    ),
    RequestStatus.PAID: StatusMeta(
        RequestStatus.PAID, "Paid", "Invoice settled", "#A6ACAF", 10, True,
        None,
    ),
    RequestStatus.CANCELLED: StatusMeta(
        RequestStatus.CANCELLED, "Cancelled", "Request cancelled", "#DC2626", 11, True,
        None,
    ),
}

INTENT_LABELS: dict[TransitionIntent, str] = {
    TransitionIntent.TAKE_CHARGE: "Take charge",
    TransitionIntent.FORWARD: "Forward to a company",
    TransitionIntent.REQUEST_QUOTE: "Send quote",
    TransitionIntent.ACCEPT_QUOTE: "Accept quote",
    TransitionIntent.REJECT_QUOTE: "Reject quote",
    TransitionIntent.SCHEDULE: "Schedule intervention",
    TransitionIntent.MARK_COMPLETE: "Mark as completed",
    TransitionIntent.MARK_BILLABLE: "Mark as ready to bill",
    TransitionIntent.GENERATE_INVOICE: "Generate invoice",
    TransitionIntent.PAY: "Pay invoice",
    TransitionIntent.MARK_PAID: "Mark as paid",
    TransitionIntent.CANCEL: "Cancel request",
}

# Summary groups used by the back-office list screen.
STATUS_GROUPS: dict[str, tuple[RequestStatus, ...]] = {
    "new_requests": (RequestStatus.SUBMITTED,),
    "in_progress_group": (
        RequestStatus.IN_PROGRESS,
        RequestStatus.FORWARDED,
        RequestStatus.QUOTE_SENT,
        RequestStatus.QUOTE_ACCEPTED,
        RequestStatus.SCHEDULED,
        RequestStatus.COMPLETED,
    ),
    "ready_to_bill_group": (RequestStatus.READY_TO_BILL,),
    "to_pay_group": (RequestStatus.TO_PAY,),
    "paid_group": (RequestStatus.PAID,),
    "cancelled_group": (RequestStatus.CANCELLED,),
}

BILLING_STATUSES = (RequestStatus.READY_TO_BILL, RequestStatus.TO_PAY, RequestStatus.PAID)

_missing_meta = set(RequestStatus) - set(STATUS_CATALOG)
if _missing_meta:
    raise RuntimeError(f"Status catalog is missing entries for: {sorted(s.value for s in _missing_meta)}")
_missing_labels = set(TransitionIntent) - set(INTENT_LABELS)
if _missing_labels:
    raise RuntimeError(f"Intent labels are missing for: {sorted(i.value for i in _missing_labels)}")


def status_meta(status: RequestStatus) -> StatusMeta:
    return STATUS_CATALOG[status]


def ordered_statuses() -> list[RequestStatus]:
    return sorted(STATUS_CATALOG, key=lambda status: STATUS_CATALOG[status].order)


def is_terminal(status: RequestStatus) -> bool:
    return STATUS_CATALOG[status].terminal


def intent_label(intent: TransitionIntent) -> str:
    return INTENT_LABELS[intent]


def statuses_for_filter(key: str) -> tuple[RequestStatus, ...]:
    """Resolve a list filter key: either a summary group or a single status."""
    if key in STATUS_GROUPS:
        return STATUS_GROUPS[key]
    try:
        return (RequestStatus(key),)
    except ValueError as exc:
        raise ValueError(f"Unknown status filter: {key!r}") from exc
