from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from boatcare.schemas.service_request import HandlerActor, RequestStatus
from boatcare.services.request_records import PartyRef, RequestRecord

BOAT_MANAGER_STAGE = frozenset({RequestStatus.SUBMITTED, RequestStatus.IN_PROGRESS})
COMPANY_STAGE = frozenset(
    {
        RequestStatus.FORWARDED,
        RequestStatus.QUOTE_SENT,
        RequestStatus.QUOTE_ACCEPTED,
        RequestStatus.SCHEDULED,
        RequestStatus.COMPLETED,
        RequestStatus.READY_TO_BILL,
        RequestStatus.TO_PAY,
        RequestStatus.PAID,
    }
)

HANDLER_COLORS = {
    HandlerActor.BOAT_MANAGER: "#0066CC",
    HandlerActor.COMPANY: "#8B5CF6",
    HandlerActor.CLIENT: "#666666",
}
SCHEDULED_COLOR = "#3B82F6"
INVOICE_PENDING_COLOR = "#EAB308"
INVOICE_SETTLED_COLOR = "#A6ACAF"


@dataclass(frozen=True)
class HandlerInfo:
    actor: HandlerActor
    party: Optional[PartyRef]
    display_text: str
    color: str


def _base_handler(record: RequestRecord) -> tuple[HandlerActor, Optional[PartyRef]]:
    if record.status in BOAT_MANAGER_STAGE and record.boat_manager is not None:
        return HandlerActor.BOAT_MANAGER, record.boat_manager
    if record.status in COMPANY_STAGE and record.company is not None:
        return HandlerActor.COMPANY, record.company
    return HandlerActor.CLIENT, record.client


def _handled_by_text(actor: HandlerActor, party: Optional[PartyRef]) -> str:
    name = party.name if party and party.name else "Unknown"
    if actor == HandlerActor.BOAT_MANAGER:
        return f"Handled by boat manager: {name}"
    if actor == HandlerActor.COMPANY:
        return f"Handled by company: {name}"
    return f"Handled by client: {name}"


def resolve_handler(record: RequestRecord) -> HandlerInfo:
    """Who is expected to act next on ``record`` and what to show for it.

    Recomputed on every read; never persisted.
    """
    actor, party = _base_handler(record)
    text = _handled_by_text(actor, party)
    color = HANDLER_COLORS[actor]

    if record.status == RequestStatus.SCHEDULED and record.scheduled_date:
        text = f"Scheduled for {record.scheduled_date.isoformat()}"
        color = SCHEDULED_COLOR
    elif record.status == RequestStatus.TO_PAY and record.invoice_reference:
        text = "Invoice awaiting payment"
        color = INVOICE_PENDING_COLOR
    elif record.status == RequestStatus.PAID and record.invoice_reference:
        text = "Invoice settled"
        color = INVOICE_SETTLED_COLOR

    return HandlerInfo(actor=actor, party=party, display_text=text, color=color)
