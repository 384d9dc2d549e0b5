"""Plain value objects passed between the repository, the engine and the views."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from boatcare.schemas.service_request import (
    ActorRole,
    RequestStatus,
    ServiceCategory,
    Urgency,
)
from boatcare.services.workflow_errors import UnknownStatusError


@dataclass(frozen=True)
class ActorContext:
    role: ActorRole
    id: Optional[str] = None


@dataclass(frozen=True)
class PartyRef:
    id: str
    name: str


@dataclass(frozen=True)
class RequestRecord:
    id: str
    category: ServiceCategory
    title: str
    status: RequestStatus
    urgency: Urgency
    client: PartyRef
    description: str = ""
    created_at: Optional[datetime] = None
    boat: Optional[PartyRef] = None
    boat_manager: Optional[PartyRef] = None
    company: Optional[PartyRef] = None
    price: Optional[Decimal] = None
    deposit_amount: Optional[Decimal] = None
    invoice_reference: Optional[str] = None
    invoice_date: Optional[date] = None
    payment_due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    scheduled_location: Optional[str] = None
    scheduled_notes: Optional[str] = None
    cancel_reason: Optional[str] = None


def parse_status(raw: Any) -> RequestStatus:
    """Coerce a stored status value, failing loudly on anything off-catalog."""
    if isinstance(raw, RequestStatus):
        return raw
    try:
        return RequestStatus(raw)
    except ValueError as exc:
        raise UnknownStatusError(f"Unknown service request status: {raw!r}") from exc


class LinkedRecordKind(str, Enum):
    QUOTE = "quote"
    INVOICE = "invoice"
    SCHEDULE = "schedule"
