"""Response models assembled from request records for the list and detail screens."""

from typing import Iterable, Optional

from boatcare.schemas.service_request import (
    ActionOut,
    ActorRole,
    HandlerOut,
    PartyOut,
    RequestSummaryOut,
    ServiceRequestOut,
    ServiceRequestView,
    StatusMetaOut,
)
from boatcare.services.handler_resolution import resolve_handler
from boatcare.services.request_aggregation import RequestSummary
from boatcare.services.request_records import PartyRef, RequestRecord
from boatcare.services.status_catalog import StatusMeta, intent_label, status_meta
from boatcare.services.transition_engine import available_intents
from boatcare.utils.request_badges import RequestBadges


def _party_out(party: Optional[PartyRef]) -> Optional[PartyOut]:
    if party is None:
        return None
    return PartyOut(id=party.id, name=party.name)


def status_meta_out(meta: StatusMeta) -> StatusMetaOut:
    return StatusMetaOut(
        status=meta.status,
        label=meta.label,
        description=meta.description,
        color=meta.color,
        order=meta.order,
        terminal=meta.terminal,
        next_action=meta.next_action,
        next_action_label=meta.next_action_label,
    )


def request_out(record: RequestRecord) -> ServiceRequestOut:
    return ServiceRequestOut(
        id=record.id,
        category=record.category,
        category_label=record.category.label,
        title=record.title,
        description=record.description,
        status=record.status,
        urgency=record.urgency,
        created_at=record.created_at,
        client=_party_out(record.client),
        boat=_party_out(record.boat),
        boat_manager=_party_out(record.boat_manager),
        company=_party_out(record.company),
        price=float(record.price) if record.price is not None else None,
        deposit_amount=float(record.deposit_amount) if record.deposit_amount is not None else None,
        invoice_reference=record.invoice_reference,
        invoice_date=record.invoice_date,
        payment_due_date=record.payment_due_date,
        paid_at=record.paid_at,
        scheduled_date=record.scheduled_date,
        scheduled_time=record.scheduled_time.strftime("%H:%M") if record.scheduled_time else None,
        scheduled_location=record.scheduled_location,
        scheduled_notes=record.scheduled_notes,
        cancel_reason=record.cancel_reason,
    )


def request_view(
    record: RequestRecord,
    role: ActorRole,
    badges: Optional[RequestBadges] = None,
) -> ServiceRequestView:
    handler = resolve_handler(record)
    state = badges.state(record.id) if badges is not None else None
    return ServiceRequestView(
        request=request_out(record),
        status_meta=status_meta_out(status_meta(record.status)),
        handler=HandlerOut(
            actor=handler.actor,
            party=_party_out(handler.party),
            display_text=handler.display_text,
            color=handler.color,
        ),
        actions=[
            ActionOut(intent=intent, label=intent_label(intent))
            for intent in available_intents(record.status, role)
        ],
        is_new=state.is_new if state else False,
        has_status_update=state.has_status_update if state else False,
    )


def summary_out(
    summary: RequestSummary,
    request_ids: Iterable[str] = (),
    badges: Optional[RequestBadges] = None,
) -> RequestSummaryOut:
    new_requests, status_updates = badges.counts(request_ids) if badges is not None else (0, 0)
    return RequestSummaryOut(
        total=summary.total,
        by_status=dict(summary.by_status),
        by_group=dict(summary.by_group),
        urgent=summary.urgent,
        billing_by_source={key: dict(value) for key, value in summary.billing_by_source.items()},
        new_requests=new_requests,
        status_updates=status_updates,
    )
