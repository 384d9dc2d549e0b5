"""Pure decision logic for the service-request lifecycle.

``decide`` never touches storage: given a request snapshot, an intent, the
acting role and the submitted form inputs it either raises a workflow error
or returns a ``TransitionPlan`` describing the new status, the field updates
and the linked records (quote, invoice, schedule entry) to write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional

from boatcare.schemas.service_request import ActorRole, RequestStatus, TransitionIntent
from boatcare.services.invoice_policy import CENT, InvoicePolicy
from boatcare.services.request_records import ActorContext, LinkedRecordKind, RequestRecord
from boatcare.services.status_catalog import is_terminal
from boatcare.services.workflow_errors import InvalidTransition, ValidationFailure

logger = logging.getLogger(__name__)

PROFESSIONALS = frozenset({ActorRole.BOAT_MANAGER, ActorRole.NAUTICAL_COMPANY})
QUOTE_REJECTED_REASON = "quote_rejected"
DEFAULT_CANCEL_REASON = "cancelled"


@dataclass(frozen=True)
class TransitionRule:
    source: RequestStatus
    intent: TransitionIntent
    target: RequestStatus
    roles: frozenset[ActorRole]


def _rule(source, intent, target, *roles) -> TransitionRule:
    return TransitionRule(source, intent, target, frozenset(roles))


_FORWARD_RULES = (
    _rule(RequestStatus.SUBMITTED, TransitionIntent.TAKE_CHARGE, RequestStatus.IN_PROGRESS, *PROFESSIONALS),
    _rule(RequestStatus.IN_PROGRESS, TransitionIntent.FORWARD, RequestStatus.FORWARDED, ActorRole.BOAT_MANAGER),
    _rule(RequestStatus.FORWARDED, TransitionIntent.REQUEST_QUOTE, RequestStatus.QUOTE_SENT, *PROFESSIONALS),
    _rule(RequestStatus.QUOTE_SENT, TransitionIntent.ACCEPT_QUOTE, RequestStatus.QUOTE_ACCEPTED, ActorRole.CLIENT),
    _rule(RequestStatus.QUOTE_SENT, TransitionIntent.REJECT_QUOTE, RequestStatus.CANCELLED, ActorRole.CLIENT),
    _rule(RequestStatus.QUOTE_ACCEPTED, TransitionIntent.SCHEDULE, RequestStatus.SCHEDULED, *PROFESSIONALS),
    _rule(RequestStatus.SCHEDULED, TransitionIntent.MARK_COMPLETE, RequestStatus.COMPLETED, *PROFESSIONALS),
    _rule(RequestStatus.COMPLETED, TransitionIntent.MARK_BILLABLE, RequestStatus.READY_TO_BILL, *PROFESSIONALS),
    _rule(
        RequestStatus.READY_TO_BILL,
        TransitionIntent.GENERATE_INVOICE,
        RequestStatus.TO_PAY,
        ActorRole.CORPORATE,
        ActorRole.NAUTICAL_COMPANY,
    ),
    _rule(RequestStatus.TO_PAY, TransitionIntent.PAY, RequestStatus.PAID, ActorRole.CLIENT),
    _rule(RequestStatus.TO_PAY, TransitionIntent.MARK_PAID, RequestStatus.PAID, ActorRole.CORPORATE),
)

_CANCEL_RULES = tuple(
    _rule(status, TransitionIntent.CANCEL, RequestStatus.CANCELLED, ActorRole.BOAT_MANAGER, ActorRole.CORPORATE)
    for status in RequestStatus
    if not is_terminal(status)
)

TRANSITIONS: dict[tuple[RequestStatus, TransitionIntent], TransitionRule] = {
    (rule.source, rule.intent): rule for rule in _FORWARD_RULES + _CANCEL_RULES
}


@dataclass
class LinkedRecord:
    kind: LinkedRecordKind
    payload: dict[str, Any]


@dataclass
class LinkedUpdate:
    kind: LinkedRecordKind
    changes: dict[str, Any]
    # Only the latest linked record in this status is touched.
    only_status: Optional[str] = None


@dataclass
class TransitionPlan:
    request_id: str
    intent: TransitionIntent
    actor: ActorContext
    from_status: RequestStatus
    to_status: RequestStatus
    changes: dict[str, Any] = field(default_factory=dict)
    creates: list[LinkedRecord] = field(default_factory=list)
    updates: list[LinkedUpdate] = field(default_factory=list)

    @property
    def needs_invoice_reference(self) -> bool:
        return any(item.kind == LinkedRecordKind.INVOICE for item in self.creates)

    def assign_invoice_reference(self, reference: str) -> None:
        self.changes["invoice_reference"] = reference
        for item in self.creates:
            if item.kind == LinkedRecordKind.INVOICE:
                item.payload["reference"] = reference


def find_rule(status: RequestStatus, intent: TransitionIntent) -> Optional[TransitionRule]:
    return TRANSITIONS.get((status, intent))


def available_intents(status: RequestStatus, role: ActorRole) -> list[TransitionIntent]:
    """Intents ``role`` may trigger from ``status``, in catalog order."""
    return [
        intent
        for intent in TransitionIntent
        if (rule := TRANSITIONS.get((status, intent))) is not None and role in rule.roles
    ]


# ─── Input parsing ─────────────────────────────────────


def _text(inputs: Mapping[str, Any], name: str, errors: dict[str, str], *, required: bool = True) -> Optional[str]:
    raw = inputs.get(name)
    value = str(raw).strip() if raw is not None else ""
    if not value:
        if required:
            errors[name] = "required"
        return None
    return value


def _amount(inputs: Mapping[str, Any], name: str, errors: dict[str, str], *, required: bool = True) -> Optional[Decimal]:
    raw = inputs.get(name)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if required:
            errors[name] = "required"
        return None
    if isinstance(raw, bool):
        errors[name] = "must be a number"
        return None
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        errors[name] = "must be a number"
        return None
    if not value.is_finite():
        errors[name] = "must be a number"
        return None
    if value < 0:
        errors[name] = "must be >= 0"
        return None
    return value.quantize(CENT)


def _date(inputs: Mapping[str, Any], name: str, errors: dict[str, str]) -> Optional[date]:
    raw = inputs.get(name)
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    value = str(raw).strip() if raw is not None else ""
    if not value:
        errors[name] = "required"
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        errors[name] = "must be an ISO date (YYYY-MM-DD)"
        return None


def _time(inputs: Mapping[str, Any], name: str, errors: dict[str, str]) -> Optional[time]:
    raw = inputs.get(name)
    if isinstance(raw, time):
        return raw.replace(second=0, microsecond=0)
    value = str(raw).strip() if raw is not None else ""
    if not value:
        errors[name] = "required"
        return None
    try:
        parsed = time.fromisoformat(value)
    except ValueError:
        errors[name] = "must be a time (HH:MM)"
        return None
    return parsed.replace(second=0, microsecond=0, tzinfo=None)


def _raise_if_errors(errors: dict[str, str]) -> None:
    if errors:
        raise ValidationFailure(errors)


# ─── Per-intent side effects ───────────────────────────


def _take_charge(plan: TransitionPlan, record: RequestRecord, inputs, now, policy) -> None:
    actor = plan.actor
    if actor.role == ActorRole.BOAT_MANAGER and record.boat_manager is None and actor.id:
        plan.changes["boat_manager_id"] = actor.id
    if actor.role == ActorRole.NAUTICAL_COMPANY and record.company is None and actor.id:
        plan.changes["company_id"] = actor.id


def _forward(plan: TransitionPlan, record: RequestRecord, inputs, now, policy) -> None:
    errors: dict[str, str] = {}
    company_id = _text(inputs, "company_id", errors)
    _raise_if_errors(errors)
    plan.changes["company_id"] = company_id


def _request_quote(plan: TransitionPlan, record: RequestRecord, inputs, now, policy) -> None:
    if record.company is None and plan.actor.role != ActorRole.NAUTICAL_COMPANY:
        raise InvalidTransition(
            current_status=record.status,
            intent=plan.intent,
            actor_role=plan.actor.role,
            reason="no nautical company is attached to the request",
        )
    errors: dict[str, str] = {}
    amount = _amount(inputs, "amount", errors)
    file_url = _text(inputs, "file_url", errors, required=False)
    _raise_if_errors(errors)
    plan.changes["price"] = amount
    if record.company is None:
        plan.changes["company_id"] = plan.actor.id
    plan.creates.append(
        LinkedRecord(
            LinkedRecordKind.QUOTE,
            {"amount": amount, "file_url": file_url, "issued_by": plan.actor.id, "status": "sent"},
        )
    )


def _accept_quote(plan: TransitionPlan, record: RequestRecord, inputs, now, policy) -> None:
    plan.updates.append(
        LinkedUpdate(LinkedRecordKind.QUOTE, {"status": "accepted", "decided_at": now}, only_status="sent")
    )


def _reject_quote(plan: TransitionPlan, record: RequestRecord, inputs, now, policy) -> None:
    plan.changes["cancel_reason"] = QUOTE_REJECTED_REASON
    plan.updates.append(
        LinkedUpdate(LinkedRecordKind.QUOTE, {"status": "rejected", "decided_at": now}, only_status="sent")
    )


def _schedule(plan: TransitionPlan, record: RequestRecord, inputs, now, policy) -> None:
    errors: dict[str, str] = {}
    scheduled_date = _date(inputs, "date", errors)
    scheduled_time = _time(inputs, "time", errors)
    location = _text(inputs, "location", errors)
    notes = _text(inputs, "notes", errors)
    if scheduled_date is not None and scheduled_date < now.date():
        errors["date"] = "must not be in the past"
    _raise_if_errors(errors)
    plan.changes.update(
        {
            "scheduled_date": scheduled_date,
            "scheduled_time": scheduled_time,
            "scheduled_location": location,
            "scheduled_notes": notes,
        }
    )
    plan.creates.append(
        LinkedRecord(
            LinkedRecordKind.SCHEDULE,
            {
                "scheduled_date": scheduled_date,
                "scheduled_time": scheduled_time,
                "location": location,
                "notes": notes,
                "created_by": plan.actor.id,
            },
        )
    )


def _generate_invoice(plan: TransitionPlan, record: RequestRecord, inputs, now, policy) -> None:
    if record.invoice_reference:
        raise InvalidTransition(
            current_status=record.status,
            intent=plan.intent,
            actor_role=plan.actor.role,
            reason="an invoice was already generated for this request",
        )
    errors: dict[str, str] = {}
    total = _amount(inputs, "amount", errors, required=record.price is None)
    _raise_if_errors(errors)
    if total is None:
        total = Decimal(record.price).quantize(CENT)
    deposit = policy.deposit_for(total)
    invoice_date = now.date()
    due_date = policy.payment_due_date(invoice_date)
    plan.changes.update(
        {
            "price": total,
            "deposit_amount": deposit,
            "invoice_date": invoice_date,
            "payment_due_date": due_date,
        }
    )
    plan.creates.append(
        LinkedRecord(
            LinkedRecordKind.INVOICE,
            {
                "reference": None,
                "amount": total,
                "deposit_amount": deposit,
                "invoice_date": invoice_date,
                "due_date": due_date,
                "status": "to_pay",
            },
        )
    )


def _settle(payment_method: str) -> Callable[..., None]:
    def _apply(plan: TransitionPlan, record: RequestRecord, inputs, now, policy) -> None:
        plan.changes["paid_at"] = now
        plan.updates.append(
            LinkedUpdate(
                LinkedRecordKind.INVOICE,
                {"status": "paid", "paid_at": now, "payment_method": payment_method},
                only_status="to_pay",
            )
        )

    return _apply


def _cancel(plan: TransitionPlan, record: RequestRecord, inputs, now, policy) -> None:
    errors: dict[str, str] = {}
    reason = _text(inputs, "reason", errors, required=False)
    if reason and len(reason) > 64:
        errors["reason"] = "must be at most 64 characters"
    _raise_if_errors(errors)
    plan.changes["cancel_reason"] = reason or DEFAULT_CANCEL_REASON


def _no_side_effect(plan: TransitionPlan, record: RequestRecord, inputs, now, policy) -> None:
    return None


_SIDE_EFFECTS: dict[TransitionIntent, Callable[..., None]] = {
    TransitionIntent.TAKE_CHARGE: _take_charge,
    TransitionIntent.FORWARD: _forward,
    TransitionIntent.REQUEST_QUOTE: _request_quote,
    TransitionIntent.ACCEPT_QUOTE: _accept_quote,
    TransitionIntent.REJECT_QUOTE: _reject_quote,
    TransitionIntent.SCHEDULE: _schedule,
    TransitionIntent.MARK_COMPLETE: _no_side_effect,
    TransitionIntent.MARK_BILLABLE: _no_side_effect,
    TransitionIntent.GENERATE_INVOICE: _generate_invoice,
    TransitionIntent.PAY: _settle("client"),
    TransitionIntent.MARK_PAID: _settle("manual"),
    TransitionIntent.CANCEL: _cancel,
}

_unhandled_intents = set(TransitionIntent) - set(_SIDE_EFFECTS)
if _unhandled_intents:
    raise RuntimeError(f"No side-effect handler for intents: {sorted(i.value for i in _unhandled_intents)}")


def decide(
    record: RequestRecord,
    intent: TransitionIntent,
    actor: ActorContext,
    inputs: Optional[Mapping[str, Any]] = None,
    *,
    now: Optional[datetime] = None,
    policy: Optional[InvoicePolicy] = None,
) -> TransitionPlan:
    rule = find_rule(record.status, intent)
    if rule is None:
        raise InvalidTransition(
            current_status=record.status,
            intent=intent,
            actor_role=actor.role,
            reason="no such transition",
        )
    if actor.role not in rule.roles:
        raise InvalidTransition(
            current_status=record.status,
            intent=intent,
            actor_role=actor.role,
            reason="role is not authorized for this transition",
        )

    plan = TransitionPlan(
        request_id=record.id,
        intent=intent,
        actor=actor,
        from_status=rule.source,
        to_status=rule.target,
    )
    _SIDE_EFFECTS[intent](
        plan,
        record,
        inputs or {},
        now or datetime.now(timezone.utc),
        policy or InvoicePolicy(),
    )
    logger.debug("Planned %s: %s -> %s for request=%s", intent.value, rule.source.value, rule.target.value, record.id)
    return plan
