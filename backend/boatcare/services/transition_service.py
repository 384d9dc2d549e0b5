"""Applies workflow decisions against the record store.

``attempt_transition`` is the single entry point for status changes: it
re-reads the request, asks the engine for a plan, persists it with a
conditional status update and writes the audit trail. Nothing is committed
here; the caller owns the transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Union

from boatcare.core.config import get_settings
from boatcare.schemas.service_request import (
    ActorRole,
    RequestStatus,
    ServiceRequestCreate,
    TransitionIntent,
)
from boatcare.services.invoice_policy import InvoicePolicy
from boatcare.services.request_records import ActorContext, RequestRecord
from boatcare.services.request_repository import RequestRepository, UpdateOutcome
from boatcare.services.transition_engine import TransitionPlan, decide
from boatcare.services.workflow_errors import (
    ConcurrentModification,
    InvalidTransition,
    RepositoryFailure,
    RequestNotFound,
    ValidationFailure,
)
from boatcare.utils.alerting import alert_tracker

logger = logging.getLogger(__name__)

ENTITY_TYPE = "service_request"
ACTION_STATUS_CHANGE = "STATUS_CHANGE"
ACTION_REQUEST_CREATED = "REQUEST_CREATED"

PII_REDACTION_FALLBACK_FIELDS = {
    "phone",
    "email",
    "e_mail",
    "address",
    "iban",
    "bic",
}


def _redact_pii(value: Any, redact_keys: set[str]) -> Any:
    if value is None:
        return None
    if isinstance(value, dict):
        redacted = {}
        for key, item in value.items():
            if isinstance(key, str) and key.lower() in redact_keys:
                redacted[key] = "[REDACTED]"
            else:
                redacted[key] = _redact_pii(item, redact_keys)
        return redacted
    if isinstance(value, list):
        return [_redact_pii(item, redact_keys) for item in value]
    return value


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def create_audit_log(
    repo: RequestRepository,
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    old_value: Optional[dict[str, Any]],
    new_value: Optional[dict[str, Any]],
    actor_type: str,
    actor_id: Optional[str],
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    settings = get_settings()
    old_value = _jsonable(old_value)
    new_value = _jsonable(new_value)
    metadata = _jsonable(metadata)
    if settings.pii_redaction_enabled:
        configured = {item.lower() for item in settings.pii_redaction_fields}
        redact_keys = configured or set(PII_REDACTION_FALLBACK_FIELDS)
        old_value = _redact_pii(old_value, redact_keys)
        new_value = _redact_pii(new_value, redact_keys)
        if metadata is not None:
            metadata = _redact_pii(metadata, redact_keys)

    repo.add_audit_entry(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        old_value=old_value,
        new_value=new_value,
        actor_type=actor_type,
        actor_id=actor_id,
        metadata=metadata,
    )


# ─── Transitions ───────────────────────────────────────


@dataclass
class TransitionOutcome:
    request: RequestRecord
    plan: TransitionPlan
    linked_records: dict[str, str] = field(default_factory=dict)

    @property
    def from_status(self) -> RequestStatus:
        return self.plan.from_status

    @property
    def to_status(self) -> RequestStatus:
        return self.plan.to_status


def allocate_invoice_reference(
    repo: RequestRepository,
    policy: InvoicePolicy,
    invoice_date: date,
    *,
    request_id: Optional[str] = None,
) -> str:
    """Generate references until one is unused, up to the policy's attempt limit."""
    for attempt in range(1, policy.max_reference_attempts + 1):
        reference = policy.generate_reference(invoice_date)
        if not repo.invoice_reference_exists(reference):
            return reference
        logger.warning(
            "Invoice reference collision request=%s reference=%s attempt=%s/%s",
            request_id,
            reference,
            attempt,
            policy.max_reference_attempts,
        )
        alert_tracker.record("INVOICE_REFERENCE_COLLISION", {"request_id": request_id, "reference": reference})

    alert_tracker.record("REPOSITORY_FAILURE", {"request_id": request_id, "reason": "invoice_reference"})
    raise RepositoryFailure(
        f"Could not allocate a unique invoice reference after {policy.max_reference_attempts} attempts"
    )


def _conflict(request_id: str, expected: RequestStatus, actual: Optional[RequestStatus]) -> ConcurrentModification:
    logger.warning(
        "Transition conflict request=%s expected=%s actual=%s",
        request_id,
        expected.value,
        actual.value if actual is not None else None,
    )
    alert_tracker.record("TRANSITION_CONFLICT", {"request_id": request_id})
    return ConcurrentModification(request_id=request_id, expected_status=expected, actual_status=actual)


ATTACHED_PARTY_FIELDS = {
    "boat_manager_id": ActorRole.BOAT_MANAGER,
    "company_id": ActorRole.NAUTICAL_COMPANY,
}


def _check_attached_parties(repo: RequestRepository, plan: TransitionPlan) -> None:
    """Parties a plan attaches must be active users holding the matching role."""
    errors: dict[str, str] = {}
    for field_name, role in ATTACHED_PARTY_FIELDS.items():
        if field_name in plan.changes:
            _require_party(repo, plan.changes[field_name], role, field_name, errors, required=True)
    if errors:
        raise ValidationFailure(errors)


def attempt_transition(
    repo: RequestRepository,
    request_id: str,
    intent: Union[TransitionIntent, str],
    actor: ActorContext,
    inputs: Optional[Mapping[str, Any]] = None,
    *,
    expected_status: Optional[Union[RequestStatus, str]] = None,
    policy: Optional[InvoicePolicy] = None,
    now: Optional[datetime] = None,
) -> TransitionOutcome:
    intent = TransitionIntent(intent)
    policy = policy or InvoicePolicy.from_settings()
    now = now or datetime.now(timezone.utc)

    record = repo.fetch_request_by_id(request_id)
    if record is None:
        raise RequestNotFound(request_id)

    if expected_status is not None and RequestStatus(expected_status) != record.status:
        raise _conflict(record.id, RequestStatus(expected_status), record.status)

    try:
        plan = decide(record, intent, actor, inputs, now=now, policy=policy)
        _check_attached_parties(repo, plan)
    except (InvalidTransition, ValidationFailure) as exc:
        logger.info(
            "Transition rejected request=%s intent=%s role=%s status=%s code=%s",
            record.id,
            intent.value,
            actor.role.value,
            record.status.value,
            exc.code,
        )
        alert_tracker.record("TRANSITION_REJECTED", {"request_id": record.id, "intent": intent.value})
        raise

    if plan.needs_invoice_reference:
        plan.assign_invoice_reference(
            allocate_invoice_reference(repo, policy, now.date(), request_id=record.id)
        )

    outcome = repo.update_status(record.id, plan.from_status, plan.to_status, plan.changes)
    if outcome == UpdateOutcome.NOT_FOUND:
        raise RequestNotFound(record.id)
    if outcome == UpdateOutcome.CONFLICT:
        current = repo.fetch_request_by_id(record.id)
        raise _conflict(record.id, plan.from_status, current.status if current else None)

    linked: dict[str, str] = {}
    for item in plan.creates:
        linked[item.kind.value] = repo.create_linked_record(item.kind, record.id, item.payload)
    for item in plan.updates:
        updated_id = repo.update_linked_record(item.kind, record.id, item.changes, item.only_status)
        if updated_id is not None:
            linked[item.kind.value] = updated_id

    create_audit_log(
        repo,
        entity_type=ENTITY_TYPE,
        entity_id=record.id,
        action=ACTION_STATUS_CHANGE,
        old_value={"status": plan.from_status.value},
        new_value={"status": plan.to_status.value},
        actor_type=actor.role.value,
        actor_id=actor.id,
        metadata={"intent": intent.value, "changes": plan.changes, "linked_records": linked},
    )
    logger.info(
        "Transition applied request=%s intent=%s %s -> %s role=%s",
        record.id,
        intent.value,
        plan.from_status.value,
        plan.to_status.value,
        actor.role.value,
    )

    refreshed = repo.fetch_request_by_id(record.id)
    if refreshed is None:
        raise RequestNotFound(record.id)
    return TransitionOutcome(request=refreshed, plan=plan, linked_records=linked)


# ─── Creation ──────────────────────────────────────────


def _require_party(
    repo: RequestRepository,
    user_id: Optional[str],
    role: ActorRole,
    field_name: str,
    errors: dict[str, str],
    *,
    required: bool,
) -> Optional[str]:
    if not user_id:
        if required:
            errors[field_name] = "required"
        return None
    if repo.fetch_party_role(user_id) != role.value:
        errors[field_name] = f"unknown {role.value.lower().replace('_', ' ')}"
        return None
    return user_id


def create_service_request(
    repo: RequestRepository,
    payload: ServiceRequestCreate,
    actor: ActorContext,
) -> RequestRecord:
    """Create a request in ``submitted``.

    A client actor is always the client; a boat-manager actor becomes the
    attached boat manager; a nautical-company actor opens the
    direct-to-company path with itself attached.
    """
    if actor.role != ActorRole.CORPORATE and not actor.id:
        raise ValidationFailure({"actor": "authenticated user id required"})

    errors: dict[str, str] = {}

    if actor.role == ActorRole.CLIENT:
        client_id = actor.id
    else:
        client_id = _require_party(repo, payload.client_id, ActorRole.CLIENT, "client_id", errors, required=True)

    if actor.role == ActorRole.BOAT_MANAGER:
        boat_manager_id = actor.id
    else:
        boat_manager_id = _require_party(
            repo, payload.boat_manager_id, ActorRole.BOAT_MANAGER, "boat_manager_id", errors, required=False
        )

    if actor.role == ActorRole.NAUTICAL_COMPANY:
        company_id = actor.id
    else:
        company_id = _require_party(
            repo, payload.company_id, ActorRole.NAUTICAL_COMPANY, "company_id", errors, required=False
        )

    boat_id = payload.boat_id
    if boat_id:
        owner_id = repo.fetch_boat_owner(boat_id)
        if owner_id is None:
            errors["boat_id"] = "unknown boat"
        elif client_id and owner_id != str(client_id):
            errors["boat_id"] = "boat does not belong to the client"
    elif payload.category.requires_boat:
        errors["boat_id"] = "required"

    if errors:
        raise ValidationFailure(errors)

    record = repo.create_request(
        {
            "category": payload.category.value,
            "title": payload.title,
            "description": payload.description,
            "urgency": payload.urgency.value,
            "status": RequestStatus.SUBMITTED.value,
            "client_id": client_id,
            "boat_id": boat_id or None,
            "boat_manager_id": boat_manager_id,
            "company_id": company_id,
        }
    )

    create_audit_log(
        repo,
        entity_type=ENTITY_TYPE,
        entity_id=record.id,
        action=ACTION_REQUEST_CREATED,
        old_value=None,
        new_value={"status": record.status.value, "category": record.category.value, "urgency": record.urgency.value},
        actor_type=actor.role.value,
        actor_id=actor.id,
        metadata={"title": record.title},
    )
    logger.info(
        "Service request created request=%s category=%s urgency=%s role=%s",
        record.id,
        record.category.value,
        record.urgency.value,
        actor.role.value,
    )
    return record
