"""Record-store port for service requests and its SQLAlchemy adapter.

The workflow only talks to ``RequestRepository``. The adapter never commits:
it flushes, and the caller (HTTP layer or test) owns the transaction.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Mapping, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from boatcare.models.service_request import (
    AuditLog,
    Boat,
    Invoice,
    Quote,
    ScheduleEntry,
    ServiceRequest,
    User,
)
from boatcare.schemas.service_request import ActorRole, RequestStatus, ServiceCategory, Urgency
from boatcare.services.request_records import (
    ActorContext,
    LinkedRecordKind,
    PartyRef,
    RequestRecord,
    parse_status,
)
from boatcare.services.workflow_errors import RepositoryFailure

logger = logging.getLogger(__name__)


class UpdateOutcome(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RequestQuery:
    client_id: Optional[str] = None
    boat_manager_id: Optional[str] = None
    company_id: Optional[str] = None
    statuses: tuple[RequestStatus, ...] = ()
    urgency: Optional[Urgency] = None

    @classmethod
    def for_actor(cls, actor: ActorContext) -> "RequestQuery":
        """Listing scope of an actor: own requests, or everything for corporate."""
        if actor.role == ActorRole.CLIENT:
            return cls(client_id=actor.id)
        if actor.role == ActorRole.BOAT_MANAGER:
            return cls(boat_manager_id=actor.id)
        if actor.role == ActorRole.NAUTICAL_COMPANY:
            return cls(company_id=actor.id)
        return cls()


class RequestRepository(Protocol):
    def fetch_requests(self, query: RequestQuery) -> list[RequestRecord]: ...

    def fetch_request_by_id(self, request_id: str) -> Optional[RequestRecord]: ...

    def update_status(
        self,
        request_id: str,
        expected_status: RequestStatus,
        new_status: RequestStatus,
        extra_fields: Optional[Mapping[str, Any]] = None,
    ) -> UpdateOutcome: ...

    def create_linked_record(self, kind: LinkedRecordKind, request_id: str, payload: Mapping[str, Any]) -> str: ...

    def update_linked_record(
        self,
        kind: LinkedRecordKind,
        request_id: str,
        changes: Mapping[str, Any],
        only_status: Optional[str] = None,
    ) -> Optional[str]: ...

    def invoice_reference_exists(self, reference: str) -> bool: ...

    def create_request(self, fields: Mapping[str, Any]) -> RequestRecord: ...

    def fetch_party_role(self, user_id: str) -> Optional[str]: ...

    def fetch_boat_owner(self, boat_id: str) -> Optional[str]: ...

    def add_audit_entry(
        self,
        *,
        entity_type: str,
        entity_id: str,
        action: str,
        old_value: Optional[dict[str, Any]],
        new_value: Optional[dict[str, Any]],
        actor_type: str,
        actor_id: Optional[str],
        metadata: Optional[dict[str, Any]],
    ) -> None: ...


_LINKED_MODELS = {
    LinkedRecordKind.QUOTE: Quote,
    LinkedRecordKind.INVOICE: Invoice,
    LinkedRecordKind.SCHEDULE: ScheduleEntry,
}


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _person_name(user: Optional[User]) -> str:
    if user is None:
        return ""
    name = " ".join(part for part in (user.first_name, user.last_name) if part)
    return name or user.email or ""


def _company_name(user: Optional[User]) -> str:
    if user is None:
        return ""
    return user.company_name or _person_name(user)


def _party(user: Optional[User], name: str) -> Optional[PartyRef]:
    if user is None:
        return None
    return PartyRef(id=str(user.id), name=name)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Request store failure during %s", operation)
        raise RepositoryFailure(f"Request store failure during {operation}") from exc


class SqlAlchemyRequestRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _base_select(self):
        client = aliased(User, name="client_user")
        manager = aliased(User, name="manager_user")
        company = aliased(User, name="company_user")
        stmt = (
            select(ServiceRequest, client, manager, company, Boat)
            .join(client, ServiceRequest.client_id == client.id)
            .outerjoin(manager, ServiceRequest.boat_manager_id == manager.id)
            .outerjoin(company, ServiceRequest.company_id == company.id)
            .outerjoin(Boat, ServiceRequest.boat_id == Boat.id)
            .execution_options(populate_existing=True)
        )
        return stmt

    @staticmethod
    def _to_record(row) -> RequestRecord:
        request, client, manager, company, boat = row
        return RequestRecord(
            id=str(request.id),
            category=ServiceCategory(request.category),
            title=request.title,
            status=parse_status(request.status),
            urgency=Urgency(request.urgency),
            client=_party(client, _person_name(client)),
            description=request.description or "",
            created_at=request.created_at,
            boat=PartyRef(id=str(boat.id), name=boat.name) if boat is not None else None,
            boat_manager=_party(manager, _person_name(manager)),
            company=_party(company, _company_name(company)),
            price=request.price,
            deposit_amount=request.deposit_amount,
            invoice_reference=request.invoice_reference,
            invoice_date=request.invoice_date,
            payment_due_date=request.payment_due_date,
            paid_at=request.paid_at,
            scheduled_date=request.scheduled_date,
            scheduled_time=request.scheduled_time,
            scheduled_location=request.scheduled_location,
            scheduled_notes=request.scheduled_notes,
            cancel_reason=request.cancel_reason,
        )

    def fetch_requests(self, query: RequestQuery) -> list[RequestRecord]:
        stmt = self._base_select()
        if query.client_id is not None:
            stmt = stmt.where(ServiceRequest.client_id == _as_uuid(query.client_id))
        if query.boat_manager_id is not None:
            stmt = stmt.where(ServiceRequest.boat_manager_id == _as_uuid(query.boat_manager_id))
        if query.company_id is not None:
            stmt = stmt.where(ServiceRequest.company_id == _as_uuid(query.company_id))
        if query.statuses:
            stmt = stmt.where(ServiceRequest.status.in_([status.value for status in query.statuses]))
        if query.urgency is not None:
            stmt = stmt.where(ServiceRequest.urgency == query.urgency.value)
        stmt = stmt.order_by(ServiceRequest.created_at.desc(), ServiceRequest.id)

        with _store_errors("fetch_requests"):
            rows = self.db.execute(stmt).all()
        return [self._to_record(row) for row in rows]

    def fetch_request_by_id(self, request_id: str) -> Optional[RequestRecord]:
        rid = _as_uuid(request_id)
        if rid is None:
            return None
        with _store_errors("fetch_request_by_id"):
            row = self.db.execute(self._base_select().where(ServiceRequest.id == rid)).first()
        return self._to_record(row) if row is not None else None

    def update_status(
        self,
        request_id: str,
        expected_status: RequestStatus,
        new_status: RequestStatus,
        extra_fields: Optional[Mapping[str, Any]] = None,
    ) -> UpdateOutcome:
        rid = _as_uuid(request_id)
        if rid is None:
            return UpdateOutcome.NOT_FOUND

        now = datetime.now(timezone.utc)
        values = dict(extra_fields or {})
        for key in ("boat_manager_id", "company_id"):
            if key in values:
                values[key] = _as_uuid(values[key])
        values.update({"status": new_status.value, "status_changed_at": now, "updated_at": now})

        stmt = (
            update(ServiceRequest)
            .where(ServiceRequest.id == rid, ServiceRequest.status == expected_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with _store_errors("update_status"):
            result = self.db.execute(stmt)
            if result.rowcount == 1:
                return UpdateOutcome.OK
            current = self.db.execute(
                select(ServiceRequest.status).where(ServiceRequest.id == rid)
            ).scalar_one_or_none()

        if current is None:
            return UpdateOutcome.NOT_FOUND
        return UpdateOutcome.CONFLICT

    def create_linked_record(self, kind: LinkedRecordKind, request_id: str, payload: Mapping[str, Any]) -> str:
        model = _LINKED_MODELS[kind]
        fields = dict(payload)
        for key in ("issued_by", "created_by"):
            if key in fields:
                fields[key] = _as_uuid(fields[key])
        obj = model(request_id=_as_uuid(request_id), **fields)
        with _store_errors(f"create_linked_record[{kind.value}]"):
            self.db.add(obj)
            self.db.flush()
        return str(obj.id)

    def update_linked_record(
        self,
        kind: LinkedRecordKind,
        request_id: str,
        changes: Mapping[str, Any],
        only_status: Optional[str] = None,
    ) -> Optional[str]:
        model = _LINKED_MODELS[kind]
        stmt = select(model).where(model.request_id == _as_uuid(request_id))
        if only_status is not None:
            stmt = stmt.where(model.status == only_status)
        stmt = stmt.order_by(model.created_at.desc()).limit(1)

        with _store_errors(f"update_linked_record[{kind.value}]"):
            obj = self.db.execute(stmt).scalar_one_or_none()
            if obj is None:
                return None
            for key, value in changes.items():
                setattr(obj, key, value)
            self.db.flush()
        return str(obj.id)

    def invoice_reference_exists(self, reference: str) -> bool:
        with _store_errors("invoice_reference_exists"):
            on_invoice = self.db.execute(
                select(Invoice.id).where(Invoice.reference == reference).limit(1)
            ).first()
            if on_invoice is not None:
                return True
            on_request = self.db.execute(
                select(ServiceRequest.id).where(ServiceRequest.invoice_reference == reference).limit(1)
            ).first()
        return on_request is not None

    def create_request(self, fields: Mapping[str, Any]) -> RequestRecord:
        values = dict(fields)
        for key in ("client_id", "boat_id", "boat_manager_id", "company_id"):
            if key in values:
                values[key] = _as_uuid(values[key])
        request = ServiceRequest(**values)
        with _store_errors("create_request"):
            self.db.add(request)
            self.db.flush()
        record = self.fetch_request_by_id(str(request.id))
        if record is None:
            raise RepositoryFailure(f"Service request {request.id} vanished after insert")
        return record

    def fetch_party_role(self, user_id: str) -> Optional[str]:
        uid = _as_uuid(user_id)
        if uid is None:
            return None
        with _store_errors("fetch_party_role"):
            return self.db.execute(
                select(User.role).where(User.id == uid, User.is_active.is_(True))
            ).scalar_one_or_none()

    def fetch_boat_owner(self, boat_id: str) -> Optional[str]:
        bid = _as_uuid(boat_id)
        if bid is None:
            return None
        with _store_errors("fetch_boat_owner"):
            owner_id = self.db.execute(select(Boat.owner_id).where(Boat.id == bid)).scalar_one_or_none()
        return str(owner_id) if owner_id is not None else None

    def add_audit_entry(
        self,
        *,
        entity_type: str,
        entity_id: str,
        action: str,
        old_value: Optional[dict[str, Any]],
        new_value: Optional[dict[str, Any]],
        actor_type: str,
        actor_id: Optional[str],
        metadata: Optional[dict[str, Any]],
    ) -> None:
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=_as_uuid(entity_id),
            action=action,
            old_value=old_value,
            new_value=new_value,
            actor_type=actor_type,
            actor_id=actor_id,
            audit_meta=metadata,
        )
        with _store_errors("add_audit_entry"):
            self.db.add(entry)
            self.db.flush()
