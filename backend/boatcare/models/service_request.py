import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from sqlalchemy.types import CHAR, TypeDecorator

Base = declarative_base()


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value if dialect.name == "postgresql" else str(value)
        if isinstance(value, str):
            try:
                parsed = uuid.UUID(value)
            except ValueError:
                return value
            return parsed if dialect.name == "postgresql" else str(parsed)
        return value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(value)
        except ValueError:
            return value


UUID_TYPE = GUID()
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")

STATUS_VALUES = (
    "submitted",
    "in_progress",
    "forwarded",
    "quote_sent",
    "quote_accepted",
    "scheduled",
    "completed",
    "ready_to_bill",
    "to_pay",
    "paid",
    "cancelled",
)


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ",".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class User(Base):
    __tablename__ = "users"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(32))
    role = Column(String(32), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    company_name = Column(String(200))
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Boat(Base):
    __tablename__ = "boats"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    owner_id = Column(UUID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(128), nullable=False)
    boat_type = Column(String(64))
    home_port = Column(String(128))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ServiceRequest(Base):
    __tablename__ = "service_requests"
    __table_args__ = (
        CheckConstraint(_in_clause("status", STATUS_VALUES), name="chk_service_request_status"),
        CheckConstraint("urgency IN ('normal','urgent')", name="chk_service_request_urgency"),
        CheckConstraint(
            "deposit_amount IS NULL OR price IS NULL OR deposit_amount <= price",
            name="chk_service_request_deposit_le_price",
        ),
        Index("idx_service_requests_client", "client_id"),
        Index("idx_service_requests_boat_manager", "boat_manager_id"),
        Index("idx_service_requests_company", "company_id"),
        Index("idx_service_requests_status", "status"),
    )

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    category = Column(String(32), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="", server_default=text("''"))
    status = Column(String(32), nullable=False, default="submitted", server_default=text("'submitted'"))
    urgency = Column(String(16), nullable=False, default="normal", server_default=text("'normal'"))

    client_id = Column(UUID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    boat_id = Column(UUID_TYPE, ForeignKey("boats.id", ondelete="SET NULL"))
    boat_manager_id = Column(UUID_TYPE, ForeignKey("users.id", ondelete="SET NULL"))
    company_id = Column(UUID_TYPE, ForeignKey("users.id", ondelete="SET NULL"))

    price = Column(Numeric(12, 2))
    deposit_amount = Column(Numeric(12, 2))
    invoice_reference = Column(String(64), unique=True)
    invoice_date = Column(Date)
    payment_due_date = Column(Date)
    paid_at = Column(DateTime(timezone=True))

    scheduled_date = Column(Date)
    scheduled_time = Column(Time)
    scheduled_location = Column(String(255))
    scheduled_notes = Column(Text)

    cancel_reason = Column(String(64))
    status_changed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Quote(Base):
    __tablename__ = "quotes"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    request_id = Column(UUID_TYPE, ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False)
    issued_by = Column(UUID_TYPE, ForeignKey("users.id", ondelete="SET NULL"))
    amount = Column(Numeric(12, 2), nullable=False)
    file_url = Column(Text)
    status = Column(String(16), nullable=False, default="sent", server_default=text("'sent'"))
    decided_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    request_id = Column(UUID_TYPE, ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False)
    reference = Column(String(64), nullable=False, unique=True)
    amount = Column(Numeric(12, 2), nullable=False)
    deposit_amount = Column(Numeric(12, 2), nullable=False)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String(16), nullable=False, default="to_pay", server_default=text("'to_pay'"))
    payment_method = Column(String(16))
    paid_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ScheduleEntry(Base):
    __tablename__ = "schedule_entries"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    request_id = Column(UUID_TYPE, ForeignKey("service_requests.id", ondelete="CASCADE"), nullable=False)
    scheduled_date = Column(Date, nullable=False)
    scheduled_time = Column(Time, nullable=False)
    location = Column(String(255), nullable=False)
    notes = Column(Text, nullable=False)
    created_by = Column(UUID_TYPE, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(UUID_TYPE, nullable=False)
    action = Column(String(64), nullable=False)
    old_value = Column(JSON_TYPE)
    new_value = Column(JSON_TYPE)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(String(64))
    audit_meta = Column("metadata", JSON_TYPE, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
