"""service request workflow core schema

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18

Parties (users, boats), service_requests with first-class billing and
scheduling columns, linked quotes / invoices / schedule_entries, audit_logs.
Status flow: submitted -> in_progress -> forwarded -> quote_sent -> quote_accepted
-> scheduled -> completed -> ready_to_bill -> to_pay -> paid, cancel from any
non-terminal status.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "20261018_000001"
down_revision = None
branch_labels = None
depends_on = None

STATUSES = (
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


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False
    )


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("company_name", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.CheckConstraint(
            "role IN ('CLIENT','BOAT_MANAGER','NAUTICAL_COMPANY','CORPORATE')",
            name="chk_users_role",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "boats",
        _uuid_pk(),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("boat_type", sa.String(64), nullable=True),
        sa.Column("home_port", sa.String(128), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_boats_owner", "boats", ["owner_id"])

    status_list = ",".join(f"'{status}'" for status in STATUSES)
    op.create_table(
        "service_requests",
        _uuid_pk(),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'submitted'")),
        sa.Column("urgency", sa.String(16), nullable=False, server_default=sa.text("'normal'")),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("boat_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("boat_manager_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("deposit_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("invoice_reference", sa.String(64), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=True),
        sa.Column("payment_due_date", sa.Date(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("scheduled_time", sa.Time(), nullable=True),
        sa.Column("scheduled_location", sa.String(255), nullable=True),
        sa.Column("scheduled_notes", sa.Text(), nullable=True),
        sa.Column("cancel_reason", sa.String(64), nullable=True),
        sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(f"status IN ({status_list})", name="chk_service_request_status"),
        sa.CheckConstraint("urgency IN ('normal','urgent')", name="chk_service_request_urgency"),
        sa.CheckConstraint(
            "deposit_amount IS NULL OR price IS NULL OR deposit_amount <= price",
            name="chk_service_request_deposit_le_price",
        ),
        sa.ForeignKeyConstraint(["client_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["boat_id"], ["boats.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["boat_manager_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["company_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_reference", name="uq_service_requests_invoice_reference"),
    )
    op.create_index("idx_service_requests_client", "service_requests", ["client_id"])
    op.create_index("idx_service_requests_boat_manager", "service_requests", ["boat_manager_id"])
    op.create_index("idx_service_requests_company", "service_requests", ["company_id"])
    op.create_index("idx_service_requests_status", "service_requests", ["status"])

    op.create_table(
        "quotes",
        _uuid_pk(),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("issued_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("file_url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'sent'")),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.CheckConstraint("status IN ('sent','accepted','rejected')", name="chk_quotes_status"),
        sa.ForeignKeyConstraint(["request_id"], ["service_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["issued_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_quotes_request", "quotes", ["request_id"])

    op.create_table(
        "invoices",
        _uuid_pk(),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reference", sa.String(64), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("deposit_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'to_pay'")),
        sa.Column("payment_method", sa.String(16), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.CheckConstraint("status IN ('to_pay','paid')", name="chk_invoices_status"),
        sa.CheckConstraint("deposit_amount <= amount", name="chk_invoices_deposit_le_amount"),
        sa.ForeignKeyConstraint(["request_id"], ["service_requests.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reference", name="uq_invoices_reference"),
    )
    op.create_index("idx_invoices_request", "invoices", ["request_id"])

    op.create_table(
        "schedule_entries",
        _uuid_pk(),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.Time(), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["request_id"], ["service_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_schedule_entries_request", "schedule_entries", ["request_id"])

    op.create_table(
        "audit_logs",
        _uuid_pk(),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("old_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("new_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("actor_type", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_logs_timestamp", "audit_logs", ["timestamp"])


def downgrade() -> None:
    op.drop_index("idx_audit_logs_timestamp", table_name="audit_logs")
    op.drop_index("idx_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("idx_schedule_entries_request", table_name="schedule_entries")
    op.drop_table("schedule_entries")
    op.drop_index("idx_invoices_request", table_name="invoices")
    op.drop_table("invoices")
    op.drop_index("idx_quotes_request", table_name="quotes")
    op.drop_table("quotes")
    op.drop_index("idx_service_requests_status", table_name="service_requests")
    op.drop_index("idx_service_requests_company", table_name="service_requests")
    op.drop_index("idx_service_requests_boat_manager", table_name="service_requests")
    op.drop_index("idx_service_requests_client", table_name="service_requests")
    op.drop_table("service_requests")
    op.drop_index("idx_boats_owner", table_name="boats")
    op.drop_table("boats")
    op.drop_table("users")
