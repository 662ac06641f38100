"""Initial schema: users, events, tables, bookings and payment reconciliation.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
ACTIVE_BOOKING = sa.text("status IN ('confirmed', 'reserved', 'comp')")


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="customer"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('admin', 'venue_owner', 'venue_manager', 'hostess', 'customer')",
            name="check_user_role",
        ),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("venue_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(20), nullable=False, server_default="full"),
        sa.Column("total_seats", sa.Integer(), nullable=False),
        sa.Column("total_tables", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("available_seats", sa.Integer(), nullable=False),
        sa.Column("available_tables", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("ticket_cutoff_days", sa.Integer(), nullable=False, server_default=sa.text("3")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        # Last line of defense: the database refuses to oversell even if
        # application code has a bug.
        sa.CheckConstraint("available_seats >= 0", name="check_available_seats_non_negative"),
        sa.CheckConstraint("available_tables >= 0", name="check_available_tables_non_negative"),
        sa.CheckConstraint("available_seats <= total_seats", name="check_available_seats_lte_total"),
        sa.CheckConstraint("available_tables <= total_tables", name="check_available_tables_lte_total"),
        sa.CheckConstraint("ticket_cutoff_days >= 0", name="check_ticket_cutoff_non_negative"),
        sa.CheckConstraint("event_type IN ('full', 'ticket-only')", name="check_event_type"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_venue_id", "events", ["venue_id"])
    # Listings filter on upcoming dates
    op.create_index("ix_events_date", "events", ["date"])

    op.create_table(
        "tables",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("venue_id", sa.Integer(), nullable=False),
        sa.Column("table_number", sa.Integer(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default=sa.text("4")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("venue_id", "table_number", name="uq_venue_table_number"),
        sa.CheckConstraint("capacity > 0", name="check_table_capacity_positive"),
    )
    op.create_index("ix_tables_id", "tables", ["id"])
    op.create_index("ix_tables_venue_id", "tables", ["venue_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("table_id", sa.Integer(), sa.ForeignKey("tables.id"), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=False),
        sa.Column("party_size", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("guest_names", JSON_TYPE, nullable=False),
        sa.Column("food_selections", JSON_TYPE, nullable=False),
        sa.Column("wine_selections", JSON_TYPE, nullable=False),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("payment_reference", name="uq_bookings_payment_reference"),
        sa.CheckConstraint("party_size > 0", name="check_booking_party_size_positive"),
        sa.CheckConstraint(
            "status IN ('pending', 'reserved', 'comp', 'confirmed', 'cancelled', 'refunded')",
            name="check_booking_status",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_event_id", "bookings", ["event_id"])
    op.create_index("ix_bookings_table_id", "bookings", ["table_id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_customer_email", "bookings", ["customer_email"])
    # At most one active booking per (event, table). Concurrent writers for
    # the same table serialize on this index; the loser gets a unique
    # violation, which the booking writer reports as a conflict.
    op.create_index(
        "uq_active_booking_per_table",
        "bookings",
        ["event_id", "table_id"],
        unique=True,
        postgresql_where=ACTIVE_BOOKING,
        sqlite_where=ACTIVE_BOOKING,
    )

    op.create_table(
        "processed_webhook_events",
        sa.Column("event_id", sa.String(255), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "reconciliation_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider_event_id", sa.String(255), nullable=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("previous_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=True),
        sa.Column("outcome", sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_reconciliation_records_id", "reconciliation_records", ["id"])
    op.create_index("ix_reconciliation_records_provider_event_id", "reconciliation_records", ["provider_event_id"])
    op.create_index("ix_reconciliation_records_payment_reference", "reconciliation_records", ["payment_reference"])
    op.create_index("ix_reconciliation_records_booking_id", "reconciliation_records", ["booking_id"])

    op.create_table(
        "unmatched_payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider_event_id", sa.String(255), nullable=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("payment_reference", sa.String(255), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(50), nullable=False),
        sa.Column("payload", JSON_TYPE, nullable=True),
        sa.Column("resolved_booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_unmatched_payments_id", "unmatched_payments", ["id"])
    op.create_index("ix_unmatched_payments_provider_event_id", "unmatched_payments", ["provider_event_id"])
    op.create_index("ix_unmatched_payments_payment_reference", "unmatched_payments", ["payment_reference"])


def downgrade() -> None:
    op.drop_table("unmatched_payments")
    op.drop_table("reconciliation_records")
    op.drop_table("processed_webhook_events")
    op.drop_index("uq_active_booking_per_table", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("tables")
    op.drop_table("events")
    op.drop_table("users")
