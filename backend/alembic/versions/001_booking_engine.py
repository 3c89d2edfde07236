# backend/alembic/versions/001_booking_engine.py
"""Booking engine - event templates, time slots, bookings

Revision ID: 001_booking_engine
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the provider event templates and their schedule exceptions, the
materialized time slots, and the bookings that reserve them. Bookings are
never deleted, so the slot foreign key carries no cascade.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_booking_engine"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_BOOKING_PREDICATE = "status IN ('confirmed', 'pending')"


def upgrade() -> None:
    """Create booking engine tables."""
    print("Creating booking engine tables...")

    op.create_table(
        "booking_event_configurations",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("provider_id", sa.String(26), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("location_types", sa.JSON(), nullable=False),
        sa.Column("daily_configs", sa.JSON(), nullable=False),
        sa.Column("max_booking_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("min_booking_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "cancellation_threshold_minutes", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column(
            "effective_from",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("effective_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("max_booking_days > 0", name="ck_booking_event_max_days_positive"),
        sa.CheckConstraint("min_booking_minutes >= 0", name="ck_booking_event_min_minutes"),
        sa.CheckConstraint(
            "cancellation_threshold_minutes >= 0", name="ck_booking_event_cancel_threshold"
        ),
        sa.CheckConstraint("price >= 0", name="ck_booking_event_price_non_negative"),
        comment="Weekly availability templates owned by providers",
    )
    op.create_index(
        "ix_booking_event_configurations_id", "booking_event_configurations", ["id"]
    )
    op.create_index(
        "ix_booking_event_configurations_provider_id",
        "booking_event_configurations",
        ["provider_id"],
    )
    op.create_index(
        "ix_booking_event_configurations_is_active",
        "booking_event_configurations",
        ["is_active"],
    )

    op.create_table(
        "schedule_exceptions",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("event_id", sa.String(26), nullable=False),
        sa.Column("provider_id", sa.String(26), nullable=False),
        sa.Column("start_datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["event_id"], ["booking_event_configurations.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("end_datetime > start_datetime", name="ck_schedule_exception_order"),
    )
    op.create_index("ix_schedule_exceptions_id", "schedule_exceptions", ["id"])
    op.create_index("ix_schedule_exceptions_event_id", "schedule_exceptions", ["event_id"])
    op.create_index("ix_schedule_exceptions_provider_id", "schedule_exceptions", ["provider_id"])

    op.create_table(
        "time_slots",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("provider_event_id", sa.String(26), nullable=False),
        sa.Column("provider_id", sa.String(26), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="available"),
        # Plain column: maintained by the reservation engine, not a foreign key
        sa.Column("booking_id", sa.String(26), nullable=True),
        sa.Column("consultation_modes", sa.JSON(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["provider_event_id"], ["booking_event_configurations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider_event_id", "start_time", name="uq_time_slots_event_start"),
        sa.CheckConstraint(
            "status IN ('available', 'booked', 'blocked')",
            name="ck_time_slots_status",
        ),
        sa.CheckConstraint(
            "(status = 'booked' AND booking_id IS NOT NULL) "
            "OR (status <> 'booked' AND booking_id IS NULL)",
            name="ck_time_slots_booking_ref",
        ),
        sa.CheckConstraint("end_time > start_time", name="ck_time_slots_time_order"),
        sa.CheckConstraint("price >= 0", name="ck_time_slots_price_non_negative"),
        comment="Materialized fixed-duration slots; status and booking_id move together",
    )
    op.create_index("ix_time_slots_id", "time_slots", ["id"])
    op.create_index("ix_time_slots_provider_event_id", "time_slots", ["provider_event_id"])
    op.create_index("ix_time_slots_provider_id", "time_slots", ["provider_id"])
    op.create_index("ix_time_slots_date", "time_slots", ["date"])
    op.create_index("ix_time_slots_status", "time_slots", ["status"])
    op.create_index("ix_time_slots_booking_id", "time_slots", ["booking_id"])
    op.create_index(
        "ix_time_slots_event_date_status",
        "time_slots",
        ["provider_event_id", "date", "status"],
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("client_id", sa.String(26), nullable=False),
        sa.Column("provider_id", sa.String(26), nullable=False),
        sa.Column("slot_id", sa.String(26), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="unpaid"),
        # Slot snapshot
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("location_type", sa.String(50), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        # Lifecycle timestamps
        sa.Column("booked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmation_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        # Cancellation / rejection
        sa.Column("cancelled_by_id", sa.String(26), nullable=True),
        sa.Column("cancelled_by_role", sa.String(20), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        # No-show
        sa.Column("no_show_marked_by", sa.String(20), nullable=True),
        sa.Column("no_show_marked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invoice_id", sa.String(64), nullable=True, comment="Billing system reference"),
        sa.ForeignKeyConstraint(["slot_id"], ["time_slots.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected', 'cancelled', "
            "'completed', 'no_show_client', 'no_show_provider')",
            name="ck_bookings_status",
        ),
        sa.CheckConstraint(
            "payment_status IN ('unpaid', 'paid')", name="ck_bookings_payment_status"
        ),
        sa.CheckConstraint("duration_minutes > 0", name="ck_bookings_duration_positive"),
        comment="Reservations; rows are kept after reaching a terminal status",
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_client_id", "bookings", ["client_id"])
    op.create_index("ix_bookings_provider_id", "bookings", ["provider_id"])
    op.create_index("ix_bookings_slot_id", "bookings", ["slot_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_scheduled_at", "bookings", ["scheduled_at"])
    op.create_index("ix_bookings_booked_at", "bookings", ["booked_at"])
    op.create_index("ix_bookings_pending_booked_at", "bookings", ["status", "booked_at"])

    # At most one pending/confirmed booking per slot
    op.create_index(
        "uq_bookings_active_slot",
        "bookings",
        ["slot_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_BOOKING_PREDICATE),
        sqlite_where=sa.text(ACTIVE_BOOKING_PREDICATE),
    )

    print("Booking engine tables created successfully!")


def downgrade() -> None:
    """Drop booking engine tables."""
    print("Dropping booking engine tables...")

    op.drop_index("uq_bookings_active_slot", table_name="bookings")
    op.drop_index("ix_bookings_pending_booked_at", table_name="bookings")
    op.drop_index("ix_bookings_booked_at", table_name="bookings")
    op.drop_index("ix_bookings_scheduled_at", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_slot_id", table_name="bookings")
    op.drop_index("ix_bookings_provider_id", table_name="bookings")
    op.drop_index("ix_bookings_client_id", table_name="bookings")
    op.drop_index("ix_bookings_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_time_slots_event_date_status", table_name="time_slots")
    op.drop_index("ix_time_slots_booking_id", table_name="time_slots")
    op.drop_index("ix_time_slots_status", table_name="time_slots")
    op.drop_index("ix_time_slots_date", table_name="time_slots")
    op.drop_index("ix_time_slots_provider_id", table_name="time_slots")
    op.drop_index("ix_time_slots_provider_event_id", table_name="time_slots")
    op.drop_index("ix_time_slots_id", table_name="time_slots")
    op.drop_table("time_slots")

    op.drop_index("ix_schedule_exceptions_provider_id", table_name="schedule_exceptions")
    op.drop_index("ix_schedule_exceptions_event_id", table_name="schedule_exceptions")
    op.drop_index("ix_schedule_exceptions_id", table_name="schedule_exceptions")
    op.drop_table("schedule_exceptions")

    op.drop_index(
        "ix_booking_event_configurations_is_active", table_name="booking_event_configurations"
    )
    op.drop_index(
        "ix_booking_event_configurations_provider_id", table_name="booking_event_configurations"
    )
    op.drop_index("ix_booking_event_configurations_id", table_name="booking_event_configurations")
    op.drop_table("booking_event_configurations")

    print("Booking engine tables dropped")
