# backend/careslot/models/booking.py
"""
Booking model.

A client's reservation against one TimeSlot, carrying its own confirmation
lifecycle:

    pending   -> confirmed | rejected | cancelled
    confirmed -> cancelled | completed | no_show_client | no_show_provider

Bookings are never deleted; terminal rows are kept for history and billing.
"""

from datetime import datetime, timedelta
from enum import Enum
import logging
from typing import Any, FrozenSet, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import ensure_utc
from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"  # Awaiting provider confirmation
    CONFIRMED = "confirmed"
    REJECTED = "rejected"  # By the provider or the expiry sweep
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW_CLIENT = "no_show_client"
    NO_SHOW_PROVIDER = "no_show_provider"


class PaymentStatus(str, Enum):
    """Payment flag reported by the billing collaborator."""

    UNPAID = "unpaid"
    PAID = "paid"


ACTIVE_STATUSES: FrozenSet[str] = frozenset(
    {BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value}
)
TERMINAL_STATUSES: FrozenSet[str] = frozenset(
    status.value for status in BookingStatus if status.value not in ACTIVE_STATUSES
)
# Terminal states that hand the slot back to the store
SLOT_RELEASING_STATUSES: FrozenSet[str] = frozenset(
    {BookingStatus.REJECTED.value, BookingStatus.CANCELLED.value}
)

ALLOWED_TRANSITIONS: dict[str, FrozenSet[str]] = {
    BookingStatus.PENDING.value: frozenset(
        {
            BookingStatus.CONFIRMED.value,
            BookingStatus.REJECTED.value,
            BookingStatus.CANCELLED.value,
        }
    ),
    BookingStatus.CONFIRMED.value: frozenset(
        {
            BookingStatus.CANCELLED.value,
            BookingStatus.COMPLETED.value,
            BookingStatus.NO_SHOW_CLIENT.value,
            BookingStatus.NO_SHOW_PROVIDER.value,
        }
    ),
}


def can_transition(current: str, target: str) -> bool:
    """Whether the state machine allows ``current -> target``."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class Booking(Base):
    """Reservation record linking a client, a provider, a slot and a payment reference."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    client_id = Column(String(26), nullable=False, index=True)
    provider_id = Column(String(26), nullable=False, index=True)
    slot_id = Column(String(26), ForeignKey("time_slots.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value)

    # Slot snapshot
    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    location_type = Column(String(50), nullable=True)
    reason = Column(Text, nullable=True)

    # Lifecycle timestamps
    booked_at = Column(DateTime(timezone=True), nullable=False, index=True)
    confirmation_timestamp = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Cancellation / rejection tracking
    cancelled_by_id = Column(String(26), nullable=True)
    cancelled_by_role = Column(String(20), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # No-show tracking
    no_show_marked_by = Column(String(20), nullable=True)
    no_show_marked_at = Column(DateTime(timezone=True), nullable=True)

    # Billing reference (invoice lives in the billing system)
    invoice_id = Column(String(64), nullable=True)

    slot = relationship("TimeSlot", foreign_keys=[slot_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected', 'cancelled', "
            "'completed', 'no_show_client', 'no_show_provider')",
            name="ck_bookings_status",
        ),
        CheckConstraint("payment_status IN ('unpaid', 'paid')", name="ck_bookings_payment_status"),
        CheckConstraint("duration_minutes > 0", name="ck_bookings_duration_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: client={self.client_id}, provider={self.provider_id}, "
            f"slot={self.slot_id}, status={self.status}>"
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def scheduled_start(self) -> Optional[datetime]:
        return ensure_utc(self.scheduled_at)

    @property
    def scheduled_end(self) -> Optional[datetime]:
        start = self.scheduled_start
        if start is None:
            return None
        return start + timedelta(minutes=int(self.duration_minutes or 0))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""

        def _iso(value: Optional[datetime]) -> Optional[str]:
            normalized = ensure_utc(value)
            return normalized.isoformat() if normalized else None

        return {
            "id": self.id,
            "client_id": self.client_id,
            "provider_id": self.provider_id,
            "slot_id": self.slot_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "scheduled_at": _iso(self.scheduled_at),
            "duration_minutes": self.duration_minutes,
            "location_type": self.location_type,
            "reason": self.reason,
            "booked_at": _iso(self.booked_at),
            "confirmation_timestamp": _iso(self.confirmation_timestamp),
            "completed_at": _iso(self.completed_at),
            "cancelled_at": _iso(self.cancelled_at),
            "cancelled_by_id": self.cancelled_by_id,
            "cancelled_by_role": self.cancelled_by_role,
            "cancellation_reason": self.cancellation_reason,
            "rejection_reason": self.rejection_reason,
            "no_show_marked_by": self.no_show_marked_by,
            "no_show_marked_at": _iso(self.no_show_marked_at),
            "invoice_id": self.invoice_id,
        }


# At most one non-terminal booking per slot
Index(
    "uq_bookings_active_slot",
    Booking.slot_id,
    unique=True,
    postgresql_where=Booking.status.in_(sorted(ACTIVE_STATUSES)),
    sqlite_where=Booking.status.in_(sorted(ACTIVE_STATUSES)),
)

Index(
    "ix_bookings_pending_booked_at",
    Booking.status,
    Booking.booked_at,
)
