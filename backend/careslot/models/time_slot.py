# backend/careslot/models/time_slot.py
"""
TimeSlot model.

A fixed-duration unit of provider availability materialized from a
BookingEventConfiguration. ``booking_id`` is a plain column, not a foreign
key: the slot -> booking back-reference is maintained by the reservation
engine inside the same transaction that moves the booking, so there is no
structural cycle between the two tables.
"""

from enum import Enum
import logging
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import ensure_utc
from ..database import Base

logger = logging.getLogger(__name__)


class SlotStatus(str, Enum):
    """Reservation status of a slot."""

    AVAILABLE = "available"
    BOOKED = "booked"
    BLOCKED = "blocked"


class TimeSlot(Base):
    """Concrete, date/time-bound slot for one provider event."""

    __tablename__ = "time_slots"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    provider_event_id = Column(
        String(26),
        ForeignKey("booking_event_configurations.id"),
        nullable=False,
        index=True,
    )
    provider_id = Column(String(26), nullable=False, index=True)

    # Provider-local calendar day; start/end are UTC instants
    date = Column(Date, nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)

    status = Column(String(20), nullable=False, default=SlotStatus.AVAILABLE.value, index=True)
    booking_id = Column(String(26), nullable=True, index=True)

    consultation_modes = Column(JSON, nullable=False, default=list)
    price = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("provider_event_id", "start_time", name="uq_time_slots_event_start"),
        CheckConstraint(
            "status IN ('available', 'booked', 'blocked')",
            name="ck_time_slots_status",
        ),
        CheckConstraint(
            "(status = 'booked' AND booking_id IS NOT NULL) "
            "OR (status <> 'booked' AND booking_id IS NULL)",
            name="ck_time_slots_booking_ref",
        ),
        CheckConstraint("end_time > start_time", name="ck_time_slots_time_order"),
        CheckConstraint("price >= 0", name="ck_time_slots_price_non_negative"),
    )

    @property
    def starts_at(self):
        return ensure_utc(self.start_time)

    @property
    def ends_at(self):
        return ensure_utc(self.end_time)

    @property
    def duration_minutes(self) -> int:
        return int((self.ends_at - self.starts_at).total_seconds() // 60)

    @property
    def is_available(self) -> bool:
        return self.status == SlotStatus.AVAILABLE

    def __repr__(self) -> str:
        return (
            f"<TimeSlot {self.id}: provider={self.provider_id}, "
            f"start={self.start_time}, status={self.status}, booking={self.booking_id}>"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "provider_event_id": self.provider_event_id,
            "provider_id": self.provider_id,
            "date": self.date.isoformat() if self.date else None,
            "start_time": self.starts_at.isoformat() if self.start_time else None,
            "end_time": self.ends_at.isoformat() if self.end_time else None,
            "status": self.status,
            "booking_id": self.booking_id,
            "consultation_modes": list(self.consultation_modes or []),
            "price": str(self.price) if self.price is not None else "0.00",
        }


Index(
    "ix_time_slots_event_date_status",
    TimeSlot.provider_event_id,
    TimeSlot.date,
    TimeSlot.status,
)
