# backend/careslot/models/booking_event.py
"""
Booking event configuration model.

A provider's recurring weekly availability template. Concrete TimeSlot rows
are materialized from it by the slot generator; the template also carries
the cancellation-threshold and consultation-mode policy for those slots.
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.timezone_utils import as_utc, ensure_utc
from ..database import Base

logger = logging.getLogger(__name__)


class BookingEventConfiguration(Base):
    """
    Weekly availability template owned by a provider.

    ``daily_configs`` is stored as JSON keyed by day (``mon``..``sun``) but is
    only ever consumed through :meth:`parsed_daily_configs`, which validates
    it into typed ``DailyConfig`` models.
    """

    __tablename__ = "booking_event_configurations"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    timezone = Column(String(64), nullable=False, default="UTC")
    location_types = Column(JSON, nullable=False, default=list)
    daily_configs = Column(JSON, nullable=False, default=dict)

    max_booking_days = Column(Integer, nullable=False, default=30)
    min_booking_minutes = Column(Integer, nullable=False, default=0)
    cancellation_threshold_minutes = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False, default=0)

    effective_from = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    effective_to = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    schedule_exceptions = relationship(
        "ScheduleException", back_populates="event", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("max_booking_days > 0", name="ck_booking_event_max_days_positive"),
        CheckConstraint("min_booking_minutes >= 0", name="ck_booking_event_min_minutes"),
        CheckConstraint(
            "cancellation_threshold_minutes >= 0", name="ck_booking_event_cancel_threshold"
        ),
        CheckConstraint("price >= 0", name="ck_booking_event_price_non_negative"),
    )

    def parsed_daily_configs(self) -> Dict[Any, Any]:
        """Return the weekly template as validated ``DayOfWeek -> DailyConfig``."""
        from ..schemas.booking_event import parse_daily_configs

        return parse_daily_configs(self.daily_configs or {})

    @property
    def consultation_modes(self) -> List[str]:
        return list(self.location_types or [])

    def __repr__(self) -> str:
        return (
            f"<BookingEventConfiguration {self.id}: provider={self.provider_id}, "
            f"tz={self.timezone}, active={self.is_active}>"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""

        def _iso(value: Optional[datetime]) -> Optional[str]:
            normalized = ensure_utc(value)
            return normalized.isoformat() if normalized else None

        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "title": self.title,
            "description": self.description,
            "timezone": self.timezone,
            "location_types": list(self.location_types or []),
            "daily_configs": dict(self.daily_configs or {}),
            "max_booking_days": self.max_booking_days,
            "min_booking_minutes": self.min_booking_minutes,
            "cancellation_threshold_minutes": self.cancellation_threshold_minutes,
            "price": str(self.price) if self.price is not None else "0.00",
            "effective_from": _iso(self.effective_from),
            "effective_to": _iso(self.effective_to),
            "is_active": bool(self.is_active),
        }


class ScheduleException(Base):
    """
    One-off interval during which a provider is unavailable.

    Generated slots overlapping an exception are dropped.
    """

    __tablename__ = "schedule_exceptions"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    event_id = Column(
        String(26),
        ForeignKey("booking_event_configurations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_id = Column(String(26), nullable=False, index=True)
    start_datetime = Column(DateTime(timezone=True), nullable=False)
    end_datetime = Column(DateTime(timezone=True), nullable=False)
    reason = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("BookingEventConfiguration", back_populates="schedule_exceptions")

    __table_args__ = (
        CheckConstraint("end_datetime > start_datetime", name="ck_schedule_exception_order"),
    )

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap test against ``[start, end)``."""
        exc_start = as_utc(self.start_datetime)
        exc_end = as_utc(self.end_datetime)
        return start < exc_end and exc_start < end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "provider_id": self.provider_id,
            "start_datetime": as_utc(self.start_datetime).isoformat(),
            "end_datetime": as_utc(self.end_datetime).isoformat(),
            "reason": self.reason,
        }
