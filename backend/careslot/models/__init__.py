"""SQLAlchemy models; importing this package registers every table on Base.metadata."""

from .booking import Booking, BookingStatus, PaymentStatus
from .booking_event import BookingEventConfiguration, ScheduleException
from .time_slot import SlotStatus, TimeSlot

__all__ = [
    "Booking",
    "BookingEventConfiguration",
    "BookingStatus",
    "PaymentStatus",
    "ScheduleException",
    "SlotStatus",
    "TimeSlot",
]
