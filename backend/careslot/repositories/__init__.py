"""Repository layer; repositories flush but never commit."""

from .base_repository import BaseRepository
from .booking_event_repository import BookingEventRepository
from .booking_repository import BookingQuery, BookingRepository
from .factory import RepositoryFactory
from .time_slot_repository import TimeSlotRepository

__all__ = [
    "BaseRepository",
    "BookingEventRepository",
    "BookingQuery",
    "BookingRepository",
    "RepositoryFactory",
    "TimeSlotRepository",
]
