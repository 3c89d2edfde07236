# backend/careslot/repositories/factory.py
"""
Repository Factory for the booking engine.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_event_repository import BookingEventRepository
    from .booking_repository import BookingRepository
    from .time_slot_repository import TimeSlotRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking operations."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_time_slot_repository(db: Session) -> "TimeSlotRepository":
        """Create repository for slot store operations."""
        from .time_slot_repository import TimeSlotRepository

        return TimeSlotRepository(db)

    @staticmethod
    def create_booking_event_repository(db: Session) -> "BookingEventRepository":
        """Create repository for event configuration lookups."""
        from .booking_event_repository import BookingEventRepository

        return BookingEventRepository(db)
