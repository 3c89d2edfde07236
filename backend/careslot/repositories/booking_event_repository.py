# backend/careslot/repositories/booking_event_repository.py
"""Booking event configuration and schedule-exception queries."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking_event import BookingEventConfiguration, ScheduleException
from .base_repository import BaseRepository


class BookingEventRepository(BaseRepository[BookingEventConfiguration]):
    def __init__(self, db: Session):
        super().__init__(db, BookingEventConfiguration)

    def list_active(self, offset: int = 0, limit: int = 10) -> List[BookingEventConfiguration]:
        """One page of active configurations in stable id order."""
        query = (
            self._build_query()
            .filter(BookingEventConfiguration.is_active.is_(True))
            .order_by(BookingEventConfiguration.id)
            .offset(offset)
            .limit(limit)
        )
        return self._execute_query(query)

    def list_for_provider(
        self,
        provider_id: Optional[str] = None,
        include_inactive: bool = False,
        offset: int = 0,
        limit: int = 20,
    ) -> List[BookingEventConfiguration]:
        query = self._build_query()
        if provider_id is not None:
            query = query.filter(BookingEventConfiguration.provider_id == provider_id)
        if not include_inactive:
            query = query.filter(BookingEventConfiguration.is_active.is_(True))
        query = query.order_by(BookingEventConfiguration.id).offset(offset).limit(limit)
        return self._execute_query(query)

    # Schedule exceptions

    def exceptions_in_range(
        self, event_id: str, range_start: datetime, range_end: datetime
    ) -> List[ScheduleException]:
        """Schedule exceptions overlapping ``[range_start, range_end)``."""
        query = self.db.query(ScheduleException).filter(
            ScheduleException.event_id == event_id,
            ScheduleException.start_datetime < range_end,
            ScheduleException.end_datetime > range_start,
        )
        return self._execute_query(query)

    def list_exceptions(
        self,
        event_id: str,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 25,
    ) -> List[ScheduleException]:
        """Exceptions for an event ordered by start, optionally limited to those overlapping a range."""
        query = self.db.query(ScheduleException).filter(ScheduleException.event_id == event_id)
        if range_end is not None:
            query = query.filter(ScheduleException.start_datetime < range_end)
        if range_start is not None:
            query = query.filter(ScheduleException.end_datetime > range_start)
        query = query.order_by(ScheduleException.start_datetime, ScheduleException.id)
        return self._execute_query(query.offset(offset).limit(limit))

    def get_exception(self, exception_id: str) -> Optional[ScheduleException]:
        try:
            return self.db.query(ScheduleException).filter(ScheduleException.id == exception_id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting schedule exception {exception_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve schedule exception: {str(e)}")

    def create_exception(self, **kwargs) -> ScheduleException:
        """Add a schedule exception; does not commit."""
        try:
            exception = ScheduleException(**kwargs)
            self.db.add(exception)
            self.db.flush()
            return exception
        except IntegrityError as exc:
            self.logger.error("Integrity error creating schedule exception: %s", exc)
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating schedule exception: {str(e)}")
            raise RepositoryException(f"Failed to create schedule exception: {str(e)}")

    def delete_exception(self, exception: ScheduleException) -> None:
        try:
            self.db.delete(exception)
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting schedule exception {exception.id}: {str(e)}")
            raise RepositoryException(f"Failed to delete schedule exception: {str(e)}")
