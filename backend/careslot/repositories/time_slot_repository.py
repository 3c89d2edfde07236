# backend/careslot/repositories/time_slot_repository.py
"""
TimeSlot Repository.

Slot-store port: every status change is a compare-and-set on the current
status so concurrent reservations resolve to exactly one winner without
holding locks.
"""

from datetime import date, datetime
from typing import List, Optional, Set

from sqlalchemy import and_, delete, exists
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..core.timezone_utils import ensure_utc
from ..models.booking import Booking
from ..models.time_slot import SlotStatus, TimeSlot
from .base_repository import BaseRepository


class TimeSlotRepository(BaseRepository[TimeSlot]):
    """Data access for materialized time slots."""

    def __init__(self, db: Session):
        super().__init__(db, TimeSlot)

    def reserve_slot(self, slot_id: str, booking_id: str) -> bool:
        """
        Flip an ``available`` slot to ``booked`` for ``booking_id``.

        Returns:
            False when the slot was not available at update time
        """
        return self._compare_and_set(
            slot_id,
            expected={"status": SlotStatus.AVAILABLE.value},
            values={"status": SlotStatus.BOOKED.value, "booking_id": booking_id},
        )

    def release_slot(self, slot_id: str, booking_id: Optional[str] = None) -> bool:
        """
        Return a ``booked`` slot to ``available`` and clear its back-reference.

        When ``booking_id`` is given the slot is only released if it is still
        held by that booking. Releasing an already available slot is a no-op
        and returns False.
        """
        expected = {"status": SlotStatus.BOOKED.value}
        if booking_id is not None:
            expected["booking_id"] = booking_id
        released = self._compare_and_set(
            slot_id,
            expected=expected,
            values={"status": SlotStatus.AVAILABLE.value, "booking_id": None},
        )
        if not released:
            self.logger.debug(
                "Slot release was a no-op", extra={"slot_id": slot_id, "booking_id": booking_id}
            )
        return released

    def block_slot(self, slot_id: str) -> bool:
        return self._compare_and_set(
            slot_id,
            expected={"status": SlotStatus.AVAILABLE.value},
            values={"status": SlotStatus.BLOCKED.value},
        )

    def unblock_slot(self, slot_id: str) -> bool:
        return self._compare_and_set(
            slot_id,
            expected={"status": SlotStatus.BLOCKED.value},
            values={"status": SlotStatus.AVAILABLE.value},
        )

    def existing_start_times(
        self, provider_event_id: str, range_start: datetime, range_end: datetime
    ) -> Set[datetime]:
        """UTC start instants already materialized for an event in ``[range_start, range_end)``."""
        try:
            rows = (
                self.db.query(TimeSlot.start_time)
                .filter(
                    TimeSlot.provider_event_id == provider_event_id,
                    TimeSlot.start_time >= range_start,
                    TimeSlot.start_time < range_end,
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading existing slot starts: {str(e)}")
            raise RepositoryException(f"Failed to load existing slots: {str(e)}")
        return {ensure_utc(row[0]) for row in rows}

    def list_available(
        self,
        provider_event_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        starting_after: Optional[datetime] = None,
    ) -> List[TimeSlot]:
        query = self._build_query().filter(
            TimeSlot.provider_event_id == provider_event_id,
            TimeSlot.status == SlotStatus.AVAILABLE.value,
        )
        if date_from is not None:
            query = query.filter(TimeSlot.date >= date_from)
        if date_to is not None:
            query = query.filter(TimeSlot.date <= date_to)
        if starting_after is not None:
            query = query.filter(TimeSlot.start_time > starting_after)
        return self._execute_query(query.order_by(TimeSlot.start_time))

    def delete_old_available(self, cutoff: datetime) -> int:
        """
        Delete never-booked past slots that ended before ``cutoff``.

        Slots referenced by any booking row (including terminal history) are
        kept.
        """
        referenced = exists().where(Booking.slot_id == TimeSlot.id)
        stmt = (
            delete(TimeSlot)
            .where(
                and_(
                    TimeSlot.status == SlotStatus.AVAILABLE.value,
                    TimeSlot.end_time < cutoff,
                    ~referenced,
                )
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting old slots: {str(e)}")
            raise RepositoryException(f"Failed to delete old slots: {str(e)}")
        return int(result.rowcount or 0)


    def delete_open_slots_from(self, provider_event_id: str, starting_from: datetime) -> int:
        """
        Delete an event's ``available`` slots starting at or after ``starting_from``.

        Booked and blocked slots stay, and so does any slot a booking row
        references.
        """
        referenced = exists().where(Booking.slot_id == TimeSlot.id)
        stmt = (
            delete(TimeSlot)
            .where(
                and_(
                    TimeSlot.provider_event_id == provider_event_id,
                    TimeSlot.status == SlotStatus.AVAILABLE.value,
                    TimeSlot.start_time >= starting_from,
                    ~referenced,
                )
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting open slots for event {provider_event_id}: {str(e)}")
            raise RepositoryException(f"Failed to delete open slots: {str(e)}")
        return int(result.rowcount or 0)
