# backend/careslot/repositories/booking_repository.py
"""
Booking Repository.

Handles the booking side of the storage port:
- Status transitions as compare-and-set updates
- Expired-pending selection for the sweep
- Actor-scoped listing
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus
from .base_repository import BaseRepository


@dataclass
class BookingQuery:
    """Resolved listing criteria; ownership scoping is applied by the service."""

    client_id: Optional[str] = None
    provider_id: Optional[str] = None
    party_id: Optional[str] = None
    statuses: Optional[List[str]] = None
    scheduled_from: Optional[datetime] = None
    scheduled_to: Optional[datetime] = None
    limit: int = 20
    offset: int = 0


class BookingRepository(BaseRepository[Booking]):
    """Data access for bookings."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def transition_status(
        self,
        booking_id: str,
        expected_status: str,
        new_status: str,
        **fields: Any,
    ) -> bool:
        """
        Move a booking from ``expected_status`` to ``new_status``.

        Extra ``fields`` are written in the same statement. Returns False when
        the booking was no longer in ``expected_status``.
        """
        values = {"status": new_status, **fields}
        return self._compare_and_set(booking_id, {"status": expected_status}, values)

    def find_expired_pending_ids(self, cutoff: datetime, limit: int) -> List[str]:
        """
        Ids of unconfirmed ``pending`` bookings booked at or before ``cutoff``.

        Oldest first, bounded to ``limit`` rows.
        """
        try:
            rows = (
                self.db.query(Booking.id)
                .filter(
                    Booking.status == BookingStatus.PENDING.value,
                    Booking.confirmation_timestamp.is_(None),
                    Booking.booked_at <= cutoff,
                )
                .order_by(Booking.booked_at, Booking.id)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding expired pending bookings: {str(e)}")
            raise RepositoryException(f"Failed to find expired bookings: {str(e)}")
        return [row[0] for row in rows]

    def current_status(self, booking_id: str) -> Optional[str]:
        try:
            return self.db.query(Booking.status).filter(Booking.id == booking_id).scalar()
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading status of booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to read booking status: {str(e)}")

    def list_bookings(self, criteria: BookingQuery) -> List[Booking]:
        query = self._build_query()
        if criteria.client_id:
            query = query.filter(Booking.client_id == criteria.client_id)
        if criteria.provider_id:
            query = query.filter(Booking.provider_id == criteria.provider_id)
        if criteria.party_id:
            query = query.filter(
                or_(Booking.client_id == criteria.party_id, Booking.provider_id == criteria.party_id)
            )
        if criteria.statuses:
            query = query.filter(Booking.status.in_(criteria.statuses))
        if criteria.scheduled_from is not None:
            query = query.filter(Booking.scheduled_at >= criteria.scheduled_from)
        if criteria.scheduled_to is not None:
            query = query.filter(Booking.scheduled_at < criteria.scheduled_to)

        query = query.order_by(Booking.scheduled_at, Booking.id)
        return self._execute_query(query.offset(criteria.offset).limit(criteria.limit))
