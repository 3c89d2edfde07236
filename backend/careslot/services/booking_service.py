# backend/careslot/services/booking_service.py
"""
Reservation engine.

Every mutating operation follows the same shape:

1. Load the booking fresh and check the actor and the expected status.
2. Inside one transaction, move the booking with a compare-and-set on its
   status and, where the target state hands the slot back, release the slot
   with a compare-and-set on the slot's status and back-reference.
3. After commit, report to billing and send notifications best-effort.

A lost compare-and-set raises ``BookingStateConflictException`` and rolls the
whole transaction back, so a booking change and its slot change are always
observed together.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import BookingParty
from ..core.exceptions import (
    BookingStateConflictException,
    BusinessRuleException,
    ForbiddenException,
    InvalidBookingTransitionException,
    NotFoundException,
    SlotUnavailableException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc, utc_now
from ..core.ulid_helper import generate_ulid
from ..models.booking import (
    Booking,
    BookingStatus,
    PaymentStatus,
    SLOT_RELEASING_STATUSES,
    can_transition,
)
from ..models.time_slot import SlotStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..principal import Actor
from ..repositories.booking_repository import BookingQuery
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import BookingListFilters
from .base import BaseService
from .billing_gateway import BillingGateway, BillingOutcome, LoggingBillingGateway
from .booking_authorization import (
    require_can_view,
    require_participant_or_admin,
    require_provider_or_admin,
)
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

NO_SHOW_STATUSES = (BookingStatus.NO_SHOW_CLIENT.value, BookingStatus.NO_SHOW_PROVIDER.value)


@dataclass
class CancellationResult:
    """Outcome of a cancellation; billing applies its own forfeiture rule."""

    booking: Booking
    threshold_exceeded: bool


class BookingService(BaseService):
    """Create, transition and read bookings on behalf of an authenticated actor."""

    def __init__(
        self,
        db: Session,
        notification_service: Optional[NotificationService] = None,
        billing_gateway: Optional[BillingGateway] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.slot_repository = RepositoryFactory.create_time_slot_repository(db)
        self.event_repository = RepositoryFactory.create_booking_event_repository(db)
        self.notification_service = notification_service or NotificationService()
        self.billing_gateway: BillingGateway = billing_gateway or LoggingBillingGateway()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        actor: Actor,
        slot_id: str,
        location_type: Optional[str] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Reserve ``slot_id`` for the actor and create a ``pending`` booking.

        Raises:
            NotFoundException: Unknown slot
            ValidationException: Provider booking their own slot, bad location or reason
            BusinessRuleException: Slot already started
            SlotUnavailableException: Slot not available, or another reservation won
        """
        now = self._now(now)
        slot = self.slot_repository.get_fresh(slot_id)
        if slot is None:
            raise NotFoundException("Time slot not found", code="SLOT_NOT_FOUND", details={"slot_id": slot_id})

        if slot.provider_id == actor.id:
            raise ValidationException(
                "Providers cannot book their own time slots",
                code="SELF_BOOKING",
                details={"slot_id": slot_id},
            )
        if slot.status != SlotStatus.AVAILABLE.value:
            prometheus_metrics.record_conflict("slot")
            raise SlotUnavailableException(slot_id, details={"current_status": slot.status})
        if slot.starts_at <= now:
            raise BusinessRuleException(
                "Cannot book a time slot that has already started",
                code="SLOT_IN_PAST",
                details={"slot_id": slot_id},
            )

        location_type = self._resolve_location_type(slot.consultation_modes or [], location_type)
        if reason is not None:
            reason = reason.strip() or None
        if reason and len(reason) > settings.cancellation_reason_max_length:
            raise ValidationException(
                f"Reason must be at most {settings.cancellation_reason_max_length} characters",
                code="REASON_TOO_LONG",
            )

        booking_id = generate_ulid()
        with self.transaction():
            if not self.slot_repository.reserve_slot(slot.id, booking_id):
                prometheus_metrics.record_conflict("slot")
                raise SlotUnavailableException(slot_id)
            booking = self.booking_repository.create(
                id=booking_id,
                client_id=actor.id,
                provider_id=slot.provider_id,
                slot_id=slot.id,
                status=BookingStatus.PENDING.value,
                payment_status=PaymentStatus.UNPAID.value,
                scheduled_at=slot.starts_at,
                duration_minutes=slot.duration_minutes,
                location_type=location_type,
                reason=reason,
                booked_at=now,
            )

        self.log_operation(
            "booking_created",
            booking_id=booking.id,
            slot_id=slot.id,
            actor_id=actor.id,
        )
        return booking

    @BaseService.measure_operation("confirm_booking")
    def confirm_booking(self, booking_id: str, actor: Actor, now: Optional[datetime] = None) -> Booking:
        """
        Move a ``pending`` booking to ``confirmed``.

        The status check is the update precondition: if the expiry sweep or a
        duplicate request moved the booking first, this raises
        ``BookingStateConflictException`` and changes nothing.
        """
        now = self._now(now)
        booking = self._get_booking_or_404(booking_id)
        require_provider_or_admin(actor, booking, "confirm")
        self._ensure_transition(booking, BookingStatus.CONFIRMED.value, "confirm")

        with self.transaction():
            self._move(
                booking,
                BookingStatus.PENDING.value,
                BookingStatus.CONFIRMED.value,
                confirmation_timestamp=now,
                updated_at=now,
            )

        self.log_operation("booking_confirmed", booking_id=booking.id, actor_id=actor.id)
        self._report_billing(booking, BookingStatus.CONFIRMED.value, now)
        self.notification_service.booking_confirmed(booking)
        return booking

    @BaseService.measure_operation("reject_booking")
    def reject_booking(
        self,
        booking_id: str,
        actor: Actor,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """Provider (or admin) declines a ``pending`` booking; the slot is released."""
        now = self._now(now)
        booking = self._get_booking_or_404(booking_id)
        require_provider_or_admin(actor, booking, "reject")
        self._ensure_transition(booking, BookingStatus.REJECTED.value, "reject")

        with self.transaction():
            self._move(
                booking,
                BookingStatus.PENDING.value,
                BookingStatus.REJECTED.value,
                rejection_reason=(reason or "").strip() or None,
                updated_at=now,
            )

        self.log_operation("booking_rejected", booking_id=booking.id, actor_id=actor.id)
        self._report_billing(booking, BookingStatus.REJECTED.value, now)
        self.notification_service.booking_rejected(booking)
        return booking

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        booking_id: str,
        actor: Actor,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CancellationResult:
        """
        Cancel a ``pending`` or ``confirmed`` booking and release its slot.

        Cancelling inside the event's cancellation threshold still succeeds;
        the result flags it so billing can apply its forfeiture rule.
        """
        now = self._now(now)
        cleaned_reason = self._validate_cancellation_reason(reason)
        booking = self._get_booking_or_404(booking_id)
        party = require_participant_or_admin(actor, booking, "cancel")

        current = booking.status
        self._ensure_transition(booking, BookingStatus.CANCELLED.value, "cancel")

        threshold_exceeded = self._cancellation_threshold_exceeded(booking, now)
        with self.transaction():
            self._move(
                booking,
                current,
                BookingStatus.CANCELLED.value,
                cancelled_at=now,
                cancelled_by_id=actor.id,
                cancelled_by_role=party.value,
                cancellation_reason=cleaned_reason,
                updated_at=now,
            )

        self.log_operation(
            "booking_cancelled",
            booking_id=booking.id,
            actor_id=actor.id,
            cancelled_by_role=party.value,
            threshold_exceeded=threshold_exceeded,
        )
        self._report_billing(
            booking,
            BookingStatus.CANCELLED.value,
            now,
            threshold_exceeded=threshold_exceeded,
            cancelled_by_role=party.value,
        )
        self.notification_service.booking_cancelled(booking)
        return CancellationResult(booking=booking, threshold_exceeded=threshold_exceeded)

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(
        self,
        booking_id: str,
        actor: Actor,
        no_show_type: str,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Record that one party did not attend a ``confirmed`` booking.

        Clients may only report the provider and providers only the client;
        admins may report either. The slot stays booked.
        """
        now = self._now(now)
        no_show_type = getattr(no_show_type, "value", no_show_type)
        if no_show_type not in NO_SHOW_STATUSES:
            raise ValidationException(
                "no_show_type must be no_show_client or no_show_provider",
                code="INVALID_NO_SHOW_TYPE",
            )

        booking = self._get_booking_or_404(booking_id)
        party = require_participant_or_admin(actor, booking, "mark no-show for")

        if party == BookingParty.CLIENT and no_show_type != BookingStatus.NO_SHOW_PROVIDER.value:
            raise ForbiddenException(
                "Clients can only report the provider as absent",
                code="NO_SHOW_PARTY_MISMATCH",
            )
        if party == BookingParty.PROVIDER and no_show_type != BookingStatus.NO_SHOW_CLIENT.value:
            raise ForbiddenException(
                "Providers can only report the client as absent",
                code="NO_SHOW_PARTY_MISMATCH",
            )

        self._ensure_transition(booking, no_show_type, "mark no-show for")

        wait_minutes = {
            BookingParty.CLIENT: settings.client_no_show_wait_minutes,
            BookingParty.PROVIDER: settings.provider_no_show_wait_minutes,
        }.get(party, 0)
        start = booking.scheduled_start
        if start is None or now < start + timedelta(minutes=wait_minutes):
            raise BusinessRuleException(
                f"Must wait {wait_minutes} minutes past the scheduled start before marking no-show",
                code="NO_SHOW_TOO_EARLY",
                details={"booking_id": booking.id, "minimum_wait_minutes": wait_minutes},
            )

        with self.transaction():
            self._move(
                booking,
                BookingStatus.CONFIRMED.value,
                no_show_type,
                no_show_marked_by=party.value,
                no_show_marked_at=now,
                updated_at=now,
            )

        self.log_operation(
            "booking_no_show",
            booking_id=booking.id,
            actor_id=actor.id,
            no_show_type=no_show_type,
        )
        self._report_billing(booking, no_show_type, now)
        return booking

    @BaseService.measure_operation("complete_booking")
    def complete_booking(self, booking_id: str, actor: Actor, now: Optional[datetime] = None) -> Booking:
        """Mark a ``confirmed`` booking whose appointment has ended as ``completed``."""
        now = self._now(now)
        booking = self._get_booking_or_404(booking_id)
        require_provider_or_admin(actor, booking, "complete")
        self._ensure_transition(booking, BookingStatus.COMPLETED.value, "complete")

        end = booking.scheduled_end
        if end is None or now < end:
            raise BusinessRuleException(
                "Cannot complete a booking before its scheduled end",
                code="BOOKING_NOT_ENDED",
                details={"booking_id": booking.id},
            )

        with self.transaction():
            self._move(
                booking,
                BookingStatus.CONFIRMED.value,
                BookingStatus.COMPLETED.value,
                completed_at=now,
                updated_at=now,
            )

        self.log_operation("booking_completed", booking_id=booking.id, actor_id=actor.id)
        self._report_billing(booking, BookingStatus.COMPLETED.value, now)
        return booking

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @BaseService.measure_operation("get_booking")
    def get_booking(self, booking_id: str, actor: Actor) -> Booking:
        booking = self._get_booking_or_404(booking_id)
        require_can_view(actor, booking)
        return booking

    @BaseService.measure_operation("list_bookings")
    def list_bookings(
        self,
        actor: Actor,
        filters: Optional[BookingListFilters] = None,
        now: Optional[datetime] = None,
    ) -> List[Booking]:
        """
        Bookings visible to the actor, ordered by scheduled start.

        Clients and providers see bookings they are a party to; admin and
        support see everything and may narrow by client or provider.
        """
        now = self._now(now)
        filters = filters or BookingListFilters()
        criteria = BookingQuery(limit=filters.limit, offset=filters.offset)

        if actor.can_read_all:
            criteria.client_id = filters.client_id
            criteria.provider_id = filters.provider_id
        else:
            criteria.party_id = actor.id

        if filters.status is not None:
            criteria.statuses = [filters.status.value]

        lower: Optional[datetime] = None
        upper: Optional[datetime] = None
        if filters.date_from is not None:
            lower = datetime.combine(filters.date_from, time.min, tzinfo=timezone.utc)
        if filters.date_to is not None:
            upper = datetime.combine(filters.date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
        if filters.upcoming:
            lower = max(lower, now) if lower else now
        if filters.past:
            upper = min(upper, now) if upper else now
        criteria.scheduled_from = lower
        criteria.scheduled_to = upper

        return self.booking_repository.list_bookings(criteria)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else utc_now()

    def _get_booking_or_404(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_fresh(booking_id)
        if booking is None:
            raise NotFoundException(
                "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id}
            )
        return booking

    @staticmethod
    def _ensure_transition(booking: Booking, target: str, action: str) -> None:
        """
        Pre-check the status before opening the write.

        A repeat of a transition into a non-terminal status (a second confirm)
        is a lost race and raises ``BookingStateConflictException``. Every other
        move the state machine does not allow is a business-rule violation.
        """
        current = booking.status
        if can_transition(current, target):
            return
        if current == target and not booking.is_terminal:
            raise BookingStateConflictException(booking.id, BookingStatus.PENDING.value, current)
        raise InvalidBookingTransitionException(booking.id, current, action)

    def _move(self, booking: Booking, expected: str, target: str, **fields) -> None:
        """Compare-and-set the booking status and release the slot when the target frees it."""
        if not can_transition(expected, target):
            raise InvalidBookingTransitionException(booking.id, expected, f"move to {target}")
        if not self.booking_repository.transition_status(booking.id, expected, target, **fields):
            prometheus_metrics.record_conflict("booking")
            actual = self.booking_repository.current_status(booking.id)
            self.logger.info(
                "Booking transition lost a race",
                extra={"booking_id": booking.id, "expected_status": expected, "actual_status": actual},
            )
            raise BookingStateConflictException(booking.id, expected, actual)

        if target in SLOT_RELEASING_STATUSES:
            self.slot_repository.release_slot(booking.slot_id, booking.id)
        prometheus_metrics.record_transition(expected, target)

    @staticmethod
    def _resolve_location_type(modes: List[str], requested: Optional[str]) -> Optional[str]:
        if requested:
            if modes and requested not in modes:
                raise ValidationException(
                    f"Location type '{requested}' is not offered for this slot",
                    code="INVALID_LOCATION_TYPE",
                    details={"allowed": list(modes)},
                )
            return requested
        return modes[0] if modes else None

    @staticmethod
    def _validate_cancellation_reason(reason: Optional[str]) -> str:
        cleaned = (reason or "").strip()
        if not cleaned:
            raise ValidationException(
                "A cancellation reason is required", code="CANCELLATION_REASON_REQUIRED"
            )
        if len(cleaned) > settings.cancellation_reason_max_length:
            raise ValidationException(
                f"Cancellation reason must be at most "
                f"{settings.cancellation_reason_max_length} characters",
                code="REASON_TOO_LONG",
            )
        return cleaned

    def _cancellation_threshold_exceeded(self, booking: Booking, now: datetime) -> bool:
        """True when ``now`` falls inside the free-cancellation threshold before the start."""
        start = booking.scheduled_start
        slot = self.slot_repository.get_by_id(booking.slot_id)
        if start is None or slot is None:
            return False
        event = self.event_repository.get_by_id(slot.provider_event_id)
        threshold = int(event.cancellation_threshold_minutes or 0) if event else 0
        return now > start - timedelta(minutes=threshold)

    def _report_billing(
        self,
        booking: Booking,
        event: str,
        now: datetime,
        threshold_exceeded: bool = False,
        cancelled_by_role: Optional[str] = None,
    ) -> None:
        outcome = BillingOutcome(
            booking_id=booking.id,
            invoice_id=booking.invoice_id,
            event=event,
            occurred_at=now,
            threshold_exceeded=threshold_exceeded,
            cancelled_by_role=cancelled_by_role,
        )
        try:
            self.billing_gateway.report_outcome(outcome)
        except Exception as exc:
            self.logger.warning(
                "Billing outcome report failed: %s",
                exc,
                extra={"booking_id": booking.id, "billing_event": event},
            )
