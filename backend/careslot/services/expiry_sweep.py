# backend/careslot/services/expiry_sweep.py
"""
Expiry sweep: auto-reject bookings the provider did not confirm in time.

Each selected booking is handled in its own transaction. The status is
re-checked as the update precondition, so a confirm or reject that landed
after selection simply wins and the row is counted as skipped. A failure on
one booking is logged and counted without touching the rest of the batch.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
import logging
import time
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import BookingParty
from ..core.timezone_utils import ensure_utc, utc_now
from ..models.booking import Booking, BookingStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .billing_gateway import BillingGateway, BillingOutcome, LoggingBillingGateway
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

AUTO_REJECT_REASON = "Auto-rejected: Provider did not confirm within {minutes} minutes"


def is_eligible_for_auto_rejection(booking: Booking, window_minutes: int, now: datetime) -> bool:
    """Pending, never confirmed, and booked at or before ``now - window``."""
    if booking.status != BookingStatus.PENDING.value or booking.confirmation_timestamp is not None:
        return False
    booked_at = ensure_utc(booking.booked_at)
    if booked_at is None:
        return False
    return booked_at <= ensure_utc(now) - timedelta(minutes=window_minutes)


def time_until_expiry(booking: Booking, window_minutes: int, now: datetime) -> Optional[int]:
    """
    Whole seconds left before the booking becomes eligible for auto-rejection.

    Returns 0 once the window has elapsed and None for bookings that are not
    awaiting confirmation.
    """
    if booking.status != BookingStatus.PENDING.value or booking.confirmation_timestamp is not None:
        return None
    booked_at = ensure_utc(booking.booked_at)
    if booked_at is None:
        return None
    remaining = booked_at + timedelta(minutes=window_minutes) - ensure_utc(now)
    return max(0, int(remaining.total_seconds()))


@dataclass
class SweepResults:
    examined: int = 0
    rejected: int = 0
    skipped: int = 0
    failed: int = 0
    failures: List[Dict[str, str]] = field(default_factory=list)
    processed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["processed_at"] = self.processed_at.isoformat() if self.processed_at else None
        return data


class ExpirySweepService(BaseService):
    """Finds stale ``pending`` bookings and rejects them one row at a time."""

    def __init__(
        self,
        db: Session,
        notification_service: Optional[NotificationService] = None,
        billing_gateway: Optional[BillingGateway] = None,
        window_minutes: Optional[int] = None,
        batch_size: Optional[int] = None,
        notifications_enabled: Optional[bool] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.slot_repository = RepositoryFactory.create_time_slot_repository(db)
        self.notification_service = notification_service or NotificationService()
        self.billing_gateway: BillingGateway = billing_gateway or LoggingBillingGateway()
        self.window_minutes = window_minutes or settings.booking_confirmation_window_minutes
        self.batch_size = batch_size or settings.expiry_sweep_batch_size
        self.notifications_enabled = (
            settings.expiry_sweep_notifications_enabled
            if notifications_enabled is None
            else notifications_enabled
        )

    @BaseService.measure_operation("expire_pending_bookings")
    def run(self, now: Optional[datetime] = None) -> SweepResults:
        """Run one sweep pass; never raises for per-booking failures."""
        started = time.monotonic()
        now = ensure_utc(now) if now is not None else utc_now()
        cutoff = now - timedelta(minutes=self.window_minutes)
        results = SweepResults(processed_at=now)

        with self.transaction():
            booking_ids = self.booking_repository.find_expired_pending_ids(cutoff, self.batch_size)
        results.examined = len(booking_ids)

        for booking_id in booking_ids:
            try:
                booking = self._reject_one(booking_id, now)
            except Exception as exc:
                results.failed += 1
                results.failures.append({"booking_id": booking_id, "error": str(exc)})
                self.logger.error(
                    "Auto-rejection failed for booking %s: %s",
                    booking_id,
                    exc,
                    exc_info=True,
                    extra={"booking_id": booking_id},
                )
                continue

            if booking is None:
                results.skipped += 1
                continue

            results.rejected += 1
            self.logger.info(
                "Booking auto-rejected",
                extra={
                    "booking_id": booking.id,
                    "slot_id": booking.slot_id,
                    "event_name": "booking_auto_rejected",
                },
            )
            self._after_rejection(booking, now)

        prometheus_metrics.record_sweep(
            results.rejected, results.skipped, results.failed, time.monotonic() - started
        )
        if results.examined:
            self.logger.info(
                "Expiry sweep finished: %d examined, %d rejected, %d skipped, %d failed",
                results.examined,
                results.rejected,
                results.skipped,
                results.failed,
            )
        return results

    def _reject_one(self, booking_id: str, now: datetime) -> Optional[Booking]:
        """Reject one booking in its own transaction; None when it no longer qualifies."""
        with self.transaction():
            booking = self.booking_repository.get_fresh(booking_id)
            if booking is None or not is_eligible_for_auto_rejection(booking, self.window_minutes, now):
                return None

            reason = AUTO_REJECT_REASON.format(minutes=self.window_minutes)
            moved = self.booking_repository.transition_status(
                booking.id,
                BookingStatus.PENDING.value,
                BookingStatus.REJECTED.value,
                rejection_reason=reason,
                cancellation_reason=reason,
                cancelled_by_role=BookingParty.SYSTEM.value,
                updated_at=now,
            )
            if not moved:
                prometheus_metrics.record_conflict("booking")
                return None
            self.slot_repository.release_slot(booking.slot_id, booking.id)
        prometheus_metrics.record_transition(BookingStatus.PENDING.value, BookingStatus.REJECTED.value)
        return booking

    def _after_rejection(self, booking: Booking, now: datetime) -> None:
        try:
            self.billing_gateway.report_outcome(
                BillingOutcome(
                    booking_id=booking.id,
                    invoice_id=booking.invoice_id,
                    event=BookingStatus.REJECTED.value,
                    occurred_at=now,
                    cancelled_by_role=BookingParty.SYSTEM.value,
                )
            )
        except Exception as exc:
            self.logger.warning(
                "Billing outcome report failed: %s", exc, extra={"booking_id": booking.id}
            )
        if self.notifications_enabled:
            self.notification_service.booking_auto_rejected(booking)
