# backend/careslot/services/notification_service.py
"""
Fire-and-forget booking notifications.

Delivery itself belongs to an external collaborator reached through
``NotificationSender``. Every call here runs after the transition has been
committed; a failed send is logged and counted, never raised.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ..models.booking import Booking
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)


class NotificationEvent:
    """Event type names sent to the notification collaborator."""

    CONFIRMED = "booking.confirmed"
    REJECTED = "booking.rejected"
    CANCELLED = "booking.cancelled"
    AUTO_REJECTED = "booking.auto_rejected"
    EXPIRED = "booking.expired"


@runtime_checkable
class NotificationSender(Protocol):
    def notify(self, recipient_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotificationSender:
    """Default sender: records the notification in the application log."""

    def notify(self, recipient_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        logger.info(
            "Notification %s for %s",
            event_type,
            recipient_id,
            extra={"recipient_id": recipient_id, "event_type": event_type, **payload},
        )


@dataclass
class BookingNotificationPayload:
    booking_id: str
    slot_id: str
    status: str
    scheduled_at: Optional[str]
    reason: Optional[str] = None

    @classmethod
    def from_booking(cls, booking: Booking, reason: Optional[str] = None) -> "BookingNotificationPayload":
        start = booking.scheduled_start
        return cls(
            booking_id=booking.id,
            slot_id=booking.slot_id,
            status=booking.status,
            scheduled_at=start.isoformat() if start else None,
            reason=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class NotificationService:
    """Maps committed booking transitions to recipient/event pairs."""

    def __init__(self, sender: Optional[NotificationSender] = None):
        self.sender: NotificationSender = sender or LoggingNotificationSender()

    def send(self, recipient_id: str, event_type: str, payload: Dict[str, Any]) -> bool:
        """Deliver one notification; returns False instead of raising on failure."""
        try:
            self.sender.notify(recipient_id, event_type, payload)
        except Exception as exc:
            logger.warning(
                "Notification %s to %s failed: %s",
                event_type,
                recipient_id,
                exc,
                extra={
                    "event_type": event_type,
                    "recipient_id": recipient_id,
                    "booking_id": payload.get("booking_id"),
                },
            )
            prometheus_metrics.record_notification(event_type, "failed")
            return False
        prometheus_metrics.record_notification(event_type, "sent")
        return True

    def _fan_out(self, targets: List[tuple[str, str]], payload: BookingNotificationPayload) -> bool:
        data = payload.to_dict()
        results = [self.send(recipient, event_type, data) for recipient, event_type in targets]
        return all(results)

    def booking_confirmed(self, booking: Booking) -> bool:
        return self._fan_out(
            [
                (booking.client_id, NotificationEvent.CONFIRMED),
                (booking.provider_id, NotificationEvent.CONFIRMED),
            ],
            BookingNotificationPayload.from_booking(booking),
        )

    def booking_rejected(self, booking: Booking) -> bool:
        return self._fan_out(
            [(booking.client_id, NotificationEvent.REJECTED)],
            BookingNotificationPayload.from_booking(booking, booking.rejection_reason),
        )

    def booking_cancelled(self, booking: Booking) -> bool:
        return self._fan_out(
            [
                (booking.client_id, NotificationEvent.CANCELLED),
                (booking.provider_id, NotificationEvent.CANCELLED),
            ],
            BookingNotificationPayload.from_booking(booking, booking.cancellation_reason),
        )

    def booking_auto_rejected(self, booking: Booking) -> bool:
        return self._fan_out(
            [
                (booking.client_id, NotificationEvent.AUTO_REJECTED),
                (booking.provider_id, NotificationEvent.EXPIRED),
            ],
            BookingNotificationPayload.from_booking(booking, booking.cancellation_reason),
        )
