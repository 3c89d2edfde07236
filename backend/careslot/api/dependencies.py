"""
FastAPI dependencies.

Authentication happens upstream: middleware places an ``Actor`` on
``request.state.actor``. These dependencies only read it.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..principal import Actor
from ..services.billing_gateway import BillingGateway, LoggingBillingGateway
from ..services.booking_event_service import BookingEventService
from ..services.booking_service import BookingService
from ..services.notification_service import NotificationService
from ..services.slot_service import SlotService


def get_current_actor(request: Request) -> Actor:
    """Return the authenticated actor or fail with 401."""
    actor: Optional[Actor] = getattr(request.state, "actor", None)
    if not isinstance(actor, Actor):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_billing_gateway() -> BillingGateway:
    return LoggingBillingGateway()


def get_booking_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
    billing_gateway: BillingGateway = Depends(get_billing_gateway),
) -> BookingService:
    return BookingService(
        db,
        notification_service=notification_service,
        billing_gateway=billing_gateway,
    )


def get_slot_service(db: Session = Depends(get_db)) -> SlotService:
    return SlotService(db)


def get_booking_event_service(
    db: Session = Depends(get_db),
    slot_service: SlotService = Depends(get_slot_service),
) -> BookingEventService:
    return BookingEventService(db, slot_service=slot_service)


__all__ = [
    "get_billing_gateway",
    "get_booking_event_service",
    "get_booking_service",
    "get_current_actor",
    "get_db",
    "get_notification_service",
    "get_slot_service",
]
