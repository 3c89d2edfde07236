# backend/careslot/services/booking_authorization.py
"""
Ownership checks for booking and booking event actions.

The engine does not authenticate; it only compares the actor's id against
the booking's client, the slot's provider or the event's provider, and
reads the admin role.
"""

from typing import Optional

from ..core.enums import BookingParty
from ..core.exceptions import ForbiddenException
from ..models.booking import Booking
from ..models.booking_event import BookingEventConfiguration
from ..principal import Actor


def is_client_owner(actor: Actor, booking: Booking) -> bool:
    return actor.id == booking.client_id


def is_provider_owner(actor: Actor, booking: Booking) -> bool:
    return actor.id == booking.provider_id


def resolve_party(actor: Actor, booking: Booking) -> Optional[BookingParty]:
    """
    Which side of the booking the actor acts for.

    Ownership wins over the admin role, so an admin who is also the booking's
    client acts as the client.
    """
    if is_client_owner(actor, booking):
        return BookingParty.CLIENT
    if is_provider_owner(actor, booking):
        return BookingParty.PROVIDER
    if actor.is_admin:
        return BookingParty.ADMIN
    return None


def require_provider_or_admin(actor: Actor, booking: Booking, action: str) -> BookingParty:
    if is_provider_owner(actor, booking):
        return BookingParty.PROVIDER
    if actor.is_admin:
        return BookingParty.ADMIN
    raise ForbiddenException(
        f"Only the provider or an admin can {action} this booking",
        code="NOT_BOOKING_PROVIDER",
        details={"booking_id": booking.id, "action": action},
    )


def require_participant_or_admin(actor: Actor, booking: Booking, action: str) -> BookingParty:
    party = resolve_party(actor, booking)
    if party is None:
        raise ForbiddenException(
            f"You do not have permission to {action} this booking",
            code="NOT_BOOKING_PARTICIPANT",
            details={"booking_id": booking.id, "action": action},
        )
    return party


def require_can_view(actor: Actor, booking: Booking) -> None:
    if actor.can_read_all or is_client_owner(actor, booking) or is_provider_owner(actor, booking):
        return
    raise ForbiddenException(
        "You do not have permission to view this booking",
        code="NOT_BOOKING_PARTICIPANT",
        details={"booking_id": booking.id},
    )


def require_event_owner_or_admin(actor: Actor, event: BookingEventConfiguration, action: str) -> None:
    if actor.id == event.provider_id or actor.is_admin:
        return
    raise ForbiddenException(
        f"Only the provider or an admin can {action} this booking event",
        code="NOT_EVENT_PROVIDER",
        details={"provider_event_id": event.id, "action": action},
    )


def require_can_view_event(actor: Actor, event: BookingEventConfiguration) -> None:
    if actor.can_read_all or actor.id == event.provider_id:
        return
    raise ForbiddenException(
        "You do not have permission to view this booking event",
        code="NOT_EVENT_PROVIDER",
        details={"provider_event_id": event.id},
    )
