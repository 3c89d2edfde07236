# backend/tests/conftest.py
"""
Pytest configuration for the booking engine.

Every test gets a fresh in-memory SQLite database with the full schema,
plus factories for event configurations, slots and bookings. Services are
driven with an explicit ``now`` so no test depends on the wall clock.
"""

import os

# Must be set before any careslot import reads settings
os.environ["IS_TESTING"] = "true"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from careslot.core.enums import RoleName
from careslot.core.ulid_helper import generate_ulid
from careslot.database import Base
import careslot.models  # noqa: F401
from careslot.models.booking import Booking, BookingStatus, PaymentStatus
from careslot.models.booking_event import BookingEventConfiguration, ScheduleException
from careslot.models.time_slot import SlotStatus, TimeSlot
from careslot.principal import Actor
from careslot.services.billing_gateway import BillingOutcome
from careslot.services.notification_service import NotificationService

# Monday 2030-01-07 12:00 UTC
NOW = datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)

CLIENT_ID = "01HCLIENT00000000000000001"
OTHER_CLIENT_ID = "01HCLIENT00000000000000002"
PROVIDER_ID = "01HPROVIDER000000000000001"
OTHER_PROVIDER_ID = "01HPROVIDER000000000000002"
ADMIN_ID = "01HADMIN000000000000000001"
SUPPORT_ID = "01HSUPPORT0000000000000001"

WEEKDAY_MORNINGS: Dict[str, Any] = {
    day: {
        "enabled": True,
        "timeBlocks": [{"start": "09:00", "end": "12:00", "slotDuration": 30, "bufferTime": 0}],
    }
    for day in ("mon", "tue", "wed", "thu", "fri")
}


def _enable_sqlite_fks(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(test_engine, "connect", _enable_sqlite_fks)
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def now() -> datetime:
    return NOW


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture
def client_actor() -> Actor:
    return Actor.with_roles(CLIENT_ID, [RoleName.CLIENT.value])


@pytest.fixture
def other_client_actor() -> Actor:
    return Actor.with_roles(OTHER_CLIENT_ID, [RoleName.CLIENT.value])


@pytest.fixture
def provider_actor() -> Actor:
    return Actor.with_roles(PROVIDER_ID, [RoleName.PROVIDER.value])


@pytest.fixture
def other_provider_actor() -> Actor:
    return Actor.with_roles(OTHER_PROVIDER_ID, [RoleName.PROVIDER.value])


@pytest.fixture
def admin_actor() -> Actor:
    return Actor.with_roles(ADMIN_ID, [RoleName.ADMIN.value])


@pytest.fixture
def support_actor() -> Actor:
    return Actor.with_roles(SUPPORT_ID, [RoleName.SUPPORT.value])


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_event(db: Session) -> Callable[..., BookingEventConfiguration]:
    def _make(**overrides: Any) -> BookingEventConfiguration:
        data: Dict[str, Any] = {
            "id": generate_ulid(),
            "provider_id": PROVIDER_ID,
            "title": "Initial consultation",
            "timezone": "UTC",
            "location_types": ["video", "in_person"],
            "daily_configs": WEEKDAY_MORNINGS,
            "max_booking_days": 30,
            "min_booking_minutes": 0,
            "cancellation_threshold_minutes": 1440,
            "price": Decimal("80.00"),
            "effective_from": NOW - timedelta(days=30),
            "is_active": True,
        }
        data.update(overrides)
        config = BookingEventConfiguration(**data)
        db.add(config)
        db.commit()
        return config

    return _make


@pytest.fixture
def make_exception(db: Session) -> Callable[..., ScheduleException]:
    def _make(
        config: BookingEventConfiguration, start: datetime, end: datetime, reason: str = "Out of office"
    ) -> ScheduleException:
        exc = ScheduleException(
            id=generate_ulid(),
            event_id=config.id,
            provider_id=config.provider_id,
            start_datetime=start,
            end_datetime=end,
            reason=reason,
        )
        db.add(exc)
        db.commit()
        return exc

    return _make


@pytest.fixture
def make_slot(db: Session, make_event) -> Callable[..., TimeSlot]:
    def _make(
        config: Optional[BookingEventConfiguration] = None,
        start: Optional[datetime] = None,
        duration_minutes: int = 30,
        status: str = SlotStatus.AVAILABLE.value,
        consultation_modes: Optional[List[str]] = None,
    ) -> TimeSlot:
        config = config or make_event()
        start = start or NOW + timedelta(days=1)
        slot = TimeSlot(
            id=generate_ulid(),
            provider_event_id=config.id,
            provider_id=config.provider_id,
            date=start.date(),
            start_time=start,
            end_time=start + timedelta(minutes=duration_minutes),
            status=status,
            consultation_modes=(
                consultation_modes if consultation_modes is not None else config.consultation_modes
            ),
            price=config.price,
        )
        db.add(slot)
        db.commit()
        return slot

    return _make


@pytest.fixture
def make_booking(db: Session, make_slot) -> Callable[..., Booking]:
    """
    Persist a booking and keep its slot consistent.

    Active bookings hold their slot (``booked`` with the back-reference);
    terminal bookings leave it as the caller passed it.
    """

    def _make(
        slot: Optional[TimeSlot] = None,
        client_id: str = CLIENT_ID,
        status: str = BookingStatus.PENDING.value,
        booked_at: Optional[datetime] = None,
        confirmation_timestamp: Optional[datetime] = None,
        **overrides: Any,
    ) -> Booking:
        slot = slot or make_slot()
        booking = Booking(
            id=generate_ulid(),
            client_id=client_id,
            provider_id=slot.provider_id,
            slot_id=slot.id,
            status=status,
            payment_status=PaymentStatus.UNPAID.value,
            scheduled_at=slot.start_time,
            duration_minutes=slot.duration_minutes,
            location_type=(slot.consultation_modes or [None])[0],
            booked_at=booked_at or NOW - timedelta(minutes=1),
            confirmation_timestamp=confirmation_timestamp,
            **overrides,
        )
        if status == BookingStatus.CONFIRMED.value and confirmation_timestamp is None:
            booking.confirmation_timestamp = booking.booked_at
        db.add(booking)
        db.flush()
        if status in (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value):
            slot.status = SlotStatus.BOOKED.value
            slot.booking_id = booking.id
        db.commit()
        return booking

    return _make


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class RecordingSender:
    """Notification sender that keeps every call, optionally failing on demand."""

    def __init__(self, fail_for: Optional[set] = None):
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []
        self.fail_for = fail_for or set()

    def notify(self, recipient_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        if event_type in self.fail_for:
            raise RuntimeError(f"delivery failed for {event_type}")
        self.sent.append((recipient_id, event_type, payload))

    def events_for(self, recipient_id: str) -> List[str]:
        return [event_type for recipient, event_type, _ in self.sent if recipient == recipient_id]


class RecordingBillingGateway:
    def __init__(self, fail: bool = False):
        self.outcomes: List[BillingOutcome] = []
        self.fail = fail

    def report_outcome(self, outcome: BillingOutcome) -> None:
        if self.fail:
            raise RuntimeError("billing unavailable")
        self.outcomes.append(outcome)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def notification_service(sender: RecordingSender) -> NotificationService:
    return NotificationService(sender=sender)


@pytest.fixture
def billing() -> RecordingBillingGateway:
    return RecordingBillingGateway()
