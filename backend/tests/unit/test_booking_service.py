"""Reservation engine: create, transitions, authorization and listing."""

from datetime import date, timedelta

import pytest
from sqlalchemy import update

from careslot.core.exceptions import (
    BookingStateConflictException,
    BusinessRuleException,
    ForbiddenException,
    InvalidBookingTransitionException,
    NotFoundException,
    SlotUnavailableException,
    ValidationException,
)
from careslot.core.timezone_utils import ensure_utc
from careslot.models.booking import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    Booking,
    BookingStatus,
    PaymentStatus,
    can_transition,
)
from careslot.models.time_slot import SlotStatus, TimeSlot
from careslot.schemas.booking import BookingListFilters
from careslot.services.booking_service import BookingService
from careslot.services.notification_service import NotificationEvent, NotificationService

from conftest import CLIENT_ID, NOW, OTHER_CLIENT_ID, PROVIDER_ID, RecordingBillingGateway, RecordingSender


@pytest.fixture
def service(db, notification_service, billing) -> BookingService:
    return BookingService(db, notification_service=notification_service, billing_gateway=billing)


def _slot(db, slot_id: str) -> TimeSlot:
    slot = db.get(TimeSlot, slot_id)
    db.refresh(slot)
    return slot


def _booking(db, booking_id: str) -> Booking:
    booking = db.get(Booking, booking_id)
    db.refresh(booking)
    return booking


class TestCreateBooking:
    def test_reserves_slot_and_creates_pending_booking(self, service, make_slot, client_actor, db):
        slot = make_slot()

        booking = service.create_booking(client_actor, slot.id, reason="Follow-up", now=NOW)

        stored = _booking(db, booking.id)
        assert stored.status == BookingStatus.PENDING.value
        assert stored.payment_status == PaymentStatus.UNPAID.value
        assert stored.client_id == CLIENT_ID
        assert stored.provider_id == PROVIDER_ID
        assert stored.duration_minutes == 30
        assert stored.location_type == "video"
        assert stored.reason == "Follow-up"
        assert ensure_utc(stored.booked_at) == NOW
        assert ensure_utc(stored.scheduled_at) == slot.starts_at
        assert stored.confirmation_timestamp is None

        reserved = _slot(db, slot.id)
        assert reserved.status == SlotStatus.BOOKED.value
        assert reserved.booking_id == booking.id

    def test_explicit_location_type_must_be_offered(self, service, make_slot, client_actor, db):
        slot = make_slot()

        booking = service.create_booking(client_actor, slot.id, location_type="in_person", now=NOW)
        assert booking.location_type == "in_person"

        other = make_slot(start=NOW + timedelta(days=2))
        with pytest.raises(ValidationException) as exc_info:
            service.create_booking(client_actor, other.id, location_type="phone", now=NOW)
        assert exc_info.value.code == "INVALID_LOCATION_TYPE"
        assert _slot(db, other.id).status == SlotStatus.AVAILABLE.value

    def test_booked_slot_is_unavailable(self, service, make_slot, client_actor, other_client_actor):
        slot = make_slot()
        service.create_booking(client_actor, slot.id, now=NOW)

        with pytest.raises(SlotUnavailableException) as exc_info:
            service.create_booking(other_client_actor, slot.id, now=NOW)
        assert exc_info.value.status_code == 409
        assert exc_info.value.code == "SLOT_UNAVAILABLE"

    def test_blocked_slot_is_unavailable(self, service, make_slot, client_actor):
        slot = make_slot(status=SlotStatus.BLOCKED.value)
        with pytest.raises(SlotUnavailableException):
            service.create_booking(client_actor, slot.id, now=NOW)

    def test_provider_cannot_book_own_slot(self, service, make_slot, provider_actor):
        slot = make_slot()
        with pytest.raises(ValidationException) as exc_info:
            service.create_booking(provider_actor, slot.id, now=NOW)
        assert exc_info.value.code == "SELF_BOOKING"

    def test_started_slot_cannot_be_booked(self, service, make_slot, client_actor):
        slot = make_slot(start=NOW - timedelta(minutes=5))
        with pytest.raises(BusinessRuleException) as exc_info:
            service.create_booking(client_actor, slot.id, now=NOW)
        assert exc_info.value.code == "SLOT_IN_PAST"

    def test_unknown_slot(self, service, client_actor):
        with pytest.raises(NotFoundException) as exc_info:
            service.create_booking(client_actor, "01HNOPE0000000000000000000", now=NOW)
        assert exc_info.value.code == "SLOT_NOT_FOUND"

    def test_reason_length_is_enforced(self, service, make_slot, client_actor):
        slot = make_slot()
        with pytest.raises(ValidationException) as exc_info:
            service.create_booking(client_actor, slot.id, reason="x" * 501, now=NOW)
        assert exc_info.value.code == "REASON_TOO_LONG"

    def test_lost_reservation_creates_nothing(self, service, make_slot, client_actor, monkeypatch, db):
        slot = make_slot()
        monkeypatch.setattr(service.slot_repository, "reserve_slot", lambda slot_id, booking_id: False)

        with pytest.raises(SlotUnavailableException):
            service.create_booking(client_actor, slot.id, now=NOW)

        assert db.query(Booking).count() == 0
        assert _slot(db, slot.id).status == SlotStatus.AVAILABLE.value


class TestConfirm:
    def test_scenario_confirm_keeps_slot_booked(self, service, make_slot, client_actor, provider_actor, db, sender, billing):
        slot = make_slot()
        booking = service.create_booking(client_actor, slot.id, now=NOW)

        confirmed = service.confirm_booking(booking.id, provider_actor, now=NOW + timedelta(minutes=5))

        assert confirmed.status == BookingStatus.CONFIRMED.value
        stored = _booking(db, booking.id)
        assert stored.status == BookingStatus.CONFIRMED.value
        assert ensure_utc(stored.confirmation_timestamp) == NOW + timedelta(minutes=5)
        reserved = _slot(db, slot.id)
        assert reserved.status == SlotStatus.BOOKED.value
        assert reserved.booking_id == booking.id

        assert sender.events_for(CLIENT_ID) == [NotificationEvent.CONFIRMED]
        assert sender.events_for(PROVIDER_ID) == [NotificationEvent.CONFIRMED]
        assert [outcome.event for outcome in billing.outcomes] == ["confirmed"]

    def test_admin_may_confirm(self, service, make_booking, admin_actor):
        booking = make_booking()
        assert service.confirm_booking(booking.id, admin_actor, now=NOW).status == "confirmed"

    @pytest.mark.parametrize("actor_fixture", ["client_actor", "other_provider_actor"])
    def test_non_provider_is_forbidden(self, service, make_booking, actor_fixture, request, db):
        booking = make_booking()
        actor = request.getfixturevalue(actor_fixture)

        with pytest.raises(ForbiddenException) as exc_info:
            service.confirm_booking(booking.id, actor, now=NOW)
        assert exc_info.value.code == "NOT_BOOKING_PROVIDER"
        assert _booking(db, booking.id).status == BookingStatus.PENDING.value

    def test_second_confirm_is_a_conflict(self, service, make_booking, provider_actor):
        booking = make_booking()
        service.confirm_booking(booking.id, provider_actor, now=NOW)

        with pytest.raises(BookingStateConflictException) as exc_info:
            service.confirm_booking(booking.id, provider_actor, now=NOW)
        assert exc_info.value.status_code == 409
        assert exc_info.value.details["current_status"] == "confirmed"

    def test_confirming_rejected_booking_is_invalid(self, service, make_booking, provider_actor):
        booking = make_booking(status=BookingStatus.REJECTED.value)
        with pytest.raises(InvalidBookingTransitionException) as exc_info:
            service.confirm_booking(booking.id, provider_actor, now=NOW)
        assert exc_info.value.status_code == 422

    def test_concurrent_change_loses_compare_and_set(self, service, make_booking, provider_actor, monkeypatch, db):
        booking = make_booking()
        real_transition = service.booking_repository.transition_status

        def _sweep_wins_first(booking_id, expected_status, new_status, **fields):
            db.execute(
                update(Booking)
                .where(Booking.id == booking_id)
                .values(status=BookingStatus.REJECTED.value)
                .execution_options(synchronize_session=False)
            )
            return real_transition(booking_id, expected_status, new_status, **fields)

        monkeypatch.setattr(service.booking_repository, "transition_status", _sweep_wins_first)

        with pytest.raises(BookingStateConflictException) as exc_info:
            service.confirm_booking(booking.id, provider_actor, now=NOW)
        assert exc_info.value.details["current_status"] == BookingStatus.REJECTED.value

        # The whole transaction rolled back
        assert _booking(db, booking.id).status == BookingStatus.PENDING.value
        assert _slot(db, booking.slot_id).booking_id == booking.id

    def test_notification_and_billing_failures_do_not_undo_confirm(self, db, make_booking, provider_actor):
        failing_sender = RecordingSender(fail_for={NotificationEvent.CONFIRMED})
        service = BookingService(
            db,
            notification_service=NotificationService(sender=failing_sender),
            billing_gateway=RecordingBillingGateway(fail=True),
        )
        booking = make_booking()

        confirmed = service.confirm_booking(booking.id, provider_actor, now=NOW)

        assert confirmed.status == BookingStatus.CONFIRMED.value
        assert _booking(db, booking.id).status == BookingStatus.CONFIRMED.value


class TestReject:
    def test_scenario_reject_releases_slot(self, service, make_slot, client_actor, provider_actor, db, sender):
        slot = make_slot()
        booking = service.create_booking(client_actor, slot.id, now=NOW)

        rejected = service.reject_booking(booking.id, provider_actor, "not available", now=NOW)

        assert rejected.status == BookingStatus.REJECTED.value
        stored = _booking(db, booking.id)
        assert stored.rejection_reason == "not available"
        released = _slot(db, slot.id)
        assert released.status == SlotStatus.AVAILABLE.value
        assert released.booking_id is None
        assert sender.events_for(CLIENT_ID) == [NotificationEvent.REJECTED]
        assert sender.events_for(PROVIDER_ID) == []

    def test_client_cannot_reject(self, service, make_booking, client_actor):
        booking = make_booking()
        with pytest.raises(ForbiddenException):
            service.reject_booking(booking.id, client_actor, now=NOW)

    def test_confirmed_booking_cannot_be_rejected(self, service, make_booking, provider_actor, db):
        booking = make_booking(status=BookingStatus.CONFIRMED.value)
        with pytest.raises(InvalidBookingTransitionException) as exc_info:
            service.reject_booking(booking.id, provider_actor, now=NOW)
        assert exc_info.value.status_code == 422
        assert exc_info.value.code == "INVALID_TRANSITION"
        assert exc_info.value.details["current_status"] == BookingStatus.CONFIRMED.value
        assert _booking(db, booking.id).status == BookingStatus.CONFIRMED.value

    def test_released_slot_can_be_reserved_again(
        self, service, make_slot, client_actor, other_client_actor, provider_actor
    ):
        slot = make_slot()
        first = service.create_booking(client_actor, slot.id, now=NOW)
        service.reject_booking(first.id, provider_actor, now=NOW)

        second = service.create_booking(other_client_actor, slot.id, now=NOW)

        assert second.status == BookingStatus.PENDING.value
        assert second.id != first.id


class TestCancel:
    def test_scenario_late_cancel_flags_threshold(
        self, service, make_event, make_slot, make_booking, client_actor, db, billing, sender
    ):
        config = make_event(cancellation_threshold_minutes=1440)
        slot = make_slot(config=config, start=NOW + timedelta(days=1))
        booking = make_booking(slot=slot, status=BookingStatus.CONFIRMED.value)

        result = service.cancel_booking(
            booking.id, client_actor, "Feeling better", now=NOW + timedelta(hours=2)
        )

        assert result.threshold_exceeded is True
        stored = _booking(db, booking.id)
        assert stored.status == BookingStatus.CANCELLED.value
        assert stored.cancelled_by_id == CLIENT_ID
        assert stored.cancelled_by_role == "client"
        assert stored.cancellation_reason == "Feeling better"
        assert ensure_utc(stored.cancelled_at) == NOW + timedelta(hours=2)
        assert _slot(db, slot.id).status == SlotStatus.AVAILABLE.value

        outcome = billing.outcomes[-1]
        assert outcome.event == "cancelled"
        assert outcome.threshold_exceeded is True
        assert outcome.cancelled_by_role == "client"
        assert sender.events_for(PROVIDER_ID) == [NotificationEvent.CANCELLED]

    def test_early_cancel_is_within_threshold(self, service, make_event, make_slot, make_booking, client_actor):
        config = make_event(cancellation_threshold_minutes=1440)
        slot = make_slot(config=config, start=NOW + timedelta(days=3))
        booking = make_booking(slot=slot, status=BookingStatus.CONFIRMED.value)

        result = service.cancel_booking(booking.id, client_actor, "Schedule change", now=NOW)

        assert result.threshold_exceeded is False

    def test_provider_cancels_pending(self, service, make_booking, provider_actor, db):
        booking = make_booking()

        result = service.cancel_booking(booking.id, provider_actor, "Emergency", now=NOW)

        assert result.booking.status == BookingStatus.CANCELLED.value
        assert _booking(db, booking.id).cancelled_by_role == "provider"
        assert _slot(db, booking.slot_id).status == SlotStatus.AVAILABLE.value

    def test_admin_cancel_is_recorded_as_admin(self, service, make_booking, admin_actor, db):
        booking = make_booking()
        service.cancel_booking(booking.id, admin_actor, "Duplicate booking", now=NOW)
        assert _booking(db, booking.id).cancelled_by_role == "admin"

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_is_required(self, service, make_booking, client_actor, reason):
        booking = make_booking()
        with pytest.raises(ValidationException) as exc_info:
            service.cancel_booking(booking.id, client_actor, reason, now=NOW)
        assert exc_info.value.code == "CANCELLATION_REASON_REQUIRED"

    def test_reason_length_is_capped(self, service, make_booking, client_actor):
        booking = make_booking()
        with pytest.raises(ValidationException) as exc_info:
            service.cancel_booking(booking.id, client_actor, "x" * 501, now=NOW)
        assert exc_info.value.code == "REASON_TOO_LONG"

    def test_outsider_is_forbidden(self, service, make_booking, other_client_actor, db):
        booking = make_booking()
        with pytest.raises(ForbiddenException) as exc_info:
            service.cancel_booking(booking.id, other_client_actor, "No reason", now=NOW)
        assert exc_info.value.code == "NOT_BOOKING_PARTICIPANT"
        assert _booking(db, booking.id).status == BookingStatus.PENDING.value


class TestStateMachine:
    @pytest.mark.parametrize(
        "current, target, allowed",
        [
            (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value, True),
            (BookingStatus.PENDING.value, BookingStatus.REJECTED.value, True),
            (BookingStatus.PENDING.value, BookingStatus.CANCELLED.value, True),
            (BookingStatus.PENDING.value, BookingStatus.COMPLETED.value, False),
            (BookingStatus.PENDING.value, BookingStatus.NO_SHOW_CLIENT.value, False),
            (BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value, True),
            (BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value, True),
            (BookingStatus.CONFIRMED.value, BookingStatus.NO_SHOW_PROVIDER.value, True),
            (BookingStatus.CONFIRMED.value, BookingStatus.REJECTED.value, False),
            (BookingStatus.CONFIRMED.value, BookingStatus.CONFIRMED.value, False),
            (BookingStatus.CANCELLED.value, BookingStatus.CONFIRMED.value, False),
            (BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value, False),
        ],
    )
    def test_allowed_transitions(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    def test_every_terminal_status_has_no_exits(self):
        for status in TERMINAL_STATUSES:
            assert status not in ALLOWED_TRANSITIONS
            assert not any(can_transition(status, target.value) for target in BookingStatus)

    def test_confirmed_booking_can_be_cancelled(self, service, make_booking, client_actor, db):
        booking = make_booking(status=BookingStatus.CONFIRMED.value)

        result = service.cancel_booking(booking.id, client_actor, "Change of plans", now=NOW)

        assert result.booking.status == BookingStatus.CANCELLED.value
        assert _booking(db, booking.id).status == BookingStatus.CANCELLED.value

    def test_repeat_confirm_conflicts_but_reject_after_confirm_is_invalid(
        self, service, make_booking, provider_actor
    ):
        booking = make_booking()
        service.confirm_booking(booking.id, provider_actor, now=NOW)

        with pytest.raises(BookingStateConflictException) as conflict:
            service.confirm_booking(booking.id, provider_actor, now=NOW)
        with pytest.raises(InvalidBookingTransitionException) as invalid:
            service.reject_booking(booking.id, provider_actor, now=NOW)

        assert conflict.value.status_code == 409
        assert invalid.value.status_code == 422


class TestTerminalImmutability:
    @pytest.mark.parametrize(
        "status",
        [
            BookingStatus.REJECTED.value,
            BookingStatus.CANCELLED.value,
            BookingStatus.COMPLETED.value,
            BookingStatus.NO_SHOW_CLIENT.value,
            BookingStatus.NO_SHOW_PROVIDER.value,
        ],
    )
    def test_terminal_bookings_reject_every_transition(
        self, service, make_booking, provider_actor, admin_actor, status, db
    ):
        booking = make_booking(status=status)

        with pytest.raises(InvalidBookingTransitionException):
            service.confirm_booking(booking.id, provider_actor, now=NOW)
        with pytest.raises(InvalidBookingTransitionException):
            service.reject_booking(booking.id, provider_actor, now=NOW)
        with pytest.raises(InvalidBookingTransitionException):
            service.cancel_booking(booking.id, admin_actor, "Cleanup", now=NOW)
        with pytest.raises(InvalidBookingTransitionException):
            service.complete_booking(booking.id, provider_actor, now=NOW + timedelta(days=2))

        assert _booking(db, booking.id).status == status


class TestNoShow:
    @pytest.fixture
    def started_booking(self, make_slot, make_booking):
        slot = make_slot(start=NOW - timedelta(minutes=20))
        return make_booking(slot=slot, status=BookingStatus.CONFIRMED.value, booked_at=NOW - timedelta(days=1))

    def test_client_reports_absent_provider(self, service, started_booking, client_actor, db, billing):
        result = service.mark_no_show(
            started_booking.id, client_actor, BookingStatus.NO_SHOW_PROVIDER.value, now=NOW
        )

        assert result.status == BookingStatus.NO_SHOW_PROVIDER.value
        stored = _booking(db, started_booking.id)
        assert stored.no_show_marked_by == "client"
        assert ensure_utc(stored.no_show_marked_at) == NOW
        # Slot stays booked for history
        assert _slot(db, started_booking.slot_id).status == SlotStatus.BOOKED.value
        assert billing.outcomes[-1].event == BookingStatus.NO_SHOW_PROVIDER.value

    def test_client_cannot_report_self(self, service, started_booking, client_actor):
        with pytest.raises(ForbiddenException) as exc_info:
            service.mark_no_show(started_booking.id, client_actor, "no_show_client", now=NOW)
        assert exc_info.value.code == "NO_SHOW_PARTY_MISMATCH"

    def test_provider_must_wait_ten_minutes(self, service, make_slot, make_booking, provider_actor):
        slot = make_slot(start=NOW - timedelta(minutes=5))
        booking = make_booking(slot=slot, status=BookingStatus.CONFIRMED.value, booked_at=NOW - timedelta(days=1))

        with pytest.raises(BusinessRuleException) as exc_info:
            service.mark_no_show(booking.id, provider_actor, "no_show_client", now=NOW)
        assert exc_info.value.code == "NO_SHOW_TOO_EARLY"

        marked = service.mark_no_show(
            booking.id, provider_actor, "no_show_client", now=NOW + timedelta(minutes=5)
        )
        assert marked.status == BookingStatus.NO_SHOW_CLIENT.value

    def test_admin_may_mark_from_start(self, service, make_slot, make_booking, admin_actor):
        slot = make_slot(start=NOW)
        booking = make_booking(slot=slot, status=BookingStatus.CONFIRMED.value, booked_at=NOW - timedelta(days=1))

        marked = service.mark_no_show(booking.id, admin_actor, "no_show_client", now=NOW)

        assert marked.status == BookingStatus.NO_SHOW_CLIENT.value
        assert marked.no_show_marked_by == "admin"

    def test_pending_booking_cannot_be_marked(self, service, make_slot, make_booking, client_actor):
        slot = make_slot(start=NOW - timedelta(minutes=30))
        booking = make_booking(slot=slot, booked_at=NOW - timedelta(days=1))

        with pytest.raises(InvalidBookingTransitionException):
            service.mark_no_show(booking.id, client_actor, "no_show_provider", now=NOW)

    def test_unknown_no_show_type(self, service, started_booking, client_actor):
        with pytest.raises(ValidationException) as exc_info:
            service.mark_no_show(started_booking.id, client_actor, "cancelled", now=NOW)
        assert exc_info.value.code == "INVALID_NO_SHOW_TYPE"


class TestComplete:
    def test_completes_after_scheduled_end(self, service, make_slot, make_booking, provider_actor, db):
        slot = make_slot(start=NOW - timedelta(hours=1))
        booking = make_booking(slot=slot, status=BookingStatus.CONFIRMED.value, booked_at=NOW - timedelta(days=1))

        completed = service.complete_booking(booking.id, provider_actor, now=NOW)

        assert completed.status == BookingStatus.COMPLETED.value
        assert ensure_utc(_booking(db, booking.id).completed_at) == NOW
        assert _slot(db, slot.id).status == SlotStatus.BOOKED.value

    def test_cannot_complete_before_end(self, service, make_slot, make_booking, provider_actor):
        slot = make_slot(start=NOW - timedelta(minutes=10))
        booking = make_booking(slot=slot, status=BookingStatus.CONFIRMED.value, booked_at=NOW - timedelta(days=1))

        with pytest.raises(BusinessRuleException) as exc_info:
            service.complete_booking(booking.id, provider_actor, now=NOW)
        assert exc_info.value.code == "BOOKING_NOT_ENDED"

    def test_client_cannot_complete(self, service, make_slot, make_booking, client_actor):
        slot = make_slot(start=NOW - timedelta(hours=1))
        booking = make_booking(slot=slot, status=BookingStatus.CONFIRMED.value, booked_at=NOW - timedelta(days=1))

        with pytest.raises(ForbiddenException):
            service.complete_booking(booking.id, client_actor, now=NOW)

    def test_pending_booking_cannot_complete(self, service, make_slot, make_booking, provider_actor):
        slot = make_slot(start=NOW - timedelta(hours=1))
        booking = make_booking(slot=slot, booked_at=NOW - timedelta(days=1))

        with pytest.raises(InvalidBookingTransitionException):
            service.complete_booking(booking.id, provider_actor, now=NOW)


class TestGetBooking:
    def test_participants_and_staff_can_read(
        self, service, make_booking, client_actor, provider_actor, admin_actor, support_actor
    ):
        booking = make_booking()
        for actor in (client_actor, provider_actor, admin_actor, support_actor):
            assert service.get_booking(booking.id, actor).id == booking.id

    def test_outsider_cannot_read(self, service, make_booking, other_client_actor):
        booking = make_booking()
        with pytest.raises(ForbiddenException):
            service.get_booking(booking.id, other_client_actor)

    def test_unknown_booking(self, service, client_actor):
        with pytest.raises(NotFoundException) as exc_info:
            service.get_booking("01HNOPE0000000000000000000", client_actor)
        assert exc_info.value.code == "BOOKING_NOT_FOUND"


class TestListBookings:
    @pytest.fixture
    def bookings(self, make_event, make_slot, make_booking):
        config = make_event()
        past = make_booking(
            slot=make_slot(config=config, start=NOW - timedelta(days=2)),
            status=BookingStatus.COMPLETED.value,
        )
        soon = make_booking(slot=make_slot(config=config, start=NOW + timedelta(days=1)))
        later = make_booking(
            slot=make_slot(config=config, start=NOW + timedelta(days=3)),
            status=BookingStatus.CONFIRMED.value,
        )
        someone_else = make_booking(
            slot=make_slot(config=config, start=NOW + timedelta(days=2)),
            client_id=OTHER_CLIENT_ID,
        )
        return {"past": past, "soon": soon, "later": later, "other": someone_else}

    def test_client_sees_only_own_bookings_in_start_order(self, service, bookings, client_actor):
        result = service.list_bookings(client_actor, now=NOW)

        assert [b.id for b in result] == [
            bookings["past"].id,
            bookings["soon"].id,
            bookings["later"].id,
        ]

    def test_provider_sees_all_their_bookings(self, service, bookings, provider_actor):
        assert len(service.list_bookings(provider_actor, now=NOW)) == 4

    def test_client_filters_are_ignored_for_non_staff(self, service, bookings, client_actor):
        filters = BookingListFilters(client_id=OTHER_CLIENT_ID)
        result = service.list_bookings(client_actor, filters, now=NOW)
        assert bookings["other"].id not in {b.id for b in result}

    def test_admin_filters_by_client(self, service, bookings, admin_actor):
        result = service.list_bookings(admin_actor, BookingListFilters(client_id=OTHER_CLIENT_ID), now=NOW)
        assert [b.id for b in result] == [bookings["other"].id]

    def test_status_filter(self, service, bookings, client_actor):
        result = service.list_bookings(
            client_actor, BookingListFilters(status=BookingStatus.CONFIRMED), now=NOW
        )
        assert [b.id for b in result] == [bookings["later"].id]

    def test_upcoming_and_past(self, service, bookings, client_actor):
        upcoming = service.list_bookings(client_actor, BookingListFilters(upcoming=True), now=NOW)
        past = service.list_bookings(client_actor, BookingListFilters(past=True), now=NOW)

        assert [b.id for b in upcoming] == [bookings["soon"].id, bookings["later"].id]
        assert [b.id for b in past] == [bookings["past"].id]

    def test_date_range_is_inclusive(self, service, bookings, client_actor):
        day = (NOW + timedelta(days=1)).date()
        result = service.list_bookings(
            client_actor, BookingListFilters(date_from=day, date_to=day), now=NOW
        )
        assert [b.id for b in result] == [bookings["soon"].id]

    def test_pagination(self, service, bookings, client_actor):
        first_page = service.list_bookings(client_actor, BookingListFilters(limit=2), now=NOW)
        second_page = service.list_bookings(client_actor, BookingListFilters(limit=2, offset=2), now=NOW)

        assert len(first_page) == 2
        assert [b.id for b in second_page] == [bookings["later"].id]

    def test_filters_reject_conflicting_flags(self):
        with pytest.raises(ValueError):
            BookingListFilters(upcoming=True, past=True)
        with pytest.raises(ValueError):
            BookingListFilters(date_from=date(2030, 1, 2), date_to=date(2030, 1, 1))
