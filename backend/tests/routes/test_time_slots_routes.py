"""HTTP surface for /api/v1/time-slots plus the operational endpoints."""

from __future__ import annotations

from datetime import timedelta

from fastapi import Request
from fastapi.testclient import TestClient
import pytest

from careslot.api.dependencies import get_current_actor
from careslot.core.ulid_helper import generate_ulid
from careslot.database import get_db
from careslot.main import create_app
from careslot.models.time_slot import SlotStatus

from conftest import NOW

BASE = "/api/v1/time-slots"


@pytest.fixture
def caller():
    return {"actor": None}


@pytest.fixture
def api(db, caller):
    app = create_app()

    def _get_db():
        yield db

    def _authenticated_actor(request: Request):
        if caller["actor"] is not None:
            request.state.actor = caller["actor"]
        return get_current_actor(request)

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_actor] = _authenticated_actor
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestPublicReads:
    def test_lists_open_slots_in_start_order(self, api, make_event, make_slot, make_booking):
        config = make_event()
        later = make_slot(config=config, start=NOW + timedelta(days=2))
        sooner = make_slot(config=config, start=NOW + timedelta(days=1))
        make_slot(config=config, start=NOW + timedelta(days=3), status=SlotStatus.BLOCKED.value)
        make_booking(slot=make_slot(config=config, start=NOW + timedelta(days=4)))

        response = api.get(BASE, params={"provider_event_id": config.id})

        assert response.status_code == 200, response.text
        slots = response.json()["slots"]
        assert [slot["id"] for slot in slots] == [sooner.id, later.id]
        assert slots[0]["status"] == SlotStatus.AVAILABLE.value
        assert slots[0]["consultation_modes"] == ["video", "in_person"]

    def test_date_range_narrows_listing(self, api, make_event, make_slot):
        config = make_event()
        make_slot(config=config, start=NOW + timedelta(days=1))
        wanted = make_slot(config=config, start=NOW + timedelta(days=2))
        day = (NOW + timedelta(days=2)).date().isoformat()

        response = api.get(
            BASE, params={"provider_event_id": config.id, "date_from": day, "date_to": day}
        )

        assert [slot["id"] for slot in response.json()["slots"]] == [wanted.id]

    def test_inverted_date_range(self, api, make_event):
        config = make_event()

        response = api.get(
            BASE,
            params={"provider_event_id": config.id, "date_from": "2030-02-02", "date_to": "2030-02-01"},
        )

        assert response.status_code == 400
        assert response.json()["status"] == 400

    def test_event_id_is_required(self, api):
        response = api.get(BASE)

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_get_slot_without_authentication(self, api, make_slot):
        slot = make_slot()

        response = api.get(f"{BASE}/{slot.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == slot.id
        assert body["price"] == "80.00"

    def test_missing_slot(self, api):
        response = api.get(f"{BASE}/{generate_ulid()}")

        assert response.status_code == 404
        assert response.json()["code"] == "SLOT_NOT_FOUND"


class TestBlocking:
    def test_provider_blocks_then_unblocks(self, api, caller, provider_actor, make_slot):
        slot = make_slot()
        caller["actor"] = provider_actor

        blocked = api.post(f"{BASE}/{slot.id}/block")
        reopened = api.post(f"{BASE}/{slot.id}/unblock")

        assert blocked.status_code == 200, blocked.text
        assert blocked.json()["status"] == SlotStatus.BLOCKED.value
        assert reopened.json()["status"] == SlotStatus.AVAILABLE.value

    def test_other_provider_is_forbidden(self, api, caller, other_provider_actor, make_slot):
        slot = make_slot()
        caller["actor"] = other_provider_actor

        response = api.post(f"{BASE}/{slot.id}/block")

        assert response.status_code == 403
        assert response.json()["code"] == "NOT_SLOT_PROVIDER"

    def test_blocking_requires_authentication(self, api, make_slot):
        slot = make_slot()

        assert api.post(f"{BASE}/{slot.id}/block").status_code == 401

    def test_booked_slot_cannot_be_blocked(self, api, caller, provider_actor, make_booking):
        booking = make_booking()
        caller["actor"] = provider_actor

        response = api.post(f"{BASE}/{booking.slot_id}/block")

        assert response.status_code == 409
        assert response.json()["code"] == "SLOT_UNAVAILABLE"


class TestOperationalEndpoints:
    def test_health(self, api):
        response = api.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_metrics_exposition(self, api, make_slot):
        make_slot()
        api.get(f"{BASE}/{generate_ulid()}")

        response = api.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "careslot_service_operations_total" in response.text
