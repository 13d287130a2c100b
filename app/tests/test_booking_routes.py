from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt

import app.core.security as security
from app.api import deps
from app.api.routes import bookings as booking_routes
from app.core.errors import BookingEngineError
from app.main import booking_engine_error_handler
from app.schemas.booking import BookingCreate
from app.schemas.enums import BookingStatus

booking_test_app = FastAPI()
booking_test_app.include_router(booking_routes.router)
booking_test_app.add_exception_handler(BookingEngineError, booking_engine_error_handler)


def _override_current_staff():
    return {"sub": "staff-1", "role": "front_desk"}


def _use(machine, staff=True):
    booking_test_app.dependency_overrides[deps.get_state_machine] = lambda: machine
    if staff:
        booking_test_app.dependency_overrides[deps.get_current_staff] = _override_current_staff


def _create(machine, booking_request, **overrides):
    return asyncio.run(machine.create(BookingCreate.model_validate({**booking_request, **overrides})))


def test_create_booking_returns_hold_and_payment_url(machine, booking_request):
    _use(machine, staff=False)

    try:
        with TestClient(booking_test_app) as client:
            response = client.post("/v1.0/bookings", json=booking_request)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["total_amount"] == 1_135_000
        assert body["deposit_amount"] == 340_500
        assert body["payment_method_type"] == "online"
        assert body["payment_url"] == "https://checkout.xendit.co/web/inv-1"
        assert body["booking_code"].startswith("BK")
    finally:
        booking_test_app.dependency_overrides = {}


def test_create_booking_validates_guest_contact(machine, booking_request):
    _use(machine, staff=False)
    payload = {**booking_request, "guest": {**booking_request["guest"], "phone": "call me"}}

    try:
        with TestClient(booking_test_app) as client:
            response = client.post("/v1.0/bookings", json=payload)

        assert response.status_code == 422
    finally:
        booking_test_app.dependency_overrides = {}


def test_create_booking_conflict_maps_to_409(machine, booking_request):
    _use(machine, staff=False)

    try:
        with TestClient(booking_test_app) as client:
            first = client.post("/v1.0/bookings", json=booking_request)
            second = client.post("/v1.0/bookings", json=booking_request)

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["code"] == "room_unavailable"
    finally:
        booking_test_app.dependency_overrides = {}


def test_create_booking_below_minimum_stay_maps_to_400(machine, booking_request):
    _use(machine, staff=False)
    payload = {**booking_request, "stay_type": "monthly"}

    try:
        with TestClient(booking_test_app) as client:
            response = client.post("/v1.0/bookings", json=payload)

        assert response.status_code == 400
        assert response.json()["code"] == "below_minimum_stay"
    finally:
        booking_test_app.dependency_overrides = {}


def test_get_booking_and_not_found(machine, booking_request):
    _use(machine, staff=False)
    created = _create(machine, booking_request)

    try:
        with TestClient(booking_test_app) as client:
            found = client.get(f"/v1.0/bookings/{created.booking.id}")
            missing = client.get("/v1.0/bookings/missing")

        assert found.status_code == 200
        assert found.json()["booking_code"] == created.booking.booking_code
        assert missing.status_code == 404
        assert missing.json() == {"detail": "Booking missing not found.", "code": "not_found"}
    finally:
        booking_test_app.dependency_overrides = {}


def test_staff_cancel_and_illegal_transition(machine, booking_request):
    _use(machine)
    created = _create(machine, booking_request)

    try:
        with TestClient(booking_test_app) as client:
            cancelled = client.post(
                f"/v1.0/bookings/{created.booking.id}/cancel",
                json={"reason": "Guest called to cancel"},
            )
            check_in = client.post(f"/v1.0/bookings/{created.booking.id}/check-in")

        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == BookingStatus.CANCELLED.value
        assert cancelled.json()["cancellation_reason"] == "Guest called to cancel"
        assert check_in.status_code == 409
        assert check_in.json()["code"] == "invalid_transition"
    finally:
        booking_test_app.dependency_overrides = {}


def test_staff_check_in_and_check_out(machine, booking_request, clock):
    _use(machine)
    created = _create(machine, booking_request)
    asyncio.run(machine.confirm(created.booking.id, created.booking.total_amount))
    clock.now = datetime(2026, 3, 10, 7, 0, tzinfo=timezone.utc)

    try:
        with TestClient(booking_test_app) as client:
            checked_in = client.post(f"/v1.0/bookings/{created.booking.id}/check-in")
            checked_out = client.post(f"/v1.0/bookings/{created.booking.id}/check-out")

        assert checked_in.json()["status"] == "checked_in"
        assert checked_out.json()["status"] == "checked_out"
    finally:
        booking_test_app.dependency_overrides = {}


def test_staff_no_show(machine, booking_request, clock):
    _use(machine)
    created = _create(machine, booking_request)
    asyncio.run(machine.confirm(created.booking.id, created.booking.total_amount))
    clock.now = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)

    try:
        with TestClient(booking_test_app) as client:
            response = client.post(f"/v1.0/bookings/{created.booking.id}/no-show")

        assert response.status_code == 200
        assert response.json()["status"] == "no_show"
    finally:
        booking_test_app.dependency_overrides = {}


def test_staff_routes_require_bearer_token(machine, booking_request):
    _use(machine, staff=False)
    created = _create(machine, booking_request)

    try:
        with TestClient(booking_test_app) as client:
            response = client.post(
                f"/v1.0/bookings/{created.booking.id}/cancel", json={"reason": "x"}
            )

        assert response.status_code == 401
    finally:
        booking_test_app.dependency_overrides = {}


def test_staff_token_is_verified_with_jwt_secret(machine, booking_request, settings, monkeypatch):
    _use(machine, staff=False)
    monkeypatch.setattr(security, "get_settings", lambda: settings)
    created = _create(machine, booking_request)
    claims = {"sub": "staff-1", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
    good = jwt.encode(claims, settings.jwt_secret, algorithm=settings.algorithm)
    forged = jwt.encode(claims, "someone-else", algorithm=settings.algorithm)

    try:
        with TestClient(booking_test_app) as client:
            rejected = client.post(
                f"/v1.0/bookings/{created.booking.id}/cancel",
                json={"reason": "Duplicate booking"},
                headers={"Authorization": f"Bearer {forged}"},
            )
            accepted = client.post(
                f"/v1.0/bookings/{created.booking.id}/cancel",
                json={"reason": "Duplicate booking"},
                headers={"Authorization": f"Bearer {good}"},
            )

        assert rejected.status_code == 401
        assert accepted.status_code == 200
    finally:
        booking_test_app.dependency_overrides = {}


def test_missing_jwt_secret_rejects_every_staff_token(machine, booking_request, settings, monkeypatch):
    _use(machine, staff=False)
    monkeypatch.setattr(
        security, "get_settings", lambda: settings.model_copy(update={"jwt_secret": None})
    )
    created = _create(machine, booking_request)
    token = jwt.encode({"sub": "staff-1"}, "anything", algorithm="HS256")

    try:
        with TestClient(booking_test_app) as client:
            response = client.post(
                f"/v1.0/bookings/{created.booking.id}/no-show",
                headers={"Authorization": f"Bearer {token}"},
            )

        assert response.status_code == 401
    finally:
        booking_test_app.dependency_overrides = {}
