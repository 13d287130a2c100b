from __future__ import annotations

import pytest

from app.core.config import Settings
from app.db.memory import InMemoryBookingStore
from app.services.booking_state import BookingStateMachine
from app.services.reconciler import PaymentReconciler
from app.tests.fakes import FakeGateway, FrozenClock, seed_inventory


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        app_url="https://book.example.com",
        jwt_secret="test-jwt-secret",
        xendit_secret_key="xnd_development_test",
        xendit_webhook_token="callback-token-123",
        cron_secret="cron-secret-123",
        expiry_sweep_interval_seconds=0,
    )


@pytest.fixture
def store() -> InMemoryBookingStore:
    return seed_inventory(InMemoryBookingStore())


@pytest.fixture
def gateway(clock) -> FakeGateway:
    return FakeGateway(clock)


@pytest.fixture
def machine(store, gateway, settings, clock) -> BookingStateMachine:
    return BookingStateMachine(store, gateway, settings, clock=clock)


@pytest.fixture
def reconciler(store, machine, settings, clock) -> PaymentReconciler:
    return PaymentReconciler(store, machine, settings.payment_mismatch_policy, clock=clock)


@pytest.fixture
def booking_request() -> dict:
    return {
        "room_id": "room-101",
        "guest": {
            "full_name": "Sarah Chen",
            "email": "sarah@example.com",
            "phone": "+62 812-3456-7890",
        },
        "check_in": "2026-03-10",
        "check_out": "2026-03-12",
        "num_guests": 2,
    }
