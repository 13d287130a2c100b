from __future__ import annotations

import asyncio
from datetime import date, timedelta

import pytest

from app.core.errors import InvalidParameters, RoomUnavailable
from app.db.memory import InMemoryBookingStore
from app.schemas.booking import Booking, BookingCreate
from app.schemas.enums import BlockReason, BookingStatus, StayType
from app.schemas.room import AvailabilityBlock
from app.services.availability import (
    AvailabilityResolver,
    intervals_overlap,
    parse_stay_dates,
    summarize_by_property,
)
from app.services.booking_state import BookingStateMachine
from app.tests.fakes import FIXED_NOW, FakeGateway, FrozenClock, seed_inventory


def _run(coro):
    return asyncio.run(coro)


def _booking(booking_id: str, room_id: str, check_in: date, check_out: date, **overrides) -> Booking:
    data = {
        "id": booking_id,
        "booking_code": f"BK-{booking_id}",
        "room_id": room_id,
        "property_id": "prop-1",
        "guest_id": "guest-1",
        "check_in": check_in,
        "check_out": check_out,
        "stay_type": StayType.DAILY,
        "base_price": 1_000_000,
        "tax_amount": 110_000,
        "service_fee": 25_000,
        "total_amount": 1_135_000,
        "deposit_amount": 340_500,
        "hold_expires_at": FIXED_NOW + timedelta(hours=24),
        "created_at": FIXED_NOW,
        "updated_at": FIXED_NOW,
    }
    data.update(overrides)
    return Booking(**data)


def _available_ids(store, check_in, check_out, clock=None, **scope) -> list[str]:
    resolver = AvailabilityResolver(store, clock or FrozenClock())
    rooms = _run(resolver.find_available(check_in, check_out, **scope))
    return [room.id for room in rooms]


def test_intervals_overlap_is_half_open():
    assert intervals_overlap(date(2026, 3, 10), date(2026, 3, 12), date(2026, 3, 11), date(2026, 3, 13))
    assert not intervals_overlap(date(2026, 3, 10), date(2026, 3, 12), date(2026, 3, 12), date(2026, 3, 14))
    assert not intervals_overlap(date(2026, 3, 12), date(2026, 3, 14), date(2026, 3, 10), date(2026, 3, 12))


def test_all_bookable_rooms_are_available_on_an_empty_calendar(store):
    ids = _available_ids(store, date(2026, 3, 10), date(2026, 3, 12))

    assert ids == ["room-101", "room-102", "room-201"]


def test_maintenance_and_inactive_rooms_are_never_offered(store):
    store.rooms["room-102"] = store.rooms["room-102"].model_copy(update={"is_active": False})

    ids = _available_ids(store, date(2026, 3, 10), date(2026, 3, 12))

    assert "room-103" not in ids
    assert "room-102" not in ids


@pytest.mark.parametrize(
    "status",
    [BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN],
)
def test_active_bookings_occupy_the_room(store, status):
    store.bookings["b-1"] = _booking("b-1", "room-101", date(2026, 3, 9), date(2026, 3, 11), status=status)

    ids = _available_ids(store, date(2026, 3, 10), date(2026, 3, 12))

    assert "room-101" not in ids


@pytest.mark.parametrize(
    "status",
    [BookingStatus.CANCELLED, BookingStatus.CHECKED_OUT, BookingStatus.NO_SHOW],
)
def test_terminal_bookings_release_the_room(store, status):
    store.bookings["b-1"] = _booking("b-1", "room-101", date(2026, 3, 9), date(2026, 3, 11), status=status)

    assert "room-101" in _available_ids(store, date(2026, 3, 10), date(2026, 3, 12))


def test_back_to_back_stays_do_not_conflict(store):
    store.bookings["b-1"] = _booking(
        "b-1", "room-101", date(2026, 3, 8), date(2026, 3, 10), status=BookingStatus.CONFIRMED
    )

    assert "room-101" in _available_ids(store, date(2026, 3, 10), date(2026, 3, 12))


def test_expired_pending_hold_no_longer_occupies(store):
    store.bookings["b-1"] = _booking("b-1", "room-101", date(2026, 3, 10), date(2026, 3, 12))
    clock = FrozenClock()

    assert "room-101" not in _available_ids(store, date(2026, 3, 10), date(2026, 3, 12), clock=clock)
    clock.advance(hours=24)
    assert "room-101" in _available_ids(store, date(2026, 3, 10), date(2026, 3, 12), clock=clock)


def test_availability_blocks_exclude_rooms(store):
    store.add_block(
        AvailabilityBlock(
            id="blk-1",
            room_id="room-102",
            start_date=date(2026, 3, 11),
            end_date=date(2026, 3, 15),
            reason=BlockReason.RENOVATION,
        )
    )

    assert "room-102" not in _available_ids(store, date(2026, 3, 10), date(2026, 3, 12))
    assert "room-102" in _available_ids(store, date(2026, 3, 15), date(2026, 3, 16))


def test_scope_filters_by_property_and_room_type(store):
    assert _available_ids(store, date(2026, 3, 10), date(2026, 3, 12), property_id="prop-2") == ["room-201"]
    assert _available_ids(store, date(2026, 3, 10), date(2026, 3, 12), room_type_id="rt-missing") == []


def test_reversed_range_is_rejected(store):
    with pytest.raises(InvalidParameters):
        _available_ids(store, date(2026, 3, 12), date(2026, 3, 10))


def test_parse_stay_dates():
    assert parse_stay_dates("2026-03-10", "2026-03-12") == (date(2026, 3, 10), date(2026, 3, 12))
    with pytest.raises(InvalidParameters):
        parse_stay_dates("10/03/2026", "2026-03-12")
    with pytest.raises(InvalidParameters):
        parse_stay_dates(None, "2026-03-12")
    with pytest.raises(InvalidParameters):
        parse_stay_dates("2026-03-12", "2026-03-12")


def test_summarize_by_property(store):
    rooms = [store.rooms["room-101"], store.rooms["room-102"], store.rooms["room-201"]]

    summary = summarize_by_property(rooms)

    assert [(row.property_id, row.available) for row in summary] == [("prop-1", 2), ("prop-2", 1)]


def test_concurrent_claims_on_one_room_yield_exactly_one_booking():
    store = seed_inventory(InMemoryBookingStore(io_delay=0.01))

    async def _claim_all():
        claims = [
            store.claim_room(_booking(f"b-{i}", "room-101", date(2026, 3, 10), date(2026, 3, 12)))
            for i in range(8)
        ]
        return await asyncio.gather(*claims, return_exceptions=True)

    results = _run(_claim_all())

    successes = [r for r in results if isinstance(r, Booking)]
    losers = [r for r in results if isinstance(r, RoomUnavailable)]
    assert len(successes) == 1
    assert len(losers) == 7
    assert len(store.bookings) == 1


def test_concurrent_claims_on_different_rooms_all_succeed():
    store = seed_inventory(InMemoryBookingStore(io_delay=0.01))

    async def _claim_all():
        return await asyncio.gather(
            store.claim_room(_booking("b-1", "room-101", date(2026, 3, 10), date(2026, 3, 12))),
            store.claim_room(_booking("b-2", "room-102", date(2026, 3, 10), date(2026, 3, 12))),
            store.claim_room(_booking("b-3", "room-201", date(2026, 3, 10), date(2026, 3, 12))),
        )

    results = _run(_claim_all())

    assert {booking.room_id for booking in results} == {"room-101", "room-102", "room-201"}


def test_concurrent_booking_requests_never_double_book(settings, booking_request):
    store = seed_inventory(InMemoryBookingStore(io_delay=0.01))
    clock = FrozenClock()
    machine = BookingStateMachine(store, FakeGateway(clock), settings, clock=clock)

    async def _create_all():
        requests = []
        for i in range(5):
            payload = dict(booking_request)
            payload["guest"] = {**booking_request["guest"], "email": f"guest{i}@example.com"}
            requests.append(machine.create(BookingCreate.model_validate(payload)))
        return await asyncio.gather(*requests, return_exceptions=True)

    results = _run(_create_all())

    assert sum(1 for r in results if isinstance(r, RoomUnavailable)) == 4
    active = [b for b in store.bookings.values() if b.occupies_inventory]
    assert len(active) == 1
