"""Availability resolution over the booking store.

Two half-open stays [a, b) and [c, d) overlap iff ``a < d and c < b``.
Pending, confirmed and checked-in bookings occupy the room; a pending hold
past its expiry no longer counts here and is cancelled by the claim path or
the expiry sweep.
"""

from __future__ import annotations

from collections import Counter
from datetime import date

from app.core.clock import Clock, utcnow
from app.core.errors import InvalidParameters
from app.db.store import BookingStore
from app.schemas.room import PropertyAvailability, Room


def intervals_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start < b_end and b_start < a_end


def parse_stay_dates(check_in: str | None, check_out: str | None) -> tuple[date, date]:
    """Parse ``YYYY-MM-DD`` query parameters. Raises ``InvalidParameters``."""
    try:
        start = date.fromisoformat(check_in or "")
        end = date.fromisoformat(check_out or "")
    except ValueError:
        raise InvalidParameters("Invalid date format. Use YYYY-MM-DD.")
    if end <= start:
        raise InvalidParameters("Check-out must be after check-in.")
    return start, end


def summarize_by_property(rooms: list[Room]) -> list[PropertyAvailability]:
    counts = Counter(room.property_id for room in rooms)
    return [
        PropertyAvailability(property_id=property_id, available=count)
        for property_id, count in sorted(counts.items())
    ]


class AvailabilityResolver:
    def __init__(self, store: BookingStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    async def find_available(
        self,
        check_in: date,
        check_out: date,
        property_id: str | None = None,
        room_type_id: str | None = None,
    ) -> list[Room]:
        if check_out <= check_in:
            raise InvalidParameters("Check-out must be after check-in.")

        rooms = [
            room
            for room in await self.store.list_rooms(property_id, room_type_id)
            if room.is_bookable
        ]
        if not rooms:
            return []

        room_ids = [room.id for room in rooms]
        now = self.clock()
        occupied = {
            booking.room_id
            for booking in await self.store.list_overlapping_bookings(room_ids, check_in, check_out)
            if not booking.hold_expired(now)
        }
        blocked = {
            block.room_id
            for block in await self.store.list_overlapping_blocks(room_ids, check_in, check_out)
        }
        return [room for room in rooms if room.id not in occupied and room.id not in blocked]

    async def is_room_available(self, room_id: str, check_in: date, check_out: date) -> bool:
        room = await self.store.get_room(room_id)
        if room is None or not room.is_bookable:
            return False
        now = self.clock()
        bookings = await self.store.list_overlapping_bookings([room_id], check_in, check_out)
        if any(not booking.hold_expired(now) for booking in bookings):
            return False
        blocks = await self.store.list_overlapping_blocks([room_id], check_in, check_out)
        return not blocks
