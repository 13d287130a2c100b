from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from app.core.errors import NotFound
from app.db.store import BookingStore
from app.schemas.enums import StayType
from app.schemas.rate import Rate, RoomRateOverride
from app.schemas.room import Room

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def override_as_rate(override: RoomRateOverride, room: Room) -> Rate:
    """A room-level override carries a price only: no tax, fee or deposit."""
    return Rate(
        id=override.id,
        room_type_id=room.room_type_id,
        property_id=None,
        stay_type=override.stay_type,
        price=override.price,
        min_stay=1,
        tax_percentage=0,
        service_fee=0,
        deposit_percentage=0,
        created_at=override.created_at,
    )


def _latest(rates: list[Rate]) -> Rate | None:
    if not rates:
        return None
    return max(rates, key=lambda rate: rate.created_at or _OLDEST)


class RateResolver:
    """Looks up the rate applying to a room for a stay type.

    Priority: room override, then the property's rate, then the global rate
    for the room type. Only active versions covering the check-in date are
    considered; the newest version wins.
    """

    def __init__(self, store: BookingStore):
        self.store = store

    async def resolve(self, room: Room, stay_type: StayType, on_date: date) -> Rate:
        override = await self.store.get_room_rate_override(room.id, stay_type)
        if override is not None and override.is_active:
            return override_as_rate(override, room)

        candidates = [
            rate
            for rate in await self.store.list_rates(room.room_type_id, stay_type)
            if rate.is_active and rate.covers(on_date)
        ]
        property_rate = _latest([r for r in candidates if r.property_id == room.property_id])
        if property_rate is not None:
            return property_rate

        global_rate = _latest([r for r in candidates if r.property_id is None])
        if global_rate is not None:
            return global_rate

        logger.warning(
            "No rate for room %s (type %s, stay %s) on %s",
            room.id,
            room.room_type_id,
            stay_type.value,
            on_date,
        )
        raise NotFound(
            "No rate found for this room type and stay type.",
            room_id=room.id,
            stay_type=stay_type.value,
        )
