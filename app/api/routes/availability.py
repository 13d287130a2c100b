from typing import Literal

from fastapi import APIRouter, Depends, Query

from app.api import deps
from app.schemas.room import (
    AvailabilityListResponse,
    AvailabilitySummaryResponse,
    AvailableRoomResponse,
)
from app.services.availability import (
    AvailabilityResolver,
    parse_stay_dates,
    summarize_by_property,
)

router = APIRouter(prefix="/v1.0/availability", tags=["availability"])


@router.get("", response_model=AvailabilityListResponse | AvailabilitySummaryResponse)
async def get_availability(
    check_in: str | None = Query(None, description="YYYY-MM-DD"),
    check_out: str | None = Query(None, description="YYYY-MM-DD"),
    property_id: str | None = None,
    room_type_id: str | None = None,
    mode: Literal["rooms", "summary"] = "rooms",
    resolver: AvailabilityResolver = Depends(deps.get_availability_resolver),
):
    """Rooms free for the whole stay, or per-property counts with ``mode=summary``."""
    start, end = parse_stay_dates(check_in, check_out)
    rooms = await resolver.find_available(start, end, property_id, room_type_id)

    if mode == "summary":
        return AvailabilitySummaryResponse(
            check_in=start,
            check_out=end,
            properties=summarize_by_property(rooms),
            total_available=len(rooms),
        )

    return AvailabilityListResponse(
        check_in=start,
        check_out=end,
        available=[
            AvailableRoomResponse(
                room_id=room.id,
                room_number=room.room_number,
                floor=room.floor,
                property_id=room.property_id,
                room_type_id=room.room_type_id,
            )
            for room in rooms
        ],
    )
