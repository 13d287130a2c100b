from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

from app.schemas.enums import BlockReason, RoomStatus

UNBOOKABLE_ROOM_STATUSES = frozenset({RoomStatus.MAINTENANCE, RoomStatus.OUT_OF_SERVICE})


class Property(BaseModel):
    id: str
    name: str
    slug: str = ""
    is_active: bool = True


class RoomType(BaseModel):
    id: str
    name: str
    slug: str = ""
    max_guests: int = Field(2, ge=1)


class Room(BaseModel):
    id: str
    property_id: str
    room_type_id: str
    room_number: str
    floor: int = 1
    status: RoomStatus = RoomStatus.AVAILABLE
    is_active: bool = True

    @property
    def is_bookable(self) -> bool:
        return self.is_active and self.status not in UNBOOKABLE_ROOM_STATUSES


class AvailabilityBlock(BaseModel):
    id: str
    room_id: str
    start_date: date
    end_date: date
    reason: BlockReason = BlockReason.OTHER
    notes: str | None = None


class AvailableRoomResponse(BaseModel):
    room_id: str
    room_number: str
    floor: int
    property_id: str
    room_type_id: str


class AvailabilityListResponse(BaseModel):
    check_in: date
    check_out: date
    available: list[AvailableRoomResponse]


class PropertyAvailability(BaseModel):
    property_id: str
    available: int


class AvailabilitySummaryResponse(BaseModel):
    check_in: date
    check_out: date
    properties: list[PropertyAvailability]
    total_available: int
