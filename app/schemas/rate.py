from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.enums import StayType


class Rate(BaseModel):
    """One immutable version of a rate card entry, in minor currency units."""

    model_config = ConfigDict(frozen=True)

    id: str
    room_type_id: str
    property_id: str | None = None
    stay_type: StayType
    price: int = Field(..., ge=0)
    min_stay: int = Field(1, ge=1)
    tax_percentage: float = Field(0, ge=0)
    service_fee: int = Field(0, ge=0)
    deposit_percentage: float = Field(100, ge=0, le=100)
    is_active: bool = True
    valid_from: date | None = None
    valid_until: date | None = None
    created_at: datetime | None = None

    def covers(self, on_date: date) -> bool:
        if self.valid_from is not None and on_date < self.valid_from:
            return False
        if self.valid_until is not None and on_date >= self.valid_until:
            return False
        return True


class RoomRateOverride(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    room_id: str
    stay_type: StayType
    price: int = Field(..., ge=0)
    is_active: bool = True
    notes: str | None = None
    created_at: datetime | None = None
