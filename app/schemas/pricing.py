from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict

from app.schemas.enums import StayType
from app.schemas.rate import Rate


class PriceCalculation(BaseModel):
    model_config = ConfigDict(frozen=True)

    stay_type: StayType
    nights: int
    units: int
    base_price: int
    tax_amount: int
    service_fee: int
    discount_amount: int
    total_amount: int
    deposit_amount: int
    rate: Rate


class PriceQuoteResponse(BaseModel):
    room_id: str
    check_in: date
    check_out: date
    currency_code: str
    stay_type: StayType
    nights: int
    units: int
    base_price: int
    tax_amount: int
    service_fee: int
    discount_amount: int
    total_amount: int
    deposit_amount: int
    rate_id: str
