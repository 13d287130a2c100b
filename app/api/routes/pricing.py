from fastapi import APIRouter, Depends

from app.api import deps
from app.core.config import Settings, get_settings
from app.core.errors import NotFound
from app.db.base import get_store
from app.db.store import BookingStore
from app.schemas.enums import StayType
from app.schemas.pricing import PriceQuoteResponse
from app.services.availability import parse_stay_dates
from app.services.pricing import compute_price, suggest_stay_type, whole_days_between
from app.services.rates import RateResolver

router = APIRouter(prefix="/v1.0/pricing", tags=["pricing"])


@router.get("/quote", response_model=PriceQuoteResponse)
async def quote_price(
    room_id: str,
    check_in: str | None = None,
    check_out: str | None = None,
    stay_type: StayType | None = None,
    store: BookingStore = Depends(get_store),
    rates: RateResolver = Depends(deps.get_rate_resolver),
    settings: Settings = Depends(get_settings),
):
    """Price a stay for a room without holding anything."""
    start, end = parse_stay_dates(check_in, check_out)
    room = await store.get_room(room_id)
    if room is None or not room.is_active:
        raise NotFound("Room not found.", room_id=room_id)

    resolved = stay_type or suggest_stay_type(whole_days_between(start, end))
    rate = await rates.resolve(room, resolved, start)
    price = compute_price(rate, start, end, resolved)

    return PriceQuoteResponse(
        room_id=room.id,
        check_in=start,
        check_out=end,
        currency_code=settings.currency_code,
        stay_type=price.stay_type,
        nights=price.nights,
        units=price.units,
        base_price=price.base_price,
        tax_amount=price.tax_amount,
        service_fee=price.service_fee,
        discount_amount=price.discount_amount,
        total_amount=price.total_amount,
        deposit_amount=price.deposit_amount,
        rate_id=rate.id,
    )
