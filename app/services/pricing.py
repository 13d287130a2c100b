"""Price computation for a stay.

Pure functions only: no I/O, no shared state. All amounts are integers in
minor currency units; percentages are applied with decimal arithmetic and
rounded half away from zero.
"""

from __future__ import annotations

import calendar
import math
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from app.core.errors import BelowMinimumStay, InvalidDateRange, InvalidStayType
from app.schemas.enums import StayType
from app.schemas.pricing import PriceCalculation
from app.schemas.rate import Rate

DAYS_PER_WEEK = 7
DAYS_PER_BILLING_MONTH = 30
WEEKLY_THRESHOLD_NIGHTS = 7
MONTHLY_THRESHOLD_NIGHTS = 28


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_percentage(amount: int, percentage: float) -> int:
    # str() keeps 11.0 as exactly 11, not its binary approximation.
    return round_half_up(Decimal(amount) * Decimal(str(percentage)) / Decimal(100))


def whole_days_between(check_in: date, check_out: date) -> int:
    return (check_out - check_in).days


def calendar_months_between(start: date, end: date) -> int:
    """Number of full calendar months from ``start`` to ``end``.

    A month is complete once ``end`` reaches the same day-of-month as
    ``start``. A one-month span that ends on the last day of a shorter month
    also counts as complete (Jan 31 -> Feb 29 is one month); longer spans
    get no such allowance (Jan 31 -> Apr 30 is two months).
    """
    if end <= start:
        return 0
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if months < 1:
        return 0
    last_month_short = end.day < start.day
    if months == 1 and end.day == calendar.monthrange(end.year, end.month)[1]:
        last_month_short = False
    return months - int(last_month_short)


def _parse_stay_type(stay_type: StayType | str) -> StayType:
    try:
        return StayType(stay_type)
    except ValueError:
        raise InvalidStayType(f"Invalid stay type: {stay_type}", stay_type=str(stay_type))


def billing_units(stay_type: StayType, nights: int, check_in: date, check_out: date) -> int:
    match stay_type:
        case StayType.DAILY:
            return nights
        case StayType.WEEKLY:
            return max(1, math.ceil(nights / DAYS_PER_WEEK))
        case StayType.MONTHLY:
            months = calendar_months_between(check_in, check_out)
            return max(1, months if months > 0 else math.ceil(nights / DAYS_PER_BILLING_MONTH))
        case _:
            raise InvalidStayType(f"Invalid stay type: {stay_type}", stay_type=str(stay_type))


def compute_price(
    rate: Rate,
    check_in: date,
    check_out: date,
    stay_type: StayType | str,
) -> PriceCalculation:
    """Turn a rate card entry and a date range into a price breakdown.

    Raises ``InvalidDateRange`` when check-out is not after check-in,
    ``InvalidStayType`` for an unknown cadence and ``BelowMinimumStay`` when
    the stay is shorter than the rate's minimum.
    """
    nights = whole_days_between(check_in, check_out)
    if nights <= 0:
        raise InvalidDateRange(
            "Check-out must be after check-in.",
            check_in=check_in.isoformat(),
            check_out=check_out.isoformat(),
        )

    resolved = _parse_stay_type(stay_type)
    units = billing_units(resolved, nights, check_in, check_out)

    if nights < rate.min_stay:
        raise BelowMinimumStay(
            f"Minimum stay for {resolved.value} is {rate.min_stay} nights.",
            nights=nights,
            min_stay=rate.min_stay,
        )

    base_price = rate.price * units
    tax_amount = apply_percentage(base_price, rate.tax_percentage)
    service_fee = rate.service_fee
    discount_amount = 0  # promo codes are not evaluated yet
    total_amount = base_price + tax_amount + service_fee - discount_amount
    deposit_amount = apply_percentage(total_amount, rate.deposit_percentage)

    return PriceCalculation(
        stay_type=resolved,
        nights=nights,
        units=units,
        base_price=base_price,
        tax_amount=tax_amount,
        service_fee=service_fee,
        discount_amount=discount_amount,
        total_amount=total_amount,
        deposit_amount=deposit_amount,
        rate=rate,
    )


def suggest_stay_type(nights: int) -> StayType:
    if nights >= MONTHLY_THRESHOLD_NIGHTS:
        return StayType.MONTHLY
    if nights >= WEEKLY_THRESHOLD_NIGHTS:
        return StayType.WEEKLY
    return StayType.DAILY
