from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from app.schemas.enums import BookingStatus, PaymentMethodType, PaymentStatus, StayType
from app.schemas.guest import GuestContact

ACTIVE_BOOKING_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN}
)


class Booking(BaseModel):
    id: str
    booking_code: str
    room_id: str
    property_id: str
    guest_id: str
    check_in: date
    check_out: date
    stay_type: StayType
    num_guests: int = 1
    special_requests: str | None = None
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_method_type: PaymentMethodType = PaymentMethodType.ONLINE
    rate_id: str | None = None
    base_price: int
    tax_amount: int
    service_fee: int
    discount_amount: int = 0
    total_amount: int
    deposit_amount: int
    paid_amount: int = 0
    hold_expires_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    checked_in_at: datetime | None = None
    checked_out_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def occupies_inventory(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    def hold_expired(self, now: datetime) -> bool:
        return (
            self.status == BookingStatus.PENDING
            and self.hold_expires_at is not None
            and self.hold_expires_at <= now
        )


class BookingCreate(BaseModel):
    room_id: str
    guest: GuestContact
    check_in: date
    check_out: date
    stay_type: StayType | None = None
    num_guests: int = Field(..., ge=1, le=10)
    special_requests: str | None = Field(None, max_length=500)
    payment_method_type: PaymentMethodType = PaymentMethodType.ONLINE


class BookingCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class BookingCreatedResponse(BaseModel):
    id: str
    booking_code: str
    status: BookingStatus
    total_amount: int
    deposit_amount: int
    payment_method_type: PaymentMethodType
    hold_expires_at: datetime | None = None
    payment_url: str | None = None


class BookingResponse(BaseModel):
    id: str
    booking_code: str
    room_id: str
    property_id: str
    guest_id: str
    check_in: date
    check_out: date
    stay_type: StayType
    num_guests: int
    status: BookingStatus
    payment_status: PaymentStatus
    payment_method_type: PaymentMethodType
    base_price: int
    tax_amount: int
    service_fee: int
    discount_amount: int
    total_amount: int
    deposit_amount: int
    paid_amount: int
    hold_expires_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    checked_in_at: datetime | None = None
    checked_out_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
