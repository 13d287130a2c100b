"""Booking lifecycle.

    pending -> confirmed -> checked_in -> checked_out
    pending | confirmed -> cancelled
    confirmed -> no_show

Every transition is a compare-and-set against the stored status, so a
transition either applies completely or raises ``InvalidTransition`` and
leaves the booking untouched. The state machine is the only writer of
booking state besides the room claim that creates the record.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from app.core.clock import Clock, utcnow
from app.core.config import Settings
from app.core.errors import (
    InvalidDateRange,
    InvalidParameters,
    InvalidTransition,
    NotFound,
    PaymentMismatch,
    PaymentProviderError,
    RoomUnavailable,
)
from app.db.store import BookingStore
from app.schemas.booking import Booking, BookingCreate
from app.schemas.enums import (
    BookingStatus,
    InvoiceStatus,
    PaymentMethod,
    PaymentMethodType,
    PaymentStatus,
)
from app.schemas.guest import Guest
from app.schemas.payment import InvoiceRequest, Payment
from app.schemas.pricing import PriceCalculation
from app.services.availability import AvailabilityResolver
from app.services.pricing import compute_price, suggest_stay_type, whole_days_between
from app.services.rates import RateResolver
from app.services.xendit import PaymentGateway

logger = logging.getLogger(__name__)

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.CHECKED_IN, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.CHECKED_OUT}),
    BookingStatus.CHECKED_OUT: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

PAYMENT_EXPIRED_REASON = "payment_expired"
PAYMENT_FAILED_REASON = "payment_failed"

# Request latency between the claim and the provider stamping its expiry.
INVOICE_EXPIRY_GRACE = timedelta(minutes=5)


def payment_status_for(paid_amount: int, total_amount: int) -> PaymentStatus:
    if paid_amount <= 0:
        return PaymentStatus.UNPAID
    if paid_amount >= total_amount:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


def generate_booking_code(now: datetime) -> str:
    return f"BK{now:%y%m%d}-{secrets.token_hex(3).upper()}"


def invoice_amount_for(method_type: PaymentMethodType, pricing: PriceCalculation) -> int:
    if method_type == PaymentMethodType.DP_ONLINE and pricing.deposit_amount > 0:
        return pricing.deposit_amount
    return pricing.total_amount


def external_id_for(booking_id: str, method_type: PaymentMethodType) -> str:
    if method_type == PaymentMethodType.DP_ONLINE:
        return f"booking-{booking_id}-dp"
    return f"booking-{booking_id}"


@dataclass
class CreatedBooking:
    booking: Booking
    pricing: PriceCalculation
    payment: Payment | None = None

    @property
    def payment_url(self) -> str | None:
        return self.payment.invoice_url if self.payment else None


class BookingStateMachine:
    def __init__(
        self,
        store: BookingStore,
        gateway: PaymentGateway,
        settings: Settings,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.gateway = gateway
        self.settings = settings
        self.clock = clock
        self.rates = RateResolver(store)
        self.availability = AvailabilityResolver(store, clock)

    # Creation

    async def create(self, request: BookingCreate) -> CreatedBooking:
        """Validate, price and claim a room, then request payment.

        The booking and its inventory claim come into existence together in
        ``pending``. Pay-at-property bookings are confirmed immediately since
        no invoice will ever settle them.
        """
        now = self.clock()
        room = await self.store.get_room(request.room_id)
        if room is None or not room.is_active:
            raise NotFound("Room not found.", room_id=request.room_id)
        if not room.is_bookable:
            raise RoomUnavailable(
                f"Room {room.room_number} is {room.status.value} and cannot be booked.",
                room_id=room.id,
            )

        nights = whole_days_between(request.check_in, request.check_out)
        if nights <= 0:
            raise InvalidDateRange("Check-out must be after check-in.")
        if request.check_in < now.date():
            raise InvalidDateRange("Check-in date cannot be in the past.")

        room_type = await self.store.get_room_type(room.room_type_id)
        if room_type is not None and request.num_guests > room_type.max_guests:
            raise InvalidParameters(
                f"Room type {room_type.name} sleeps at most {room_type.max_guests} guests."
            )

        stay_type = request.stay_type or suggest_stay_type(nights)
        rate = await self.rates.resolve(room, stay_type, request.check_in)
        pricing = compute_price(rate, request.check_in, request.check_out, stay_type)

        if not await self.availability.is_room_available(
            room.id, request.check_in, request.check_out
        ):
            raise RoomUnavailable(
                "Room is no longer available for the selected dates.", room_id=room.id
            )

        guest = await self.store.find_or_create_guest(request.guest)
        await self._release_stale_holds(room.id, now)

        booking = await self.store.claim_room(
            Booking(
                id=str(uuid.uuid4()),
                booking_code=generate_booking_code(now),
                room_id=room.id,
                property_id=room.property_id,
                guest_id=guest.id,
                check_in=request.check_in,
                check_out=request.check_out,
                stay_type=pricing.stay_type,
                num_guests=request.num_guests,
                special_requests=request.special_requests,
                status=BookingStatus.PENDING,
                payment_status=PaymentStatus.UNPAID,
                payment_method_type=request.payment_method_type,
                rate_id=rate.id,
                base_price=pricing.base_price,
                tax_amount=pricing.tax_amount,
                service_fee=pricing.service_fee,
                discount_amount=pricing.discount_amount,
                total_amount=pricing.total_amount,
                deposit_amount=pricing.deposit_amount,
                paid_amount=0,
                hold_expires_at=now + timedelta(seconds=self.settings.invoice_duration_seconds),
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(
            "Booking %s (%s) claimed room %s for %s..%s, total %d",
            booking.id,
            booking.booking_code,
            room.id,
            booking.check_in,
            booking.check_out,
            booking.total_amount,
        )

        if request.payment_method_type == PaymentMethodType.PAY_AT_PROPERTY:
            payment = await self.store.create_payment(
                Payment(
                    id=str(uuid.uuid4()),
                    booking_id=booking.id,
                    amount=pricing.total_amount,
                    method=PaymentMethod.CASH,
                    created_at=now,
                )
            )
            booking = await self._transition(
                booking, BookingStatus.CONFIRMED, {"hold_expires_at": None}
            )
            return CreatedBooking(booking=booking, pricing=pricing, payment=payment)

        payment = await self._request_invoice(booking, guest, pricing, request.payment_method_type)
        if payment is not None and payment.expires_at is not None:
            booking = await self._follow_invoice_expiry(booking, payment.expires_at, now)
        return CreatedBooking(booking=booking, pricing=pricing, payment=payment)

    async def _release_stale_holds(self, room_id: str, now: datetime) -> None:
        for stale in await self.store.list_expired_holds(now, room_id=room_id):
            try:
                await self.expire_pending(stale.id, now=now)
            except InvalidTransition:
                logger.info("Stale hold %s already left pending", stale.id)

    async def _request_invoice(
        self,
        booking: Booking,
        guest: Guest,
        pricing: PriceCalculation,
        method_type: PaymentMethodType,
    ) -> Payment | None:
        amount = invoice_amount_for(method_type, pricing)
        external_id = external_id_for(booking.id, method_type)
        base_url = self.settings.app_url.rstrip("/")
        if method_type == PaymentMethodType.DP_ONLINE:
            description = (
                f"Deposit for booking {booking.booking_code} (balance payable at the property)"
            )
        else:
            description = f"Payment for booking {booking.booking_code}"

        try:
            invoice = await self.gateway.create_invoice(
                InvoiceRequest(
                    external_id=external_id,
                    amount=amount,
                    payer_email=guest.email,
                    description=description,
                    success_redirect_url=f"{base_url}/booking/{booking.id}/confirmation",
                    failure_redirect_url=f"{base_url}/booking/{booking.id}",
                    customer_name=guest.full_name,
                    customer_phone=guest.phone,
                )
            )
        except PaymentProviderError as exc:
            # The hold stays bounded by hold_expires_at and is swept later.
            logger.error("Invoice creation failed for booking %s: %s", booking.id, exc)
            return None

        return await self.store.create_payment(
            Payment(
                id=str(uuid.uuid4()),
                booking_id=booking.id,
                external_id=external_id,
                provider_invoice_id=invoice.id,
                invoice_url=invoice.invoice_url,
                amount=amount,
                status=InvoiceStatus.PENDING,
                expires_at=invoice.expiry_date,
                created_at=self.clock(),
            )
        )

    async def _follow_invoice_expiry(
        self, booking: Booking, invoice_expires_at: datetime, claimed_at: datetime
    ) -> Booking:
        """Keep the hold open exactly as long as its invoice can be paid.

        The provider stamps its expiry after the claim, so the hold may move
        later, but never past the configured window plus ``INVOICE_EXPIRY_GRACE``.
        """
        latest = (
            claimed_at
            + timedelta(seconds=self.settings.invoice_duration_seconds)
            + INVOICE_EXPIRY_GRACE
        )
        expires_at = min(invoice_expires_at, latest)
        if expires_at == booking.hold_expires_at:
            return booking
        try:
            return await self.store.compare_and_set_booking(
                booking.id,
                expected_statuses={BookingStatus.PENDING},
                changes={"hold_expires_at": expires_at, "updated_at": self.clock()},
            )
        except InvalidTransition:
            logger.info("Booking %s left pending before its hold could follow the invoice", booking.id)
            return await self.get(booking.id)

    # Transitions

    async def get(self, booking_id: str) -> Booking:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found.", booking_id=booking_id)
        return booking

    async def _transition(
        self,
        booking: Booking,
        target: BookingStatus,
        changes: dict[str, Any] | None = None,
        expected: dict[str, Any] | None = None,
    ) -> Booking:
        if target not in TRANSITIONS[booking.status]:
            raise InvalidTransition(
                f"Cannot move booking {booking.booking_code} from "
                f"{booking.status.value} to {target.value}.",
                booking_id=booking.id,
                status=booking.status.value,
                target=target.value,
            )
        updated = await self.store.compare_and_set_booking(
            booking.id,
            expected_statuses={booking.status},
            changes={**(changes or {}), "status": target, "updated_at": self.clock()},
            expected=expected,
        )
        logger.info(
            "Booking %s: %s -> %s", booking.booking_code, booking.status.value, target.value
        )
        return updated

    async def confirm(
        self, booking_id: str, paid_amount: int, *, required_amount: int | None = None
    ) -> Booking:
        """pending -> confirmed once a payment arrives.

        With ``required_amount`` set, a smaller payment raises
        ``PaymentMismatch`` and the booking stays pending.
        """
        booking = await self.get(booking_id)
        if booking.status != BookingStatus.PENDING:
            return await self._transition(booking, BookingStatus.CONFIRMED)
        if required_amount is not None and paid_amount < required_amount:
            raise PaymentMismatch(
                f"Booking {booking.booking_code} received {paid_amount}, "
                f"expected {required_amount}.",
                expected=required_amount,
                received=paid_amount,
                booking_id=booking.id,
            )
        total_paid = booking.paid_amount + paid_amount
        return await self._transition(
            booking,
            BookingStatus.CONFIRMED,
            {
                "paid_amount": total_paid,
                "payment_status": payment_status_for(total_paid, booking.total_amount),
                "hold_expires_at": None,
            },
            expected={"paid_amount": booking.paid_amount},
        )

    async def record_payment(self, booking_id: str, amount: int) -> Booking:
        """Add a payment to a confirmed or checked-in booking without moving it."""
        booking = await self.get(booking_id)
        if booking.status not in (BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN):
            raise InvalidTransition(
                f"Cannot record a payment on a {booking.status.value} booking.",
                booking_id=booking.id,
            )
        total_paid = booking.paid_amount + amount
        updated = await self.store.compare_and_set_booking(
            booking.id,
            expected_statuses={booking.status},
            changes={
                "paid_amount": total_paid,
                "payment_status": payment_status_for(total_paid, booking.total_amount),
                "updated_at": self.clock(),
            },
            expected={"paid_amount": booking.paid_amount},
        )
        logger.info("Booking %s: recorded payment of %d", booking.booking_code, amount)
        return updated

    async def check_in(self, booking_id: str, today: date | None = None) -> Booking:
        booking = await self.get(booking_id)
        today = today or self.clock().date()
        if booking.status == BookingStatus.CONFIRMED and today < booking.check_in:
            raise InvalidTransition(
                f"Booking {booking.booking_code} cannot check in before {booking.check_in}.",
                booking_id=booking.id,
            )
        return await self._transition(
            booking, BookingStatus.CHECKED_IN, {"checked_in_at": self.clock()}
        )

    async def check_out(self, booking_id: str) -> Booking:
        booking = await self.get(booking_id)
        return await self._transition(
            booking, BookingStatus.CHECKED_OUT, {"checked_out_at": self.clock()}
        )

    async def cancel(self, booking_id: str, reason: str) -> Booking:
        if not reason or not reason.strip():
            raise InvalidParameters("A cancellation reason is required.")
        booking = await self.get(booking_id)
        return await self._transition(
            booking,
            BookingStatus.CANCELLED,
            {
                "cancellation_reason": reason.strip(),
                "cancelled_at": self.clock(),
                "hold_expires_at": None,
            },
        )

    async def mark_no_show(self, booking_id: str, today: date | None = None) -> Booking:
        booking = await self.get(booking_id)
        today = today or self.clock().date()
        if booking.status == BookingStatus.CONFIRMED and today <= booking.check_in:
            raise InvalidTransition(
                f"Booking {booking.booking_code} can only be a no-show after {booking.check_in}.",
                booking_id=booking.id,
            )
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidTransition(
                f"Only confirmed bookings can be marked no-show; "
                f"{booking.booking_code} is {booking.status.value}.",
                booking_id=booking.id,
            )
        return await self._transition(booking, BookingStatus.NO_SHOW)

    async def expire_pending(
        self, booking_id: str, now: datetime | None = None, *, force: bool = False
    ) -> Booking:
        """Cancel an unpaid hold with reason ``payment_expired``.

        Without ``force`` the hold must actually be past its expiry.
        """
        booking = await self.get(booking_id)
        now = now or self.clock()
        if booking.status != BookingStatus.PENDING:
            raise InvalidTransition(
                f"Booking {booking.booking_code} is {booking.status.value}, not pending.",
                booking_id=booking.id,
            )
        if not force and not booking.hold_expired(now):
            raise InvalidTransition(
                f"Hold on booking {booking.booking_code} is still valid.",
                booking_id=booking.id,
            )
        return await self._transition(
            booking,
            BookingStatus.CANCELLED,
            {
                "cancellation_reason": PAYMENT_EXPIRED_REASON,
                "cancelled_at": now,
                "hold_expires_at": None,
            },
        )
