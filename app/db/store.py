"""Storage interface the booking engine depends on.

The engine never touches a concrete datastore. Implementations must provide
the transactional primitives below on top of plain reads:

* ``claim_room``: overlap check and insert of a new pending booking as one
  atomic unit per room. Concurrent overlapping claims yield exactly one
  success; every other caller gets ``RoomUnavailable``.
* ``compare_and_set_booking``: update a booking only if its current status
  (and optionally other fields) still match what the caller read.
* ``compare_and_set_payment``: the same guard on an invoice row. Settling an
  invoice this way lets exactly one worker credit its amount to a booking.

Payment events are write-once: ``record_payment_event`` raises
``DuplicateEvent`` when the provider event id is already stored.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection, Mapping
from contextlib import AbstractAsyncContextManager
from datetime import date, datetime
from typing import Any

from app.schemas.booking import Booking
from app.schemas.enums import BookingStatus, InvoiceStatus, StayType
from app.schemas.guest import Guest, GuestContact
from app.schemas.payment import Payment, PaymentEvent
from app.schemas.rate import Rate, RoomRateOverride
from app.schemas.room import AvailabilityBlock, Room, RoomType


class BookingStore(ABC):
    # Inventory reads

    @abstractmethod
    async def get_room(self, room_id: str) -> Room | None: ...

    @abstractmethod
    async def list_rooms(
        self, property_id: str | None = None, room_type_id: str | None = None
    ) -> list[Room]: ...

    @abstractmethod
    async def get_room_type(self, room_type_id: str) -> RoomType | None: ...

    @abstractmethod
    async def list_rates(self, room_type_id: str, stay_type: StayType) -> list[Rate]: ...

    @abstractmethod
    async def get_room_rate_override(
        self, room_id: str, stay_type: StayType
    ) -> RoomRateOverride | None: ...

    @abstractmethod
    async def list_overlapping_bookings(
        self, room_ids: Collection[str], check_in: date, check_out: date
    ) -> list[Booking]:
        """Bookings in an active status whose stay overlaps [check_in, check_out)."""

    @abstractmethod
    async def list_overlapping_blocks(
        self, room_ids: Collection[str], check_in: date, check_out: date
    ) -> list[AvailabilityBlock]: ...

    # Bookings

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Booking | None: ...

    @abstractmethod
    async def list_expired_holds(
        self, now: datetime, room_id: str | None = None
    ) -> list[Booking]:
        """Pending bookings whose hold expiry is at or before ``now``."""

    @abstractmethod
    async def claim_room(self, booking: Booking) -> Booking: ...

    @abstractmethod
    async def compare_and_set_booking(
        self,
        booking_id: str,
        *,
        expected_statuses: Collection[BookingStatus],
        changes: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> Booking:
        """Apply ``changes`` atomically if the booking still matches.

        Raises ``NotFound`` for an unknown booking and ``InvalidTransition``
        when the stored status or ``expected`` fields no longer match.
        """

    # Guests

    @abstractmethod
    async def find_or_create_guest(self, contact: GuestContact) -> Guest: ...

    # Payments

    @abstractmethod
    async def create_payment(self, payment: Payment) -> Payment: ...

    @abstractmethod
    async def update_payment(self, payment_id: str, changes: Mapping[str, Any]) -> Payment: ...

    @abstractmethod
    async def compare_and_set_payment(
        self,
        payment_id: str,
        *,
        expected_statuses: Collection[InvoiceStatus],
        changes: Mapping[str, Any],
    ) -> Payment | None:
        """Apply ``changes`` if the invoice status is still one of ``expected_statuses``.

        Returns None when the payment is missing or already moved on.
        """

    @abstractmethod
    async def get_payment_by_external_id(self, external_id: str) -> Payment | None: ...

    @abstractmethod
    async def get_payment_by_invoice_id(self, invoice_id: str) -> Payment | None: ...

    @abstractmethod
    async def get_payment_event(self, provider_event_id: str) -> PaymentEvent | None: ...

    @abstractmethod
    async def record_payment_event(self, event: PaymentEvent) -> PaymentEvent: ...

    # Serialization

    @abstractmethod
    def serialize(self, key: str) -> AbstractAsyncContextManager[None]:
        """Serialization point for work keyed by ``key`` (a room or booking)."""
