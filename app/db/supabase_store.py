"""``BookingStore`` over Supabase (PostgREST) using the ``app.crud`` queries.

Atomicity lives in the database: ``claim_room`` is a Postgres function
guarded by an exclusion constraint, booking transitions are conditional
updates, and ``payment_events.provider_event_id`` is unique. See
``supabase/migrations``.
"""

from __future__ import annotations

from collections.abc import Collection, Iterator, Mapping
from contextlib import AbstractAsyncContextManager, contextmanager
from datetime import date, datetime
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from app.crud import booking as booking_crud
from app.crud import guest as guest_crud
from app.crud import payment as payment_crud
from app.crud import rate as rate_crud
from app.crud import room as room_crud
from app.core.errors import (
    DuplicateEvent,
    InvalidTransition,
    NotFound,
    RoomUnavailable,
    StorageError,
)
from app.db.locks import KeyedLocks
from app.db.retry import retry_transient_reads
from app.db.store import BookingStore
from app.schemas.booking import Booking
from app.schemas.enums import BookingStatus, InvoiceStatus, StayType
from app.schemas.guest import Guest, GuestContact
from app.schemas.payment import Payment, PaymentEvent
from app.schemas.rate import Rate, RoomRateOverride
from app.schemas.room import AvailabilityBlock, Room, RoomType


UNIQUE_VIOLATION = "23505"
EXCLUSION_VIOLATION = "23P01"
ROOM_UNAVAILABLE_MESSAGE = "room_unavailable"


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except httpx.TransportError as exc:
        raise StorageError(f"{operation} failed: {exc}", transient=True) from exc
    except APIError as exc:
        raise StorageError(f"{operation} failed: {exc.message}", code=exc.code) from exc


def _to_json(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


def _row(changes: Mapping[str, Any]) -> dict[str, Any]:
    return {key: _to_json(value) for key, value in changes.items()}


class SupabaseBookingStore(BookingStore):
    def __init__(self, client: Client):
        self.client = client
        self._locks = KeyedLocks()

    # Inventory reads

    @retry_transient_reads()
    async def get_room(self, room_id: str) -> Room | None:
        with _storage_errors("get_room"):
            row = await room_crud.get_room_by_id(self.client, room_id)
        return Room.model_validate(row) if row else None

    @retry_transient_reads()
    async def list_rooms(
        self, property_id: str | None = None, room_type_id: str | None = None
    ) -> list[Room]:
        with _storage_errors("list_rooms"):
            rows = await room_crud.get_rooms(self.client, property_id, room_type_id)
        return [Room.model_validate(row) for row in rows]

    @retry_transient_reads()
    async def get_room_type(self, room_type_id: str) -> RoomType | None:
        with _storage_errors("get_room_type"):
            row = await room_crud.get_room_type_by_id(self.client, room_type_id)
        return RoomType.model_validate(row) if row else None

    @retry_transient_reads()
    async def list_rates(self, room_type_id: str, stay_type: StayType) -> list[Rate]:
        with _storage_errors("list_rates"):
            rows = await rate_crud.get_rates(self.client, room_type_id, stay_type.value)
        return [Rate.model_validate(row) for row in rows]

    @retry_transient_reads()
    async def get_room_rate_override(
        self, room_id: str, stay_type: StayType
    ) -> RoomRateOverride | None:
        with _storage_errors("get_room_rate_override"):
            row = await rate_crud.get_room_rate_override(self.client, room_id, stay_type.value)
        return RoomRateOverride.model_validate(row) if row else None

    @retry_transient_reads()
    async def list_overlapping_bookings(
        self, room_ids: Collection[str], check_in: date, check_out: date
    ) -> list[Booking]:
        with _storage_errors("list_overlapping_bookings"):
            rows = await booking_crud.get_overlapping_bookings(
                self.client, room_ids, check_in, check_out
            )
        return [Booking.model_validate(row) for row in rows]

    @retry_transient_reads()
    async def list_overlapping_blocks(
        self, room_ids: Collection[str], check_in: date, check_out: date
    ) -> list[AvailabilityBlock]:
        with _storage_errors("list_overlapping_blocks"):
            rows = await room_crud.get_overlapping_blocks(
                self.client, room_ids, check_in, check_out
            )
        return [AvailabilityBlock.model_validate(row) for row in rows]

    # Bookings

    @retry_transient_reads()
    async def get_booking(self, booking_id: str) -> Booking | None:
        with _storage_errors("get_booking"):
            row = await booking_crud.get_booking_by_id(self.client, booking_id)
        return Booking.model_validate(row) if row else None

    @retry_transient_reads()
    async def list_expired_holds(
        self, now: datetime, room_id: str | None = None
    ) -> list[Booking]:
        with _storage_errors("list_expired_holds"):
            rows = await booking_crud.get_expired_holds(self.client, now, room_id)
        return [Booking.model_validate(row) for row in rows]

    async def claim_room(self, booking: Booking) -> Booking:
        try:
            row = await booking_crud.claim_room(self.client, booking.model_dump(mode="json"))
        except APIError as exc:
            if exc.code == EXCLUSION_VIOLATION or ROOM_UNAVAILABLE_MESSAGE in (exc.message or ""):
                raise RoomUnavailable(
                    "Room is no longer available for the selected dates.",
                    room_id=booking.room_id,
                ) from exc
            raise StorageError(f"claim_room failed: {exc.message}", code=exc.code) from exc
        except httpx.TransportError as exc:
            # The claim is never retried: the outcome of the insert is unknown.
            raise StorageError(f"claim_room failed: {exc}") from exc
        return Booking.model_validate(row)

    async def compare_and_set_booking(
        self,
        booking_id: str,
        *,
        expected_statuses: Collection[BookingStatus],
        changes: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> Booking:
        with _storage_errors("compare_and_set_booking"):
            row = await booking_crud.update_booking_if(
                self.client,
                booking_id,
                [status.value for status in expected_statuses],
                _row(changes),
                _row(expected or {}),
            )
        if row is not None:
            return Booking.model_validate(row)

        current = await self.get_booking(booking_id)
        if current is None:
            raise NotFound(f"Booking {booking_id} not found.")
        raise InvalidTransition(
            f"Booking {booking_id} is {current.status.value} or changed concurrently.",
            booking_id=booking_id,
        )

    # Guests

    async def find_or_create_guest(self, contact: GuestContact) -> Guest:
        with _storage_errors("find_or_create_guest"):
            row = await guest_crud.find_or_create_guest(
                self.client,
                full_name=contact.full_name,
                email=contact.email,
                phone=contact.phone,
                id_type=contact.id_type,
                id_number=contact.id_number,
            )
        return Guest.model_validate(row)

    # Payments

    async def create_payment(self, payment: Payment) -> Payment:
        with _storage_errors("create_payment"):
            row = await payment_crud.create_payment(self.client, payment.model_dump(mode="json"))
        return Payment.model_validate(row)

    async def update_payment(self, payment_id: str, changes: Mapping[str, Any]) -> Payment:
        with _storage_errors("update_payment"):
            row = await payment_crud.update_payment(self.client, payment_id, _row(changes))
        if row is None:
            raise NotFound(f"Payment {payment_id} not found.")
        return Payment.model_validate(row)

    async def compare_and_set_payment(
        self,
        payment_id: str,
        *,
        expected_statuses: Collection[InvoiceStatus],
        changes: Mapping[str, Any],
    ) -> Payment | None:
        with _storage_errors("compare_and_set_payment"):
            row = await payment_crud.update_payment_if(
                self.client,
                payment_id,
                [status.value for status in expected_statuses],
                _row(changes),
            )
        return Payment.model_validate(row) if row else None

    @retry_transient_reads()
    async def get_payment_by_external_id(self, external_id: str) -> Payment | None:
        with _storage_errors("get_payment_by_external_id"):
            row = await payment_crud.get_payment_by_external_id(self.client, external_id)
        return Payment.model_validate(row) if row else None

    @retry_transient_reads()
    async def get_payment_by_invoice_id(self, invoice_id: str) -> Payment | None:
        with _storage_errors("get_payment_by_invoice_id"):
            row = await payment_crud.get_payment_by_invoice_id(self.client, invoice_id)
        return Payment.model_validate(row) if row else None

    @retry_transient_reads()
    async def get_payment_event(self, provider_event_id: str) -> PaymentEvent | None:
        with _storage_errors("get_payment_event"):
            row = await payment_crud.get_payment_event(self.client, provider_event_id)
        return PaymentEvent.model_validate(row) if row else None

    async def record_payment_event(self, event: PaymentEvent) -> PaymentEvent:
        try:
            row = await payment_crud.insert_payment_event(
                self.client, event.model_dump(mode="json")
            )
        except APIError as exc:
            if exc.code != UNIQUE_VIOLATION:
                raise StorageError(
                    f"record_payment_event failed: {exc.message}", code=exc.code
                ) from exc
            existing = await self.get_payment_event(event.provider_event_id)
            if existing is None:
                raise StorageError(
                    f"Payment event {event.provider_event_id} conflicted but cannot be read back."
                ) from exc
            raise DuplicateEvent(existing) from exc
        except httpx.TransportError as exc:
            raise StorageError(f"record_payment_event failed: {exc}", transient=True) from exc
        return PaymentEvent.model_validate(row)

    def serialize(self, key: str) -> AbstractAsyncContextManager[None]:
        # In-process only; cross-process safety comes from the database constraints.
        return self._locks.hold(key)
