"""Process-local implementation of ``BookingStore``.

Room claims are serialized by a per-room lock held across the overlap check
and the insert; ``io_delay`` inserts an await between the two so tests can
interleave concurrent claims the way a networked store would.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Collection, Mapping
from contextlib import AbstractAsyncContextManager
from datetime import date, datetime
from typing import Any

from app.core.clock import utcnow
from app.core.errors import DuplicateEvent, InvalidTransition, NotFound, RoomUnavailable
from app.db.locks import KeyedLocks
from app.db.store import BookingStore
from app.schemas.booking import Booking
from app.schemas.enums import BookingStatus, InvoiceStatus, StayType
from app.schemas.guest import Guest, GuestContact
from app.schemas.payment import Payment, PaymentEvent
from app.schemas.rate import Rate, RoomRateOverride
from app.schemas.room import AvailabilityBlock, Property, Room, RoomType
from app.services.availability import intervals_overlap


class InMemoryBookingStore(BookingStore):
    def __init__(self, io_delay: float = 0.0):
        self.io_delay = io_delay
        self._locks = KeyedLocks()
        self.properties: dict[str, Property] = {}
        self.room_types: dict[str, RoomType] = {}
        self.rooms: dict[str, Room] = {}
        self.rates: dict[str, Rate] = {}
        self.rate_overrides: dict[str, RoomRateOverride] = {}
        self.blocks: dict[str, AvailabilityBlock] = {}
        self.guests: dict[str, Guest] = {}
        self.bookings: dict[str, Booking] = {}
        self.payments: dict[str, Payment] = {}
        self.payment_events: dict[str, PaymentEvent] = {}

    # Seeding, used by external admin tooling and tests.

    def add_property(self, prop: Property) -> Property:
        self.properties[prop.id] = prop
        return prop

    def add_room_type(self, room_type: RoomType) -> RoomType:
        self.room_types[room_type.id] = room_type
        return room_type

    def add_room(self, room: Room) -> Room:
        self.rooms[room.id] = room
        return room

    def add_rate(self, rate: Rate) -> Rate:
        self.rates[rate.id] = rate
        return rate

    def add_rate_override(self, override: RoomRateOverride) -> RoomRateOverride:
        self.rate_overrides[override.id] = override
        return override

    def add_block(self, block: AvailabilityBlock) -> AvailabilityBlock:
        self.blocks[block.id] = block
        return block

    async def _io(self) -> None:
        await asyncio.sleep(self.io_delay)

    # Inventory reads

    async def get_room(self, room_id: str) -> Room | None:
        room = self.rooms.get(room_id)
        return room.model_copy() if room else None

    async def list_rooms(
        self, property_id: str | None = None, room_type_id: str | None = None
    ) -> list[Room]:
        rooms = [
            room
            for room in self.rooms.values()
            if (property_id is None or room.property_id == property_id)
            and (room_type_id is None or room.room_type_id == room_type_id)
        ]
        return [room.model_copy() for room in sorted(rooms, key=lambda r: r.room_number)]

    async def get_room_type(self, room_type_id: str) -> RoomType | None:
        return self.room_types.get(room_type_id)

    async def list_rates(self, room_type_id: str, stay_type: StayType) -> list[Rate]:
        return [
            rate
            for rate in self.rates.values()
            if rate.room_type_id == room_type_id and rate.stay_type == stay_type
        ]

    async def get_room_rate_override(
        self, room_id: str, stay_type: StayType
    ) -> RoomRateOverride | None:
        for override in self.rate_overrides.values():
            if override.room_id == room_id and override.stay_type == stay_type and override.is_active:
                return override
        return None

    async def list_overlapping_bookings(
        self, room_ids: Collection[str], check_in: date, check_out: date
    ) -> list[Booking]:
        wanted = set(room_ids)
        return [
            booking.model_copy()
            for booking in self.bookings.values()
            if booking.room_id in wanted
            and booking.occupies_inventory
            and intervals_overlap(booking.check_in, booking.check_out, check_in, check_out)
        ]

    async def list_overlapping_blocks(
        self, room_ids: Collection[str], check_in: date, check_out: date
    ) -> list[AvailabilityBlock]:
        wanted = set(room_ids)
        return [
            block
            for block in self.blocks.values()
            if block.room_id in wanted
            and intervals_overlap(block.start_date, block.end_date, check_in, check_out)
        ]

    # Bookings

    async def get_booking(self, booking_id: str) -> Booking | None:
        booking = self.bookings.get(booking_id)
        return booking.model_copy() if booking else None

    async def list_expired_holds(
        self, now: datetime, room_id: str | None = None
    ) -> list[Booking]:
        return [
            booking.model_copy()
            for booking in self.bookings.values()
            if booking.hold_expired(now) and (room_id is None or booking.room_id == room_id)
        ]

    async def claim_room(self, booking: Booking) -> Booking:
        async with self.serialize(f"room:{booking.room_id}"):
            conflicts = await self.list_overlapping_bookings(
                [booking.room_id], booking.check_in, booking.check_out
            )
            blocks = await self.list_overlapping_blocks(
                [booking.room_id], booking.check_in, booking.check_out
            )
            await self._io()
            if conflicts or blocks:
                raise RoomUnavailable(
                    "Room is no longer available for the selected dates.",
                    room_id=booking.room_id,
                )
            if booking.id in self.bookings:
                raise RoomUnavailable(f"Booking {booking.id} already exists.")
            self.bookings[booking.id] = booking.model_copy()
        return booking.model_copy()

    async def compare_and_set_booking(
        self,
        booking_id: str,
        *,
        expected_statuses: Collection[BookingStatus],
        changes: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> Booking:
        async with self.serialize(f"booking:{booking_id}"):
            current = self.bookings.get(booking_id)
            if current is None:
                raise NotFound(f"Booking {booking_id} not found.")
            if current.status not in expected_statuses:
                raise InvalidTransition(
                    f"Booking {booking_id} is {current.status.value}.",
                    booking_id=booking_id,
                )
            for field, value in (expected or {}).items():
                if getattr(current, field) != value:
                    raise InvalidTransition(
                        f"Booking {booking_id} changed concurrently ({field}).",
                        booking_id=booking_id,
                    )
            updated = Booking.model_validate({**current.model_dump(), **changes})
            self.bookings[booking_id] = updated
        return updated.model_copy()

    # Guests

    async def find_or_create_guest(self, contact: GuestContact) -> Guest:
        now = utcnow()
        for guest_id, guest in self.guests.items():
            if guest.email.lower() == contact.email.lower():
                update = {"full_name": contact.full_name, "phone": contact.phone, "updated_at": now}
                if contact.id_number:
                    update["id_number"] = contact.id_number
                refreshed = guest.model_copy(update=update)
                self.guests[guest_id] = refreshed
                return refreshed
        guest = Guest(
            id=str(uuid.uuid4()),
            full_name=contact.full_name,
            email=contact.email,
            phone=contact.phone,
            id_type=contact.id_type,
            id_number=contact.id_number,
            created_at=now,
            updated_at=now,
        )
        self.guests[guest.id] = guest
        return guest

    # Payments

    async def create_payment(self, payment: Payment) -> Payment:
        self.payments[payment.id] = payment
        return payment.model_copy()

    async def update_payment(self, payment_id: str, changes: Mapping[str, Any]) -> Payment:
        current = self.payments.get(payment_id)
        if current is None:
            raise NotFound(f"Payment {payment_id} not found.")
        updated = Payment.model_validate({**current.model_dump(), **changes})
        self.payments[payment_id] = updated
        return updated.model_copy()

    async def compare_and_set_payment(
        self,
        payment_id: str,
        *,
        expected_statuses: Collection[InvoiceStatus],
        changes: Mapping[str, Any],
    ) -> Payment | None:
        async with self.serialize(f"payment-row:{payment_id}"):
            current = self.payments.get(payment_id)
            if current is None or current.status not in expected_statuses:
                return None
            updated = Payment.model_validate({**current.model_dump(), **changes})
            self.payments[payment_id] = updated
        return updated.model_copy()

    async def get_payment_by_external_id(self, external_id: str) -> Payment | None:
        for payment in self.payments.values():
            if payment.external_id == external_id:
                return payment.model_copy()
        return None

    async def get_payment_by_invoice_id(self, invoice_id: str) -> Payment | None:
        for payment in self.payments.values():
            if payment.provider_invoice_id == invoice_id:
                return payment.model_copy()
        return None

    async def get_payment_event(self, provider_event_id: str) -> PaymentEvent | None:
        return self.payment_events.get(provider_event_id)

    async def record_payment_event(self, event: PaymentEvent) -> PaymentEvent:
        async with self.serialize(f"event:{event.provider_event_id}"):
            existing = self.payment_events.get(event.provider_event_id)
            if existing is not None:
                raise DuplicateEvent(existing)
            self.payment_events[event.provider_event_id] = event
        return event

    def serialize(self, key: str) -> AbstractAsyncContextManager[None]:
        return self._locks.hold(key)
