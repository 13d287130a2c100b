"""Applies payment-provider notifications to bookings.

Webhook delivery is at-least-once and unordered. Each event is recorded
under its provider event id together with the outcome it produced; a
redelivery returns that stored outcome and changes nothing. Events for the
same invoice are applied one at a time within a process. Across processes
the invoice row is the arbiter: a payment is credited only by the worker
whose compare-and-set moves the invoice to paid, and every booking change
goes through the state machine's compare-and-set transitions.
"""

from __future__ import annotations

import logging
from datetime import datetime

from app.core.clock import Clock, utcnow
from app.core.config import PaymentMismatchPolicy
from app.core.errors import DuplicateEvent, InvalidTransition
from app.db.store import BookingStore
from app.schemas.booking import Booking
from app.schemas.enums import (
    BookingStatus,
    InvoiceStatus,
    PaymentEventStatus,
    PaymentMethod,
    ReconcileResult,
)
from app.schemas.payment import Payment, PaymentEvent, ReconcileOutcome, XenditInvoiceCallback
from app.services.booking_state import PAYMENT_FAILED_REASON, BookingStateMachine
from app.services.xendit import map_invoice_status, map_payment_channel

logger = logging.getLogger(__name__)

# A lost booking compare-and-set is re-evaluated against the fresh booking.
MAX_APPLY_ATTEMPTS = 3

UNSETTLED_INVOICE_STATUSES = frozenset(
    {InvoiceStatus.PENDING, InvoiceStatus.EXPIRED, InvoiceStatus.FAILED}
)


def event_id_for(callback: XenditInvoiceCallback) -> str:
    if callback.event_id:
        return callback.event_id
    return f"{callback.id}:{callback.status.strip().upper()}"


def event_from_callback(
    callback: XenditInvoiceCallback, received_at: datetime
) -> PaymentEvent | None:
    """Normalize an invoice callback; statuses that settle nothing give None."""
    status = map_invoice_status(callback.status)
    if status is None:
        return None
    amount = callback.paid_amount if callback.paid_amount is not None else callback.amount
    return PaymentEvent(
        provider_event_id=event_id_for(callback),
        external_id=callback.external_id,
        provider_invoice_id=callback.id,
        status=status,
        amount=amount,
        channel=callback.payment_channel or callback.payment_method,
        paid_at=callback.paid_at,
        received_at=received_at,
    )


class PaymentReconciler:
    def __init__(
        self,
        store: BookingStore,
        state_machine: BookingStateMachine,
        mismatch_policy: PaymentMismatchPolicy = PaymentMismatchPolicy.REJECT,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.state_machine = state_machine
        self.mismatch_policy = mismatch_policy
        self.clock = clock

    async def handle_callback(self, callback: XenditInvoiceCallback) -> ReconcileOutcome:
        event = event_from_callback(callback, self.clock())
        if event is None:
            logger.info("Ignoring Xendit invoice %s with status %s", callback.id, callback.status)
            return ReconcileOutcome(
                event_id=event_id_for(callback),
                result=ReconcileResult.IGNORED,
                detail=f"Status {callback.status} does not settle the invoice.",
            )
        return await self.handle_event(event)

    async def handle_event(self, event: PaymentEvent) -> ReconcileOutcome:
        stored = await self.store.get_payment_event(event.provider_event_id)
        if stored is not None:
            return self._replay(stored)

        reference = event.external_id or event.provider_invoice_id or event.provider_event_id
        async with self.store.serialize(f"payment:{reference}"):
            stored = await self.store.get_payment_event(event.provider_event_id)
            if stored is not None:
                return self._replay(stored)

            outcome = await self._apply(event)
            if outcome.duplicate:
                return outcome
            try:
                await self.store.record_payment_event(event.model_copy(update={"outcome": outcome}))
            except DuplicateEvent as exc:
                return self._replay(exc.existing)
        return outcome

    def _replay(self, stored: PaymentEvent) -> ReconcileOutcome:
        logger.info("Duplicate payment event %s", stored.provider_event_id)
        if stored.outcome is None:
            return ReconcileOutcome(
                event_id=stored.provider_event_id,
                result=ReconcileResult.IGNORED,
                duplicate=True,
            )
        return stored.outcome.model_copy(update={"duplicate": True})

    async def _find_payment(self, event: PaymentEvent) -> Payment | None:
        payment = None
        if event.external_id:
            payment = await self.store.get_payment_by_external_id(event.external_id)
        if payment is None and event.provider_invoice_id:
            payment = await self.store.get_payment_by_invoice_id(event.provider_invoice_id)
        return payment

    async def _apply(self, event: PaymentEvent) -> ReconcileOutcome:
        payment = await self._find_payment(event)
        booking = await self.store.get_booking(payment.booking_id) if payment else None
        if payment is None or booking is None:
            logger.warning(
                "Payment event %s references unknown invoice %s / %s",
                event.provider_event_id,
                event.external_id,
                event.provider_invoice_id,
            )
            return ReconcileOutcome(
                event_id=event.provider_event_id,
                result=ReconcileResult.NOT_FOUND,
                detail="No booking matches this invoice.",
            )

        if event.status == PaymentEventStatus.PAID:
            return await self._apply_paid(event, payment, booking)
        return await self._apply_unpaid(event, payment, booking)

    def _outcome(
        self,
        event: PaymentEvent,
        result: ReconcileResult,
        booking: Booking,
        **extra,
    ) -> ReconcileOutcome:
        return ReconcileOutcome(
            event_id=event.provider_event_id,
            result=result,
            booking_id=booking.id,
            booking_status=booking.status,
            **extra,
        )

    def _already_settled(
        self, event: PaymentEvent, booking: Booking, method: PaymentMethod
    ) -> ReconcileOutcome:
        return self._outcome(
            event,
            ReconcileResult.IGNORED,
            booking,
            payment_method=method,
            duplicate=True,
            detail="Invoice already settled.",
        )

    async def _apply_paid(
        self, event: PaymentEvent, payment: Payment, booking: Booking
    ) -> ReconcileOutcome:
        method = map_payment_channel(event.channel)
        if payment.status == InvoiceStatus.PAID:
            return self._already_settled(event, booking, method)

        amount = event.amount if event.amount is not None else payment.amount
        mismatch = amount != payment.amount
        if mismatch:
            logger.warning(
                "Payment mismatch on booking %s: invoice %s expected %d, received %d",
                booking.booking_code,
                payment.external_id,
                payment.amount,
                amount,
            )
        if (
            booking.status == BookingStatus.PENDING
            and amount < payment.amount
            and self.mismatch_policy == PaymentMismatchPolicy.REJECT
        ):
            return self._outcome(
                event,
                ReconcileResult.PAYMENT_MISMATCH,
                booking,
                payment_method=method,
                amount_mismatch=True,
                detail=(
                    f"Booking {booking.booking_code} received {amount}, "
                    f"expected {payment.amount}."
                ),
            )

        # Only the worker that moves the invoice to paid may credit the booking.
        settled = await self.store.compare_and_set_payment(
            payment.id,
            expected_statuses=UNSETTLED_INVOICE_STATUSES,
            changes={
                "status": InvoiceStatus.PAID,
                "method": method,
                "payment_channel": event.channel,
                "paid_at": event.paid_at or event.received_at,
            },
        )
        if settled is None:
            return self._already_settled(event, booking, method)

        for _ in range(MAX_APPLY_ATTEMPTS):
            try:
                return await self._credit_booking(event, booking, amount, method, mismatch)
            except InvalidTransition as exc:
                logger.info(
                    "Booking %s changed while applying %s, re-evaluating: %s",
                    booking.id,
                    event.provider_event_id,
                    exc,
                )
                booking = await self.state_machine.get(booking.id)

        logger.error(
            "Payment of %d on invoice %s could not be credited to booking %s",
            amount,
            payment.external_id,
            booking.booking_code,
        )
        return self._outcome(
            event,
            ReconcileResult.IGNORED,
            booking,
            payment_method=method,
            amount_mismatch=mismatch,
            detail="Booking kept changing concurrently; payment needs manual review.",
        )

    async def _credit_booking(
        self,
        event: PaymentEvent,
        booking: Booking,
        amount: int,
        method: PaymentMethod,
        mismatch: bool,
    ) -> ReconcileOutcome:
        match booking.status:
            case BookingStatus.PENDING:
                updated = await self.state_machine.confirm(booking.id, amount)
                return self._outcome(
                    event,
                    ReconcileResult.CONFIRMED,
                    updated,
                    payment_method=method,
                    amount_mismatch=mismatch,
                )
            case BookingStatus.CONFIRMED | BookingStatus.CHECKED_IN:
                updated = await self.state_machine.record_payment(booking.id, amount)
                return self._outcome(
                    event,
                    ReconcileResult.PAYMENT_RECORDED,
                    updated,
                    payment_method=method,
                    amount_mismatch=mismatch,
                )
            case _:
                logger.warning(
                    "Late payment of %d for %s booking %s; refund required",
                    amount,
                    booking.status.value,
                    booking.booking_code,
                )
                return self._outcome(
                    event,
                    ReconcileResult.LATE_PAYMENT,
                    booking,
                    payment_method=method,
                    amount_mismatch=mismatch,
                    detail="Payment received after the booking ended; refund required.",
                )

    async def _apply_unpaid(
        self, event: PaymentEvent, payment: Payment, booking: Booking
    ) -> ReconcileOutcome:
        invoice_status = (
            InvoiceStatus.EXPIRED
            if event.status == PaymentEventStatus.EXPIRED
            else InvoiceStatus.FAILED
        )
        if payment.status == InvoiceStatus.PENDING:
            updated_payment = await self.store.compare_and_set_payment(
                payment.id,
                expected_statuses={InvoiceStatus.PENDING},
                changes={"status": invoice_status},
            )
            payment = updated_payment or await self._find_payment(event) or payment
        if payment.status == InvoiceStatus.PAID:
            return self._outcome(
                event, ReconcileResult.IGNORED, booking, detail="Invoice was paid."
            )

        if booking.status == BookingStatus.PENDING:
            try:
                if event.status == PaymentEventStatus.EXPIRED:
                    updated = await self.state_machine.expire_pending(
                        booking.id, event.received_at, force=True
                    )
                else:
                    updated = await self.state_machine.cancel(booking.id, PAYMENT_FAILED_REASON)
                return self._outcome(event, ReconcileResult.CANCELLED, updated)
            except InvalidTransition:
                booking = await self.state_machine.get(booking.id)

        return self._outcome(
            event,
            ReconcileResult.IGNORED,
            booking,
            detail=f"Booking is already {booking.status.value}.",
        )
