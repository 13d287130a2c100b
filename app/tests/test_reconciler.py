from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from app.core.config import PaymentMismatchPolicy
from app.schemas.booking import BookingCreate
from app.schemas.enums import (
    BookingStatus,
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
    ReconcileResult,
)
from app.schemas.payment import XenditInvoiceCallback
from app.services.booking_state import BookingStateMachine
from app.services.reconciler import PaymentReconciler, event_from_callback, event_id_for
from app.tests.fakes import WorkerStore


def _run(coro):
    return asyncio.run(coro)


def _create(machine, booking_request, **overrides):
    payload = {**booking_request, **overrides}
    return _run(machine.create(BookingCreate.model_validate(payload)))


def _callback(created, status="PAID", amount=None, **extra) -> XenditInvoiceCallback:
    payment = created.payment
    data = {
        "id": payment.provider_invoice_id,
        "external_id": payment.external_id,
        "status": status,
        "amount": payment.amount,
        "paid_amount": payment.amount if amount is None else amount,
        "payment_channel": "BCA",
        "paid_at": "2026-03-01T10:15:00Z",
    }
    data.update(extra)
    return XenditInvoiceCallback.model_validate(data)


def test_event_id_defaults_to_invoice_and_status():
    callback = XenditInvoiceCallback(id="inv-9", status="paid")

    assert event_id_for(callback) == "inv-9:PAID"
    assert event_id_for(callback.model_copy(update={"event_id": "evt-1"})) == "evt-1"


def test_event_from_callback_prefers_paid_amount():
    callback = XenditInvoiceCallback(
        id="inv-9", external_id="booking-1", status="SETTLED", amount=1000, paid_amount=900
    )
    received = datetime(2026, 3, 1, tzinfo=timezone.utc)

    event = event_from_callback(callback, received)

    assert event.status.value == "paid"
    assert event.amount == 900
    assert event.received_at == received
    assert event_from_callback(callback.model_copy(update={"status": "PENDING"}), received) is None


def test_paid_event_confirms_booking(reconciler, machine, store, booking_request):
    created = _create(machine, booking_request)

    outcome = _run(reconciler.handle_callback(_callback(created, payment_channel="QRIS")))

    assert outcome.result == ReconcileResult.CONFIRMED
    assert outcome.booking_status == BookingStatus.CONFIRMED
    assert outcome.payment_method == PaymentMethod.QRIS
    assert outcome.amount_mismatch is False
    assert outcome.duplicate is False

    booking = store.bookings[created.booking.id]
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.paid_amount == 1_135_000
    assert booking.payment_status == PaymentStatus.PAID

    payment = store.payments[created.payment.id]
    assert payment.status == InvoiceStatus.PAID
    assert payment.method == PaymentMethod.QRIS
    assert payment.paid_at == datetime(2026, 3, 1, 10, 15, tzinfo=timezone.utc)


def test_redelivered_event_is_applied_once(reconciler, machine, store, booking_request):
    created = _create(machine, booking_request)
    callback = _callback(created)

    first = _run(reconciler.handle_callback(callback))
    second = _run(reconciler.handle_callback(callback))

    assert first.result == ReconcileResult.CONFIRMED
    assert second.result == ReconcileResult.CONFIRMED
    assert second.duplicate is True
    assert store.bookings[created.booking.id].paid_amount == 1_135_000
    assert len(store.payment_events) == 1


def test_concurrent_redeliveries_apply_once(reconciler, machine, store, booking_request):
    created = _create(machine, booking_request)
    callback = _callback(created)

    async def _deliver():
        return await asyncio.gather(*(reconciler.handle_callback(callback) for _ in range(5)))

    outcomes = _run(_deliver())

    assert sum(1 for outcome in outcomes if not outcome.duplicate) == 1
    assert store.bookings[created.booking.id].paid_amount == 1_135_000


def test_settled_after_paid_does_not_double_count(reconciler, machine, store, booking_request):
    created = _create(machine, booking_request)

    _run(reconciler.handle_callback(_callback(created, status="PAID")))
    outcome = _run(reconciler.handle_callback(_callback(created, status="SETTLED")))

    assert outcome.result == ReconcileResult.IGNORED
    assert outcome.duplicate is True
    assert store.bookings[created.booking.id].paid_amount == 1_135_000
    assert list(store.payment_events) == [f"{created.payment.provider_invoice_id}:PAID"]


def _workers(store, gateway, settings, clock, count=2):
    workers = []
    for _ in range(count):
        view = WorkerStore(store)
        machine = BookingStateMachine(view, gateway, settings, clock=clock)
        workers.append(PaymentReconciler(view, machine, settings.payment_mismatch_policy, clock=clock))
    return workers


def test_same_event_on_separate_workers_is_credited_once(
    machine, store, gateway, settings, clock, booking_request
):
    created = _create(machine, booking_request)
    callback = _callback(created)
    workers = _workers(store, gateway, settings, clock)

    async def _deliver():
        return await asyncio.gather(*(worker.handle_callback(callback) for worker in workers))

    outcomes = _run(_deliver())

    booking = store.bookings[created.booking.id]
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.paid_amount == booking.total_amount == 1_135_000
    assert store.payments[created.payment.id].status == InvoiceStatus.PAID
    applied = [outcome for outcome in outcomes if not outcome.duplicate]
    assert [outcome.result for outcome in applied] == [ReconcileResult.CONFIRMED]
    stored = store.payment_events[f"{created.payment.provider_invoice_id}:PAID"]
    assert stored.outcome.result == ReconcileResult.CONFIRMED


def test_paid_and_settled_on_separate_workers_are_credited_once(
    machine, store, gateway, settings, clock, booking_request
):
    created = _create(machine, booking_request)
    workers = _workers(store, gateway, settings, clock)

    async def _deliver():
        return await asyncio.gather(
            workers[0].handle_callback(_callback(created, status="PAID")),
            workers[1].handle_callback(_callback(created, status="SETTLED")),
        )

    outcomes = _run(_deliver())

    assert store.bookings[created.booking.id].paid_amount == 1_135_000
    assert sorted(outcome.duplicate for outcome in outcomes) == [False, True]


def test_expiry_racing_payment_on_separate_workers_stays_consistent(
    machine, store, gateway, settings, clock, booking_request
):
    created = _create(machine, booking_request)
    workers = _workers(store, gateway, settings, clock)

    async def _deliver():
        return await asyncio.gather(
            workers[0].handle_callback(_callback(created, status="PAID")),
            workers[1].handle_callback(_callback(created, status="EXPIRED")),
        )

    _run(_deliver())

    booking = store.bookings[created.booking.id]
    assert store.payments[created.payment.id].status == InvoiceStatus.PAID
    if booking.status == BookingStatus.CONFIRMED:
        assert booking.paid_amount == 1_135_000
    else:
        assert booking.status == BookingStatus.CANCELLED
        assert booking.paid_amount == 0


def test_expired_event_cancels_pending_booking(reconciler, machine, store, booking_request):
    created = _create(machine, booking_request)

    outcome = _run(reconciler.handle_callback(_callback(created, status="EXPIRED")))

    assert outcome.result == ReconcileResult.CANCELLED
    booking = store.bookings[created.booking.id]
    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancellation_reason == "payment_expired"
    assert store.payments[created.payment.id].status == InvoiceStatus.EXPIRED


def test_failed_event_cancels_with_failure_reason(reconciler, machine, store, booking_request):
    created = _create(machine, booking_request)

    outcome = _run(reconciler.handle_callback(_callback(created, status="FAILED")))

    assert outcome.result == ReconcileResult.CANCELLED
    assert store.bookings[created.booking.id].cancellation_reason == "payment_failed"


def test_expiry_after_payment_never_regresses_confirmed_booking(
    reconciler, machine, store, booking_request
):
    created = _create(machine, booking_request)

    _run(reconciler.handle_callback(_callback(created, status="PAID")))
    outcome = _run(reconciler.handle_callback(_callback(created, status="EXPIRED")))

    assert outcome.result == ReconcileResult.IGNORED
    assert store.bookings[created.booking.id].status == BookingStatus.CONFIRMED
    assert store.payments[created.payment.id].status == InvoiceStatus.PAID


def test_payment_after_expiry_is_a_late_payment(reconciler, machine, store, booking_request):
    created = _create(machine, booking_request)

    _run(reconciler.handle_callback(_callback(created, status="EXPIRED")))
    outcome = _run(reconciler.handle_callback(_callback(created, status="PAID")))

    assert outcome.result == ReconcileResult.LATE_PAYMENT
    booking = store.bookings[created.booking.id]
    assert booking.status == BookingStatus.CANCELLED
    assert booking.paid_amount == 0


def test_underpayment_is_rejected_by_default(reconciler, machine, store, booking_request):
    created = _create(machine, booking_request)

    outcome = _run(reconciler.handle_callback(_callback(created, amount=1_000_000)))

    assert outcome.result == ReconcileResult.PAYMENT_MISMATCH
    assert outcome.amount_mismatch is True
    assert store.bookings[created.booking.id].status == BookingStatus.PENDING
    assert store.payments[created.payment.id].status == InvoiceStatus.PENDING


def test_underpayment_confirms_partially_when_accepted(store, machine, clock, booking_request):
    reconciler = PaymentReconciler(
        store, machine, PaymentMismatchPolicy.ACCEPT_PARTIAL, clock=clock
    )
    created = _create(machine, booking_request)

    outcome = _run(reconciler.handle_callback(_callback(created, amount=1_000_000)))

    assert outcome.result == ReconcileResult.CONFIRMED
    assert outcome.amount_mismatch is True
    booking = store.bookings[created.booking.id]
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_status == PaymentStatus.PARTIAL
    assert booking.paid_amount == 1_000_000


def test_overpayment_confirms_and_flags_mismatch(reconciler, machine, store, booking_request):
    created = _create(machine, booking_request)

    outcome = _run(reconciler.handle_callback(_callback(created, amount=1_200_000)))

    assert outcome.result == ReconcileResult.CONFIRMED
    assert outcome.amount_mismatch is True
    assert store.bookings[created.booking.id].payment_status == PaymentStatus.PAID


def test_deposit_payment_confirms_with_partial_status(reconciler, machine, store, booking_request):
    created = _create(machine, booking_request, payment_method_type="dp_online")

    outcome = _run(reconciler.handle_callback(_callback(created)))

    assert outcome.result == ReconcileResult.CONFIRMED
    booking = store.bookings[created.booking.id]
    assert booking.paid_amount == 340_500
    assert booking.payment_status == PaymentStatus.PARTIAL


def test_unknown_invoice_is_acknowledged_as_not_found(reconciler, store):
    callback = XenditInvoiceCallback(
        id="inv-unknown", external_id="booking-unknown", status="PAID", paid_amount=1000
    )

    outcome = _run(reconciler.handle_callback(callback))

    assert outcome.result == ReconcileResult.NOT_FOUND
    assert "inv-unknown:PAID" in store.payment_events


def test_lookup_falls_back_to_invoice_id(reconciler, machine, store, booking_request):
    created = _create(machine, booking_request)

    outcome = _run(reconciler.handle_callback(_callback(created, external_id=None)))

    assert outcome.result == ReconcileResult.CONFIRMED
    assert outcome.booking_id == created.booking.id


def test_non_settling_status_is_ignored_without_recording(reconciler, store):
    outcome = _run(
        reconciler.handle_callback(XenditInvoiceCallback(id="inv-1", status="PENDING"))
    )

    assert outcome.result == ReconcileResult.IGNORED
    assert store.payment_events == {}
