from fastapi import APIRouter, Depends, status

from app.api import deps
from app.schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingCreatedResponse,
    BookingResponse,
)
from app.services.booking_state import BookingStateMachine

router = APIRouter(prefix="/v1.0/bookings", tags=["bookings"])


@router.post("", response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_new_booking(
    payload: BookingCreate,
    machine: BookingStateMachine = Depends(deps.get_state_machine),
):
    """Hold a room and open a payment invoice for it."""
    created = await machine.create(payload)
    booking = created.booking
    return BookingCreatedResponse(
        id=booking.id,
        booking_code=booking.booking_code,
        status=booking.status,
        total_amount=booking.total_amount,
        deposit_amount=booking.deposit_amount,
        payment_method_type=booking.payment_method_type,
        hold_expires_at=booking.hold_expires_at,
        payment_url=created.payment_url,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_single_booking(
    booking_id: str,
    machine: BookingStateMachine = Depends(deps.get_state_machine),
):
    booking = await machine.get(booking_id)
    return BookingResponse.model_validate(booking.model_dump())


@router.post("/{booking_id}/check-in", response_model=BookingResponse)
async def check_in_booking(
    booking_id: str,
    current_staff: dict = Depends(deps.get_current_staff),
    machine: BookingStateMachine = Depends(deps.get_state_machine),
):
    booking = await machine.check_in(booking_id)
    return BookingResponse.model_validate(booking.model_dump())


@router.post("/{booking_id}/check-out", response_model=BookingResponse)
async def check_out_booking(
    booking_id: str,
    current_staff: dict = Depends(deps.get_current_staff),
    machine: BookingStateMachine = Depends(deps.get_state_machine),
):
    booking = await machine.check_out(booking_id)
    return BookingResponse.model_validate(booking.model_dump())


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    payload: BookingCancel,
    current_staff: dict = Depends(deps.get_current_staff),
    machine: BookingStateMachine = Depends(deps.get_state_machine),
):
    booking = await machine.cancel(booking_id, payload.reason)
    return BookingResponse.model_validate(booking.model_dump())


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
async def mark_booking_no_show(
    booking_id: str,
    current_staff: dict = Depends(deps.get_current_staff),
    machine: BookingStateMachine = Depends(deps.get_state_machine),
):
    booking = await machine.mark_no_show(booking_id)
    return BookingResponse.model_validate(booking.model_dump())
