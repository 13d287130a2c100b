"""Error taxonomy of the booking engine.

Every error carries the HTTP status it maps to; ``app.main`` registers a
single handler that renders them as ``{"detail": ..., "code": ...}``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import status

if TYPE_CHECKING:
    from app.schemas.payment import PaymentEvent


class BookingEngineError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "booking_engine_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidParameters(BookingEngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_parameters"


class InvalidDateRange(InvalidParameters):
    code = "invalid_date_range"


class InvalidStayType(InvalidParameters):
    code = "invalid_stay_type"


class BelowMinimumStay(InvalidParameters):
    code = "below_minimum_stay"


class NotFound(BookingEngineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class RoomUnavailable(BookingEngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "room_unavailable"


class InvalidTransition(BookingEngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"


class PaymentMismatch(BookingEngineError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "payment_mismatch"

    def __init__(self, message: str, *, expected: int, received: int, **context: Any):
        super().__init__(message, expected=expected, received=received, **context)
        self.expected = expected
        self.received = received


class DuplicateEvent(BookingEngineError):
    """Raised by the store when a payment event id was already recorded.

    Not a failure: the reconciler turns it into the stored outcome.
    """

    status_code = status.HTTP_200_OK
    code = "duplicate_event"

    def __init__(self, existing: PaymentEvent):
        super().__init__(f"Payment event {existing.provider_event_id} already processed.")
        self.existing = existing


class AuthenticationFailed(BookingEngineError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "authentication_failed"


class PaymentProviderError(BookingEngineError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "payment_provider_error"


class StorageError(BookingEngineError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "storage_error"

    def __init__(self, message: str, *, transient: bool = False, **context: Any):
        super().__init__(message, **context)
        self.transient = transient
