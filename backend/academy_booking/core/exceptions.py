"""
Domain exceptions raised by the booking and payment services.

Services raise these instead of HTTPException so they stay usable outside a
request. Each class carries the HTTP status the API exception handler maps it
to, and a stable machine-readable `code`.
"""

from typing import Any, Optional

from fastapi import status


class BookingError(Exception):
    """Base class for every error the core raises on purpose."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "booking_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ValidationError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class CapacityExceededError(ValidationError):
    code = "capacity_exceeded"


class AlreadyEnrolledError(ValidationError):
    code = "already_enrolled"


class EligibilityError(ValidationError):
    code = "ineligible_participant"


class InvalidAmountError(ValidationError):
    code = "invalid_amount"


class PaymentVerificationError(ValidationError):
    code = "payment_verification_failed"


class InvalidStateError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class AlreadyVerifiedError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "already_verified"


class AuthorizationError(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class GatewayError(BookingError):
    """The payment gateway failed, timed out or answered with garbage."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "gateway_error"
