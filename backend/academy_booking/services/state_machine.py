"""
Booking and payment state rules.

Pure functions only: which transitions are legal from an observed
(status, payment_status) pair, and the user-facing projections derived from
it. The orchestration services apply a transition with a compare-and-set
UPDATE guarded by the exact pair they checked here.

    slot_booked --approve--> approved --pay--> confirmed --complete--> completed
         |                      |
         +------reject----------+--> rejected
         +------cancel----------+--> cancelled

Legacy `requested` behaves as slot_booked; legacy `pending` and
`payment_pending` behave as approved.
"""

from academy_booking.core.exceptions import InvalidStateError
from academy_booking.models.booking import BookingStatus, PaymentStatus, TERMINAL_STATUSES

_S = BookingStatus
_P = PaymentStatus

LEGACY_STATUS_MAP = {
    _S.REQUESTED.value: _S.SLOT_BOOKED.value,
    _S.PENDING.value: _S.APPROVED.value,
    _S.PAYMENT_PENDING.value: _S.APPROVED.value,
}

# Payment may be (re)started from these
ORDERABLE_PAYMENT_STATUSES = (_P.NOT_INITIATED.value, _P.FAILED.value, _P.CANCELLED.value)
# An order is live and may be verified, failed or cancelled
LIVE_PAYMENT_STATUSES = (_P.INITIATED.value, _P.PENDING.value)


def normalize_status(status: str) -> str:
    return LEGACY_STATUS_MAP.get(status, status)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def ensure_can_approve(status: str) -> None:
    if normalize_status(status) != _S.SLOT_BOOKED.value:
        raise InvalidStateError(f"Booking cannot be approved from status '{status}'")


def ensure_can_reject(status: str) -> None:
    if normalize_status(status) not in (_S.SLOT_BOOKED.value, _S.APPROVED.value):
        raise InvalidStateError(f"Booking cannot be rejected from status '{status}'")


def ensure_can_complete(status: str) -> None:
    if status != _S.CONFIRMED.value:
        raise InvalidStateError(f"Only confirmed bookings can be completed (status '{status}')")


def can_cancel(status: str, payment_status: str) -> bool:
    if is_terminal(status) or status == _S.CONFIRMED.value:
        return False
    return payment_status != _P.SUCCESS.value


def ensure_can_cancel(status: str, payment_status: str) -> None:
    if payment_status == _P.SUCCESS.value:
        raise InvalidStateError("Booking cannot be cancelled after a successful payment")
    if not can_cancel(status, payment_status):
        raise InvalidStateError(f"Booking cannot be cancelled from status '{status}'")


def ensure_can_create_order(status: str, payment_status: str) -> None:
    if normalize_status(status) != _S.APPROVED.value:
        raise InvalidStateError(
            f"Payment can only be made for approved bookings (status '{status}')"
        )
    if payment_status == _P.SUCCESS.value:
        raise InvalidStateError("Payment has already been completed for this booking")


def ensure_can_cancel_order(payment_status: str) -> None:
    if payment_status not in LIVE_PAYMENT_STATUSES:
        raise InvalidStateError(
            f"Payment order cannot be cancelled when payment status is '{payment_status}'"
        )


def demoted_payment_status(payment_status: str) -> str:
    """Payment status after the booking is cancelled or rejected."""
    if payment_status in LIVE_PAYMENT_STATUSES:
        return _P.CANCELLED.value
    return payment_status


def is_payment_link_enabled(status: str, payment_status: str) -> bool:
    if status == _S.APPROVED.value:
        return payment_status in ORDERABLE_PAYMENT_STATUSES + (_P.INITIATED.value,)
    if status in (_S.PAYMENT_PENDING.value, _S.PENDING.value):
        return payment_status in LIVE_PAYMENT_STATUSES + (_P.CANCELLED.value, _P.FAILED.value)
    if status == _S.CONFIRMED.value:
        return payment_status != _P.SUCCESS.value
    return False


def status_message(status: str, payment_status: str) -> str:
    if status == _S.CANCELLED.value:
        return "Your booking has been cancelled."
    if status == _S.COMPLETED.value:
        return "Your booking has been completed successfully."
    if status == _S.REJECTED.value:
        return "Your booking request has been rejected by the academy."
    if status == _S.CONFIRMED.value and payment_status == _P.SUCCESS.value:
        return "Booking confirmed! Your payment was successful."

    if status == _S.APPROVED.value:
        if payment_status == _P.NOT_INITIATED.value:
            return "Your booking has been approved. Please proceed with payment to confirm your booking."
        if payment_status == _P.INITIATED.value:
            return "Payment initiated. Please complete the payment to confirm your booking."
        if payment_status == _P.PENDING.value:
            return "Payment is being processed. Please wait for confirmation."
        if payment_status == _P.FAILED.value:
            return "Payment failed. Please try again or contact support."

    if status in (_S.SLOT_BOOKED.value, _S.REQUESTED.value) and payment_status == _P.NOT_INITIATED.value:
        return "Your booking request has been sent. Waiting for academy approval."

    if status in (_S.PAYMENT_PENDING.value, _S.PENDING.value):
        if payment_status == _P.INITIATED.value:
            return "Payment initiated. Please complete the payment."
        if payment_status == _P.PENDING.value:
            return "Payment is being processed. Please wait for confirmation."
        if payment_status == _P.SUCCESS.value:
            return "Payment successful! Your booking is confirmed."
        if payment_status == _P.FAILED.value:
            return "Payment failed. Please try again."
        return "Payment is pending. Please complete the payment."

    if payment_status == _P.CANCELLED.value:
        return "Payment was cancelled."
    return "Booking is being processed."
