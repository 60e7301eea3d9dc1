"""
Payment orders and verification for approved bookings.

Flow:
  1. create_payment_order: gateway order for the booking total, stored on the
     booking (payment_status=initiated) together with an `initiated` ledger row
  2. Checkout happens client-side against the gateway
  3. verify_payment: signature + gateway payment checked, booking confirmed,
     ledger row marked success, payout queued

Gateway calls happen before any write and are never retried here. Every
write is a compare-and-set on (status, payment_status) so a double-submitted
checkout or a verify racing a cancel resolves to exactly one outcome.
Verification failures are committed before PaymentVerificationError is
raised, so the failed attempt survives the error response.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from academy_booking.core.config import get_settings
from academy_booking.core.exceptions import (
    AlreadyVerifiedError,
    GatewayError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
    PaymentVerificationError,
)
from academy_booking.core.logging import get_logger
from academy_booking.core.metrics import record_payment_order, record_transition, record_verification
from academy_booking.db.session import sibling_session_factory
from academy_booking.models.booking import Booking, BookingStatus, PaymentStatus
from academy_booking.services import ledger_service, notifications, state_machine
from academy_booking.services.background_tasks import SideEffectRunner
from academy_booking.services.booking_service import (
    build_booking_context,
    compare_and_set,
    load_booking,
    submit_audit,
    submit_notifications,
)
from academy_booking.services.interfaces.payment_gateway import GatewayPayment, PaymentGateway
from academy_booking.services.money import ZERO, to_minor_units
from academy_booking.services.notifications import NotificationDispatcher
from academy_booking.services.payout_service import create_payout_job

logger = get_logger(__name__)

ACCEPTED_GATEWAY_STATUSES = ("captured", "authorized")


@dataclass(frozen=True)
class PaymentOrderResult:
    booking_id: int
    order_id: str
    amount: int  # minor units
    currency: str
    receipt: Optional[str]
    key_id: str
    reused: bool = False


def _order_result(booking: Booking, receipt: Optional[str], reused: bool) -> PaymentOrderResult:
    return PaymentOrderResult(
        booking_id=booking.id,
        order_id=booking.gateway_order_id,
        amount=to_minor_units(booking.amount),
        currency=booking.payment_currency or booking.currency,
        receipt=receipt,
        key_id=get_settings().RAZORPAY_KEY_ID,
        reused=reused,
    )


def receipt_for(booking: Booking, attempt: int) -> str:
    return f"BK{booking.id}-A{attempt}"


async def _booking_for_order(db: AsyncSession, user_id: int, order_id: str) -> Booking:
    result = await db.execute(
        select(Booking)
        .options(selectinload(Booking.participants))
        .where(
            Booking.gateway_order_id == order_id,
            Booking.user_id == user_id,
            Booking.is_deleted.is_(False),
        )
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError("Booking not found for this payment order")
    return booking


async def create_payment_order(
    db: AsyncSession,
    user_id: int,
    booking_id: int,
    gateway: PaymentGateway,
) -> PaymentOrderResult:
    """
    Create (or return the live) gateway order for an approved booking.
    Idempotent while an order is live (initiated, or legacy pending): no second
    gateway call.
    """
    settings = get_settings()
    booking = await load_booking(db, booking_id, user_id=user_id)
    state_machine.ensure_can_create_order(booking.status, booking.payment_status)

    if booking.payment_status in state_machine.LIVE_PAYMENT_STATUSES and booking.gateway_order_id:
        record_payment_order("reused")
        logger.info("payment_order_reused", booking_id=booking.id, order_id=booking.gateway_order_id)
        return _order_result(booking, receipt_for(booking, booking.payment_initiated_count), reused=True)

    amount_minor = to_minor_units(booking.amount)
    if booking.amount is None or booking.amount <= ZERO or amount_minor < settings.MIN_ORDER_MINOR_UNITS:
        record_payment_order("invalid_amount")
        raise InvalidAmountError(
            f"Payment amount must be at least {settings.MIN_ORDER_MINOR_UNITS} minor units. "
            f"Booking amount: {booking.amount}"
        )

    attempt = booking.payment_initiated_count + 1
    receipt = receipt_for(booking, attempt)
    try:
        order = await gateway.create_order(
            amount=amount_minor,
            currency=booking.currency,
            receipt=receipt,
            notes={
                "booking_id": str(booking.id),
                "reference": booking.reference or "",
                "user_id": str(user_id),
            },
        )
    except GatewayError:
        record_payment_order("gateway_error")
        raise

    try:
        await compare_and_set(
            db,
            booking,
            "create_payment_order",
            gateway_order_id=order.id,
            payment_status=PaymentStatus.INITIATED.value,
            payment_amount=booking.amount,
            payment_currency=booking.currency,
            payment_initiated_count=Booking.payment_initiated_count + 1,
            gateway_payment_id=None,
            gateway_signature=None,
            payment_failure_reason=None,
        )
    except InvalidStateError:
        # Lost the race: hand back whatever order the winner stored
        winner = await load_booking(db, booking_id, user_id=user_id)
        if winner.payment_status in state_machine.LIVE_PAYMENT_STATUSES and winner.gateway_order_id:
            record_payment_order("reused")
            logger.info(
                "payment_order_race_lost",
                booking_id=booking.id,
                discarded_order_id=order.id,
                order_id=winner.gateway_order_id,
            )
            return _order_result(winner, receipt_for(winner, winner.payment_initiated_count), reused=True)
        raise

    await ledger_service.record_initiated(db, booking, order.id, booking.amount, booking.currency)
    await db.commit()

    booking = await load_booking(db, booking_id)
    record_payment_order("created")
    logger.info(
        "payment_order_created",
        booking_id=booking.id,
        order_id=order.id,
        amount=amount_minor,
        attempt=attempt,
    )
    return _order_result(booking, receipt, reused=False)


def _verification_failure(booking: Booking, payment: GatewayPayment) -> Optional[tuple[str, str]]:
    """(metric label, reason) when the gateway payment does not settle this booking."""
    if payment.status not in ACCEPTED_GATEWAY_STATUSES:
        return (
            "status_mismatch",
            f"Payment status is {payment.status}. Payment must be captured or authorized.",
        )
    if payment.order_id and payment.order_id != booking.gateway_order_id:
        return ("order_mismatch", "Payment does not belong to this order")
    expected = to_minor_units(booking.amount)
    if payment.amount != expected:
        return (
            "amount_mismatch",
            f"Payment amount mismatch. Expected: {expected}, Received: {payment.amount}",
        )
    return None


async def _raise_if_settled(db: AsyncSession, booking_id: int) -> None:
    current = await load_booking(db, booking_id)
    if current.payment_status == PaymentStatus.SUCCESS.value:
        raise AlreadyVerifiedError("Payment has already been verified")


async def _record_verification_failure(
    db: AsyncSession,
    booking: Booking,
    payment_id: str,
    signature: str,
    label: str,
    reason: str,
) -> None:
    try:
        await compare_and_set(
            db,
            booking,
            "verify_payment_failed",
            payment_status=PaymentStatus.FAILED.value,
            payment_failure_reason=reason,
            payment_failed_count=Booking.payment_failed_count + 1,
        )
    except InvalidStateError:
        await _raise_if_settled(db, booking.id)
        raise

    await ledger_service.record_failed(
        db,
        booking,
        booking.gateway_order_id,
        payment_id,
        signature,
        booking.amount,
        booking.currency,
        reason,
    )
    await db.commit()

    record_verification(label)
    logger.warning(
        "payment_verification_failed",
        booking_id=booking.id,
        order_id=booking.gateway_order_id,
        payment_id=payment_id,
        reason=reason,
    )


async def submit_confirmation_side_effects(
    db: AsyncSession,
    booking: Booking,
    transaction_id: int,
    runner: SideEffectRunner,
    dispatcher: NotificationDispatcher,
    action: str,
    actor_id: Optional[int],
    actor_role: str,
    **audit_metadata,
) -> None:
    """Payout, confirmation notices and audit for a booking that just became confirmed."""
    if booking.payout_amount is not None and booking.payout_amount > ZERO:
        runner.submit("payout", create_payout_job, sibling_session_factory(db), booking.id, transaction_id)
    else:
        logger.info("payout_not_required", booking_id=booking.id)

    notify_ctx = await build_booking_context(db, booking)
    submit_notifications(runner, dispatcher, notifications.booking_confirmed(notify_ctx))
    submit_audit(
        runner,
        db,
        action,
        booking,
        actor_id,
        actor_role,
        transaction_id=transaction_id,
        **audit_metadata,
    )


async def verify_payment(
    db: AsyncSession,
    user_id: int,
    order_id: str,
    payment_id: str,
    signature: str,
    gateway: PaymentGateway,
    runner: SideEffectRunner,
    dispatcher: NotificationDispatcher,
) -> Booking:
    booking = await _booking_for_order(db, user_id, order_id)

    if booking.payment_status == PaymentStatus.SUCCESS.value:
        raise AlreadyVerifiedError("Payment has already been verified")
    if booking.payment_status not in state_machine.LIVE_PAYMENT_STATUSES:
        raise InvalidStateError(
            f"Payment cannot be verified when payment status is '{booking.payment_status}'"
        )

    signature_ok, payment = await asyncio.gather(
        gateway.verify_signature(order_id, payment_id, signature),
        gateway.fetch_payment(payment_id),
        return_exceptions=True,
    )
    if isinstance(signature_ok, Exception):
        raise signature_ok

    if not signature_ok:
        failure = ("invalid_signature", "Invalid payment signature")
    elif isinstance(payment, Exception):
        raise payment
    else:
        failure = _verification_failure(booking, payment)

    if failure is not None:
        label, reason = failure
        await _record_verification_failure(db, booking, payment_id, signature, label, reason)
        raise PaymentVerificationError(reason)

    try:
        await compare_and_set(
            db,
            booking,
            "verify_payment",
            status=BookingStatus.CONFIRMED.value,
            payment_status=PaymentStatus.SUCCESS.value,
            gateway_payment_id=payment_id,
            gateway_signature=signature,
            payment_method=payment.method,
            payment_failure_reason=None,
            paid_at=datetime.now(timezone.utc),
        )
    except InvalidStateError:
        await _raise_if_settled(db, booking.id)
        raise

    transaction_id = await ledger_service.record_success(
        db,
        booking,
        order_id,
        payment_id,
        signature,
        booking.amount,
        booking.currency,
        payment_method=payment.method,
    )
    await db.commit()

    booking = await load_booking(db, booking.id)
    record_verification("success")
    record_transition("confirmed")
    logger.info(
        "payment_verified",
        booking_id=booking.id,
        order_id=order_id,
        payment_id=payment_id,
        transaction_id=transaction_id,
        amount=str(booking.amount),
    )

    await submit_confirmation_side_effects(
        db,
        booking,
        transaction_id,
        runner,
        dispatcher,
        "payment_verified",
        actor_id=user_id,
        actor_role="user",
        payment_id=payment_id,
    )
    return booking


async def cancel_payment_order(db: AsyncSession, user_id: int, order_id: str) -> Booking:
    """User abandoned checkout. The booking stays approved and can be paid again."""
    booking = await _booking_for_order(db, user_id, order_id)
    if booking.payment_status == PaymentStatus.SUCCESS.value:
        raise InvalidStateError("Cannot cancel a payment order that has already been paid")
    state_machine.ensure_can_cancel_order(booking.payment_status)

    reason = "Payment order cancelled by user"
    await compare_and_set(
        db,
        booking,
        "cancel_payment_order",
        payment_status=PaymentStatus.CANCELLED.value,
        payment_cancelled_count=Booking.payment_cancelled_count + 1,
        payment_failure_reason=reason,
    )
    await ledger_service.record_cancelled(db, booking.id, order_id, reason)
    await db.commit()

    logger.info("payment_order_cancelled", booking_id=booking.id, order_id=order_id)
    return await load_booking(db, booking.id)
