"""
Gateway-side settlement from Razorpay webhooks.

verify_payment (the checkout return) is the primary path. Webhooks cover the
payments the client never reports back: a closed tab, a dropped connection,
or a capture that lands after the order was cancelled. The gateway redelivers
until it gets a 2xx, so every handler converges:

  payment.captured / order.paid
      booking approved, payment not yet success -> confirmed, ledger row
          success (source=webhook), payout and notices queued
      payment already success                    -> no-op
      booking closed, or a superseded order      -> ledger row success only,
          logged for refund
  payment.failed
      the booking's live order                   -> payment failed
      anything else                              -> no-op
"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from academy_booking.core.exceptions import InvalidStateError
from academy_booking.core.logging import get_logger
from academy_booking.core.metrics import record_transition, record_webhook
from academy_booking.models.booking import Booking, BookingStatus, PaymentStatus
from academy_booking.models.transaction import Transaction, TransactionSource
from academy_booking.schemas.webhook import WebhookEvent
from academy_booking.services import ledger_service, state_machine
from academy_booking.services.background_tasks import SideEffectRunner
from academy_booking.services.booking_service import compare_and_set, load_booking, submit_audit
from academy_booking.services.money import to_minor_units
from academy_booking.services.notifications import NotificationDispatcher
from academy_booking.services.payment_service import submit_confirmation_side_effects

logger = get_logger(__name__)

CAPTURE_EVENTS = ("payment.captured", "order.paid")
FAILURE_EVENT = "payment.failed"


class WebhookOutcome(str, enum.Enum):
    CONFIRMED = "confirmed"
    ALREADY_SETTLED = "already_settled"
    RECORDED_FOR_REFUND = "recorded_for_refund"
    AMOUNT_MISMATCH = "amount_mismatch"
    FAILED = "failed"
    NOT_FOUND = "not_found"
    IGNORED = "ignored"


async def _find_booking(db: AsyncSession, order_id: str) -> Optional[Booking]:
    """The booking whose current order this is, else the one a ledger row ties it to."""
    result = await db.execute(
        select(Booking)
        .options(selectinload(Booking.participants))
        .where(Booking.gateway_order_id == order_id, Booking.is_deleted.is_(False))
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is not None:
        return booking

    booking_id = await db.scalar(
        select(Transaction.booking_id).where(Transaction.gateway_order_id == order_id).limit(1)
    )
    if booking_id is None:
        return None
    return await load_booking(db, booking_id)


def _failure_reason(event: WebhookEvent) -> str:
    payment = event.payment
    if payment is None:
        return "Payment failed"
    return payment.error_description or payment.error_reason or "Payment failed"


async def _record_for_refund(
    db: AsyncSession,
    booking: Booking,
    order_id: str,
    payment_id: Optional[str],
    amount_minor: int,
    method: Optional[str],
    runner: SideEffectRunner,
) -> WebhookOutcome:
    """Money was captured for a booking that can no longer be confirmed."""
    transaction_id = await ledger_service.record_success(
        db,
        booking,
        order_id,
        payment_id,
        None,
        booking.amount,
        booking.currency,
        payment_method=method,
        source=TransactionSource.WEBHOOK,
    )
    await db.commit()
    logger.error(
        "webhook_capture_needs_refund",
        booking_id=booking.id,
        status=booking.status,
        payment_status=booking.payment_status,
        order_id=order_id,
        current_order_id=booking.gateway_order_id,
        payment_id=payment_id,
        amount=amount_minor,
        transaction_id=transaction_id,
    )
    submit_audit(
        runner,
        db,
        "payment_captured_needs_refund",
        booking,
        None,
        "system",
        transaction_id=transaction_id,
        order_id=order_id,
        payment_id=payment_id,
    )
    return WebhookOutcome.RECORDED_FOR_REFUND


async def _handle_capture(
    db: AsyncSession,
    event: WebhookEvent,
    runner: SideEffectRunner,
    dispatcher: NotificationDispatcher,
) -> WebhookOutcome:
    payment, order = event.payment, event.order
    if payment is not None and payment.order_id:
        order_id, payment_id = payment.order_id, payment.id
        amount_minor, method = payment.amount, payment.method
    elif order is not None:
        order_id, payment_id = order.id, None
        amount_minor, method = order.amount_paid or order.amount, None
    else:
        return WebhookOutcome.IGNORED

    booking = await _find_booking(db, order_id)
    if booking is None:
        logger.warning("webhook_booking_not_found", webhook_event=event.event, order_id=order_id)
        return WebhookOutcome.NOT_FOUND

    if booking.payment_status == PaymentStatus.SUCCESS.value:
        logger.info("webhook_already_settled", booking_id=booking.id, order_id=order_id)
        return WebhookOutcome.ALREADY_SETTLED

    expected = to_minor_units(booking.amount)
    if amount_minor != expected:
        reason = f"Payment amount mismatch. Expected: {expected}, Received: {amount_minor}"
        logger.error("webhook_amount_mismatch", booking_id=booking.id, order_id=order_id, reason=reason)
        await _fail_live_order(db, booking, order_id, payment_id, reason)
        return WebhookOutcome.AMOUNT_MISMATCH

    payable = state_machine.normalize_status(booking.status) == BookingStatus.APPROVED.value
    if not payable or booking.gateway_order_id != order_id:
        return await _record_for_refund(db, booking, order_id, payment_id, amount_minor, method, runner)

    try:
        await compare_and_set(
            db,
            booking,
            "webhook_capture",
            status=BookingStatus.CONFIRMED.value,
            payment_status=PaymentStatus.SUCCESS.value,
            gateway_payment_id=payment_id or booking.gateway_payment_id,
            payment_method=method or booking.payment_method,
            payment_failure_reason=None,
            paid_at=datetime.now(timezone.utc),
        )
    except InvalidStateError:
        current = await load_booking(db, booking.id)
        if current.payment_status == PaymentStatus.SUCCESS.value:
            return WebhookOutcome.ALREADY_SETTLED
        raise

    transaction_id = await ledger_service.record_success(
        db,
        booking,
        order_id,
        payment_id,
        None,
        booking.amount,
        booking.currency,
        payment_method=method,
        source=TransactionSource.WEBHOOK,
    )
    await db.commit()

    booking = await load_booking(db, booking.id)
    record_transition("confirmed")
    logger.info(
        "payment_confirmed_by_webhook",
        booking_id=booking.id,
        order_id=order_id,
        payment_id=payment_id,
        transaction_id=transaction_id,
    )
    await submit_confirmation_side_effects(
        db,
        booking,
        transaction_id,
        runner,
        dispatcher,
        "payment_confirmed_by_webhook",
        actor_id=None,
        actor_role="system",
        payment_id=payment_id,
    )
    return WebhookOutcome.CONFIRMED


async def _fail_live_order(
    db: AsyncSession,
    booking: Booking,
    order_id: str,
    payment_id: Optional[str],
    reason: str,
) -> bool:
    """Mark the booking's live order failed. False when there is nothing live to fail."""
    if booking.gateway_order_id != order_id or booking.payment_status not in state_machine.LIVE_PAYMENT_STATUSES:
        return False

    try:
        await compare_and_set(
            db,
            booking,
            "webhook_failure",
            payment_status=PaymentStatus.FAILED.value,
            payment_failure_reason=reason,
            payment_failed_count=Booking.payment_failed_count + 1,
        )
    except InvalidStateError:
        current = await load_booking(db, booking.id)
        if current.payment_status != PaymentStatus.SUCCESS.value:
            raise
        return False

    await ledger_service.record_failed(
        db,
        booking,
        order_id,
        payment_id,
        None,
        booking.amount,
        booking.currency,
        reason,
        source=TransactionSource.WEBHOOK,
    )
    await db.commit()
    logger.warning("payment_failed_by_webhook", booking_id=booking.id, order_id=order_id, reason=reason)
    return True


async def _handle_failure(db: AsyncSession, event: WebhookEvent) -> WebhookOutcome:
    payment = event.payment
    if payment is None or not payment.order_id:
        return WebhookOutcome.IGNORED

    booking = await _find_booking(db, payment.order_id)
    if booking is None:
        logger.warning("webhook_booking_not_found", webhook_event=event.event, order_id=payment.order_id)
        return WebhookOutcome.NOT_FOUND

    # A late failure for an earlier attempt must never demote a settled booking
    if await _fail_live_order(db, booking, payment.order_id, payment.id, _failure_reason(event)):
        return WebhookOutcome.FAILED
    return WebhookOutcome.IGNORED


async def handle_webhook(
    db: AsyncSession,
    event: WebhookEvent,
    runner: SideEffectRunner,
    dispatcher: NotificationDispatcher,
) -> WebhookOutcome:
    if event.event in CAPTURE_EVENTS:
        outcome = await _handle_capture(db, event, runner, dispatcher)
    elif event.event == FAILURE_EVENT:
        outcome = await _handle_failure(db, event)
    else:
        outcome = WebhookOutcome.IGNORED

    record_webhook(event.event, outcome.value)
    logger.info("webhook_processed", webhook_event=event.event, outcome=outcome.value)
    return outcome
