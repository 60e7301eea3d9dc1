"""
Booking lifecycle orchestration: slot requests and the academy/user
transitions that follow them.

CONCURRENCY STRATEGY
====================

Reads:
  Participants and batch/academy are independent projections and are loaded
  concurrently on sibling sessions. Capacity and enrollment are then checked
  on the request session so the user gets a precise error message.

Writes:
  Those read-time checks can be stale by the time we write, so the write path
  re-validates both inside one transaction:

  1. Capacity: conditional UPDATE on batches.booked_slots (see capacity.py).
     Zero rows affected -> CapacityExceededError.
  2. Enrollment: the partial unique index on booking_participants
     (batch_id, participant_id) WHERE is_active. IntegrityError on flush ->
     AlreadyEnrolledError naming the participants.

  The counter update, booking insert and participant links commit together or
  not at all.

Transitions:
  Every status change is a compare-and-set:

    UPDATE bookings SET ... WHERE id = :id
       AND status = :observed_status AND payment_status = :observed_payment

  Zero rows affected means another request moved the booking first; we
  surface InvalidStateError instead of overwriting its result. A transition
  that leaves the slot-occupying set releases the batch counter and
  deactivates the enrollment links in the same transaction.

Side effects (notifications, audit) are submitted to the side-effect runner
only after commit.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from academy_booking.core.exceptions import (
    AuthorizationError,
    BookingError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from academy_booking.core.logging import get_logger
from academy_booking.core.metrics import (
    record_slot_request,
    record_state_conflict,
    record_transition,
    slot_request_latency,
)
from academy_booking.db.session import sibling_session_factory
from academy_booking.models.academy import Academy, ApprovalStatus, PublicationStatus
from academy_booking.models.batch import Batch
from academy_booking.models.booking import (
    Booking,
    BookingParticipant,
    BookingStatus,
    SLOT_OCCUPYING_STATUSES,
)
from academy_booking.models.participant import Participant
from academy_booking.models.user import User
from academy_booking.services import (
    capacity,
    eligibility,
    enrollment,
    ledger_service,
    notifications,
    state_machine,
)
from academy_booking.services.audit_service import record_audit_event
from academy_booking.services.background_tasks import SideEffectRunner
from academy_booking.services.money import (
    CommissionSnapshot,
    FeeSettings,
    PriceBreakdown,
    calculate_commission,
    calculate_price_breakdown,
    per_participant_fee,
)
from academy_booking.services.notifications import BookingContext, NotificationDispatcher
from academy_booking.services.settings_service import get_fee_settings

logger = get_logger(__name__)


@dataclass
class SlotRequestContext:
    """Everything RequestSlot validated, reused by the summary view."""

    user: User
    batch: Batch
    academy: Academy
    participants: list[Participant]
    ages: dict[int, int]
    fees: FeeSettings
    breakdown: PriceBreakdown
    commission: CommissionSnapshot


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------


async def _load_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None or user.is_deleted or not user.is_active:
        raise NotFoundError("User not found")
    return user


async def _load_participants(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: int,
    participant_ids: Sequence[int],
) -> list[Participant]:
    if not participant_ids:
        raise ValidationError("At least one participant ID is required")
    if len(set(participant_ids)) != len(participant_ids):
        raise ValidationError("Duplicate participant IDs are not allowed")

    async with session_factory() as db:
        result = await db.execute(
            select(Participant).where(
                Participant.id.in_(participant_ids),
                Participant.is_deleted.is_(False),
                Participant.is_active.is_(True),
            )
        )
        participants = list(result.scalars().all())

    if len(participants) != len(participant_ids):
        raise NotFoundError("One or more participants not found or inactive")
    for participant in participants:
        if participant.user_id != user_id:
            raise AuthorizationError(f"Participant {participant.id} does not belong to you")

    by_id = {p.id: p for p in participants}
    return [by_id[pid] for pid in participant_ids]


async def _load_batch_and_academy(
    session_factory: async_sessionmaker[AsyncSession],
    batch_id: int,
) -> tuple[Batch, Academy]:
    async with session_factory() as db:
        batch = await db.get(Batch, batch_id)
        if batch is None:
            raise NotFoundError("Batch not found")
        academy = await db.get(Academy, batch.academy_id)

    if batch.is_deleted:
        raise ValidationError("Batch has been deleted and is not available for booking")
    if not batch.is_active:
        raise ValidationError("Batch is disabled and not available for booking")
    if batch.status != PublicationStatus.PUBLISHED.value:
        raise ValidationError("Batch is not published and not available for booking")

    if academy is None:
        raise NotFoundError("Coaching center not found")
    if academy.is_deleted:
        raise ValidationError("Coaching center has been deleted and is not available for booking")
    if not academy.is_active:
        raise ValidationError("Coaching center is disabled and not available for booking")
    if academy.status != PublicationStatus.PUBLISHED.value:
        raise ValidationError("Coaching center is not published and not available for booking")
    if academy.approval_status != ApprovalStatus.APPROVED.value:
        raise ValidationError("Coaching center is not approved and not available for booking")

    return batch, academy


async def load_booking(
    db: AsyncSession,
    booking_id: int,
    user_id: Optional[int] = None,
) -> Booking:
    """Fresh read of a non-deleted booking, optionally scoped to its owner."""
    query = (
        select(Booking)
        .options(selectinload(Booking.participants))
        .where(Booking.id == booking_id, Booking.is_deleted.is_(False))
        .execution_options(populate_existing=True)
    )
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)
    booking = (await db.execute(query)).scalar_one_or_none()
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


async def build_booking_context(db: AsyncSession, booking: Booking) -> BookingContext:
    batch = await db.get(Batch, booking.batch_id)
    academy = await db.get(Academy, booking.academy_id)
    user = await db.get(User, booking.user_id)
    participant_ids = [link.participant_id for link in booking.participants]
    names: list[str] = []
    if participant_ids:
        result = await db.execute(select(Participant).where(Participant.id.in_(participant_ids)))
        by_id = {p.id: p for p in result.scalars().all()}
        names = [by_id[pid].full_name for pid in participant_ids if pid in by_id]
    return BookingContext(
        booking_id=booking.id,
        reference=booking.reference or str(booking.id),
        batch_id=booking.batch_id,
        batch_name=batch.name if batch else "",
        academy_id=booking.academy_id,
        academy_name=academy.name if academy else "",
        user_id=booking.user_id,
        user_name=user.full_name if user else "",
        participant_names=tuple(names),
        amount=str(booking.amount),
        currency=booking.currency,
    )


def submit_notifications(
    runner: SideEffectRunner,
    dispatcher: NotificationDispatcher,
    requests: list[notifications.NotificationRequest],
) -> None:
    for request in requests:
        runner.submit(f"notification:{request.metadata.get('type')}", dispatcher.dispatch, request)


def submit_audit(
    runner: SideEffectRunner,
    db: AsyncSession,
    action: str,
    booking: Booking,
    actor_id: Optional[int],
    actor_role: str,
    message: Optional[str] = None,
    **metadata,
) -> None:
    runner.submit(
        "audit",
        record_audit_event,
        sibling_session_factory(db),
        action,
        booking.id,
        actor_id=actor_id,
        actor_role=actor_role,
        academy_id=booking.academy_id,
        message=message,
        metadata={"status": booking.status, "payment_status": booking.payment_status, **metadata},
    )


async def compare_and_set(
    db: AsyncSession,
    booking: Booking,
    operation: str,
    **values,
) -> None:
    """Apply `values` only if the booking still has the status pair we observed."""
    result = await db.execute(
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.status == booking.status,
            Booking.payment_status == booking.payment_status,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        record_state_conflict(operation)
        logger.warning(
            "booking_state_conflict",
            booking_id=booking.id,
            operation=operation,
            observed_status=booking.status,
            observed_payment_status=booking.payment_status,
        )
        raise InvalidStateError("Booking was modified by another request. Please refresh and try again.")


async def _release_booking(db: AsyncSession, booking: Booking) -> None:
    """Return capacity and free participants for a booking leaving the occupying set."""
    if booking.status in SLOT_OCCUPYING_STATUSES:
        await capacity.release_slots(db, booking.batch_id, booking.participant_count)
    await enrollment.deactivate_enrollments(db, booking.id)


async def _owned_by_academy(db: AsyncSession, booking: Booking, academy_user_id: int) -> Academy:
    academy = await db.get(Academy, booking.academy_id)
    if academy is None or academy.owner_user_id != academy_user_id:
        raise AuthorizationError("You do not have permission to manage this booking")
    return academy


# ---------------------------------------------------------------------------
# Slot requests
# ---------------------------------------------------------------------------


async def validate_slot_request(
    db: AsyncSession,
    user_id: int,
    batch_id: int,
    participant_ids: Sequence[int],
    today: Optional[date] = None,
) -> SlotRequestContext:
    """Run every RequestSlot check and price the request. Writes nothing."""
    user = await _load_user(db, user_id)

    factory = sibling_session_factory(db)
    # return_exceptions so neither sibling session is left running on failure
    participants, loaded = await asyncio.gather(
        _load_participants(factory, user_id, participant_ids),
        _load_batch_and_academy(factory, batch_id),
        return_exceptions=True,
    )
    for outcome in (participants, loaded):
        if isinstance(outcome, BaseException):
            raise outcome
    batch, academy = loaded

    ages = eligibility.validate_participants(participants, batch, academy, today)

    occupied = await capacity.count_occupied_slots(db, batch.id)
    capacity.check_capacity(batch, occupied, len(participants))
    await enrollment.ensure_not_enrolled(db, batch.id, participants)

    fees = await get_fee_settings(db)
    breakdown = calculate_price_breakdown(
        admission_fee=batch.admission_fee,
        fee_per_participant=per_participant_fee(batch.base_price, batch.discounted_price),
        participant_count=len(participants),
        fees=fees,
    )
    commission = calculate_commission(breakdown.batch_amount, fees.commission_rate)

    return SlotRequestContext(
        user=user,
        batch=batch,
        academy=academy,
        participants=participants,
        ages=ages,
        fees=fees,
        breakdown=breakdown,
        commission=commission,
    )


async def get_booking_summary(
    db: AsyncSession,
    user_id: int,
    batch_id: int,
    participant_ids: Sequence[int],
) -> SlotRequestContext:
    return await validate_slot_request(db, user_id, batch_id, participant_ids)


def _slot_request_result(error: BookingError) -> str:
    return error.code if error.code in (
        "capacity_exceeded",
        "already_enrolled",
        "ineligible_participant",
    ) else "rejected"


async def request_slot(
    db: AsyncSession,
    user_id: int,
    batch_id: int,
    participant_ids: Sequence[int],
    runner: SideEffectRunner,
    dispatcher: NotificationDispatcher,
    notes: Optional[str] = None,
) -> Booking:
    """
    Reserve slots in a batch for the caller's participants.
    The booking starts in slot_booked and waits for academy approval.
    """
    start = time.perf_counter()
    try:
        booking = await _request_slot(db, user_id, batch_id, participant_ids, runner, dispatcher, notes)
    except BookingError as e:
        record_slot_request(_slot_request_result(e))
        raise
    finally:
        slot_request_latency.observe(time.perf_counter() - start)
    record_slot_request("created")
    return booking


async def _request_slot(
    db: AsyncSession,
    user_id: int,
    batch_id: int,
    participant_ids: Sequence[int],
    runner: SideEffectRunner,
    dispatcher: NotificationDispatcher,
    notes: Optional[str],
) -> Booking:
    ctx = await validate_slot_request(db, user_id, batch_id, participant_ids)
    breakdown = ctx.breakdown
    count = breakdown.participant_count

    try:
        await capacity.reserve_slots(db, ctx.batch.id, count)
    except BookingError:
        await db.rollback()
        raise

    now = datetime.now(timezone.utc)
    booking = Booking(
        user_id=user_id,
        batch_id=ctx.batch.id,
        academy_id=ctx.academy.id,
        sport_id=ctx.batch.sport_id,
        status=BookingStatus.SLOT_BOOKED.value,
        notes=notes,
        participant_count=count,
        admission_fee_per_participant=breakdown.admission_fee_per_participant,
        total_admission_fee=breakdown.total_admission_fee,
        base_fee_per_participant=breakdown.base_fee_per_participant,
        total_base_fee=breakdown.total_base_fee,
        batch_amount=breakdown.batch_amount,
        platform_fee=breakdown.platform_fee,
        subtotal=breakdown.subtotal,
        tax_percentage=breakdown.tax_percentage,
        tax_amount=breakdown.tax_amount,
        total_amount=breakdown.total_amount,
        amount=breakdown.total_amount,
        currency=breakdown.currency,
        priced_at=now,
        commission_rate=ctx.commission.rate,
        commission_amount=ctx.commission.amount,
        payout_amount=ctx.commission.payout_amount,
        commission_computed_at=ctx.commission.computed_at,
    )
    db.add(booking)

    try:
        await db.flush()
        booking.reference = f"BK-{now.year}-{booking.id:04d}"
        for participant in ctx.participants:
            db.add(
                BookingParticipant(
                    booking_id=booking.id,
                    participant_id=participant.id,
                    batch_id=ctx.batch.id,
                    is_active=True,
                )
            )
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        logger.warning("slot_request_enrollment_conflict", batch_id=batch_id, error=str(e.orig))
        raise await enrollment.enrollment_conflict(db, batch_id, ctx.participants)

    await db.commit()

    booking = await load_booking(db, booking.id)
    logger.info(
        "booking_created",
        booking_id=booking.id,
        reference=booking.reference,
        user_id=user_id,
        batch_id=booking.batch_id,
        participants=count,
        total_amount=str(booking.total_amount),
    )

    notify_ctx = await build_booking_context(db, booking)
    submit_notifications(runner, dispatcher, notifications.booking_requested(notify_ctx))
    submit_audit(runner, db, "booking_requested", booking, user_id, "user", participants=count)
    return booking


# ---------------------------------------------------------------------------
# Academy and scheduling transitions
# ---------------------------------------------------------------------------


async def approve_booking(
    db: AsyncSession,
    academy_user_id: int,
    booking_id: int,
    runner: SideEffectRunner,
    dispatcher: NotificationDispatcher,
) -> Booking:
    booking = await load_booking(db, booking_id)
    await _owned_by_academy(db, booking, academy_user_id)
    state_machine.ensure_can_approve(booking.status)

    await compare_and_set(db, booking, "approve", status=BookingStatus.APPROVED.value)
    await db.commit()

    booking = await load_booking(db, booking_id)
    record_transition("approved")
    logger.info("booking_approved", booking_id=booking.id, academy_user_id=academy_user_id)

    notify_ctx = await build_booking_context(db, booking)
    submit_notifications(runner, dispatcher, notifications.booking_approved(notify_ctx))
    submit_audit(runner, db, "booking_approved", booking, academy_user_id, "academy")
    return booking


async def reject_booking(
    db: AsyncSession,
    academy_user_id: int,
    booking_id: int,
    reason: Optional[str],
    runner: SideEffectRunner,
    dispatcher: NotificationDispatcher,
) -> Booking:
    booking = await load_booking(db, booking_id)
    await _owned_by_academy(db, booking, academy_user_id)
    state_machine.ensure_can_reject(booking.status)

    new_payment_status = state_machine.demoted_payment_status(booking.payment_status)
    await compare_and_set(
        db,
        booking,
        "reject",
        status=BookingStatus.REJECTED.value,
        rejection_reason=reason,
        payment_status=new_payment_status,
    )
    await _release_booking(db, booking)
    if booking.gateway_order_id and new_payment_status != booking.payment_status:
        await ledger_service.record_cancelled(
            db, booking.id, booking.gateway_order_id, "Booking rejected by academy"
        )
    await db.commit()

    booking = await load_booking(db, booking_id)
    record_transition("rejected")
    logger.info("booking_rejected", booking_id=booking.id, academy_user_id=academy_user_id, reason=reason)

    notify_ctx = await build_booking_context(db, booking)
    submit_notifications(runner, dispatcher, notifications.booking_rejected(notify_ctx, reason))
    submit_audit(runner, db, "booking_rejected", booking, academy_user_id, "academy", message=reason)
    return booking


async def complete_booking(db: AsyncSession, booking_id: int) -> Booking:
    """Called by the scheduler once the batch has ended for this booking."""
    booking = await load_booking(db, booking_id)
    state_machine.ensure_can_complete(booking.status)

    await compare_and_set(db, booking, "complete", status=BookingStatus.COMPLETED.value)
    await _release_booking(db, booking)
    await db.commit()

    record_transition("completed")
    logger.info("booking_completed", booking_id=booking_id)
    return await load_booking(db, booking_id)


# ---------------------------------------------------------------------------
# User transitions and views
# ---------------------------------------------------------------------------


async def cancel_booking(
    db: AsyncSession,
    user_id: int,
    booking_id: int,
    reason: Optional[str],
    runner: SideEffectRunner,
    dispatcher: NotificationDispatcher,
) -> Booking:
    """
    Cancel a booking the caller owns and release its slots.
    Not allowed once payment has succeeded; refunds are handled out of band.
    """
    booking = await load_booking(db, booking_id, user_id=user_id)
    state_machine.ensure_can_cancel(booking.status, booking.payment_status)

    new_payment_status = state_machine.demoted_payment_status(booking.payment_status)
    await compare_and_set(
        db,
        booking,
        "cancel",
        status=BookingStatus.CANCELLED.value,
        cancellation_reason=reason,
        cancelled_by="user",
        cancelled_at=datetime.now(timezone.utc),
        payment_status=new_payment_status,
    )
    await _release_booking(db, booking)
    if booking.gateway_order_id and new_payment_status != booking.payment_status:
        await ledger_service.record_cancelled(
            db, booking.id, booking.gateway_order_id, reason or "Booking cancelled by user"
        )
    await db.commit()

    booking = await load_booking(db, booking_id)
    record_transition("cancelled")
    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        user_id=user_id,
        slots_released=booking.participant_count,
    )

    notify_ctx = await build_booking_context(db, booking)
    submit_notifications(runner, dispatcher, notifications.booking_cancelled(notify_ctx, reason))
    submit_audit(runner, db, "booking_cancelled", booking, user_id, "user", message=reason)
    return booking


async def get_user_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    """Get all non-deleted bookings for a user, newest first."""
    result = await db.execute(
        select(Booking)
        .options(selectinload(Booking.participants))
        .where(Booking.user_id == user_id, Booking.is_deleted.is_(False))
        .order_by(Booking.created_at.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())


async def get_user_booking(db: AsyncSession, user_id: int, booking_id: int) -> Booking:
    return await load_booking(db, booking_id, user_id=user_id)
