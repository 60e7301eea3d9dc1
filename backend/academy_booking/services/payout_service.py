"""
Payout initiator: one pending Payout per (booking, transaction).

Runs on the side-effect runner after a payment is confirmed, in its own
session. Safe to call any number of times: an existing payout, or a unique
constraint violation from a concurrent twin, yields a "skipped" result.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy_booking.core.exceptions import NotFoundError
from academy_booking.core.logging import get_logger
from academy_booking.core.metrics import record_payout
from academy_booking.models.academy import Academy
from academy_booking.models.booking import Booking, PayoutStatus
from academy_booking.models.payout import Payout, PayoutAccount, PayoutAccountStatus, PayoutRecordStatus
from academy_booking.services.money import ZERO, round_money

logger = get_logger(__name__)


@dataclass(frozen=True)
class PayoutResult:
    created: bool
    payout_id: Optional[int] = None
    skipped_reason: Optional[str] = None


async def _active_payout_account(db: AsyncSession, academy_id: int) -> Optional[PayoutAccount]:
    result = await db.execute(
        select(PayoutAccount)
        .where(PayoutAccount.academy_id == academy_id, PayoutAccount.is_active.is_(True))
        .order_by(PayoutAccount.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _existing_payout_id(db: AsyncSession, booking_id: int, transaction_id: int) -> Optional[int]:
    result = await db.execute(
        select(Payout.id).where(Payout.booking_id == booking_id, Payout.transaction_id == transaction_id)
    )
    return result.scalar_one_or_none()


async def create_payout(db: AsyncSession, booking_id: int, transaction_id: int) -> PayoutResult:
    booking = await db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")

    payout_amount = round_money(booking.payout_amount) if booking.payout_amount is not None else ZERO
    if payout_amount <= ZERO:
        record_payout("skipped")
        logger.info("payout_skipped", booking_id=booking_id, reason="zero_payout_amount")
        return PayoutResult(created=False, skipped_reason="zero_payout_amount")

    existing = await _existing_payout_id(db, booking_id, transaction_id)
    if existing is not None:
        record_payout("skipped")
        logger.info("payout_skipped", booking_id=booking_id, payout_id=existing, reason="already_exists")
        return PayoutResult(created=False, payout_id=existing, skipped_reason="already_exists")

    academy = await db.get(Academy, booking.academy_id)
    if academy is None:
        raise NotFoundError(f"Academy {booking.academy_id} not found")

    account = await _active_payout_account(db, academy.id)
    if account is None:
        logger.warning("payout_account_missing", academy_id=academy.id, booking_id=booking_id)
    elif account.activation_status != PayoutAccountStatus.ACTIVATED.value:
        logger.warning(
            "payout_account_not_activated",
            academy_id=academy.id,
            account_id=account.id,
            activation_status=account.activation_status,
        )

    payout = Payout(
        booking_id=booking.id,
        transaction_id=transaction_id,
        payout_account_id=account.id if account else None,
        academy_id=academy.id,
        academy_user_id=academy.owner_user_id,
        amount=round_money(booking.amount),
        batch_amount=round_money(booking.batch_amount),
        commission_rate=booking.commission_rate or Decimal("0"),
        commission_amount=round_money(booking.commission_amount or ZERO),
        payout_amount=payout_amount,
        currency=booking.currency,
        status=PayoutRecordStatus.PENDING.value,
    )
    db.add(payout)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        existing = await _existing_payout_id(db, booking_id, transaction_id)
        record_payout("skipped")
        logger.info("payout_skipped", booking_id=booking_id, payout_id=existing, reason="concurrent_insert")
        return PayoutResult(created=False, payout_id=existing, skipped_reason="already_exists")

    await db.execute(
        update(Booking)
        .where(Booking.id == booking.id)
        .values(payout_status=PayoutStatus.PENDING.value)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    record_payout("created")
    logger.info(
        "payout_created",
        payout_id=payout.id,
        booking_id=booking.id,
        transaction_id=transaction_id,
        academy_id=academy.id,
        payout_amount=str(payout_amount),
    )
    return PayoutResult(created=True, payout_id=payout.id)


async def create_payout_job(
    session_factory: async_sessionmaker[AsyncSession],
    booking_id: int,
    transaction_id: int,
) -> PayoutResult:
    """Side-effect entry point: own session, own transaction."""
    async with session_factory() as db:
        return await create_payout(db, booking_id, transaction_id)
