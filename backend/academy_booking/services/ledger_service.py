"""
Ledger recorder: one Transaction row per (booking, gateway order).

Every write is an INSERT ... ON CONFLICT (booking_id, gateway_order_id) DO
UPDATE, so a retried or concurrent call converges on the same row and the
caller always gets its id back. PostgreSQL and SQLite both support the
statement; the dialect-specific `insert` construct is picked from the
session's bind.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from academy_booking.core.logging import get_logger
from academy_booking.models.booking import Booking
from academy_booking.models.transaction import (
    Transaction,
    TransactionSource,
    TransactionStatus,
    TransactionType,
)

logger = get_logger(__name__)

_CONFLICT_COLUMNS = ["booking_id", "gateway_order_id"]


def _insert(db: AsyncSession):
    if db.bind.dialect.name == "postgresql":
        return pg_insert(Transaction)
    return sqlite_insert(Transaction)


async def _upsert(
    db: AsyncSession,
    booking: Booking,
    gateway_order_id: str,
    status: TransactionStatus,
    amount: Decimal,
    currency: str,
    **fields: Any,
) -> int:
    values = {
        "booking_id": booking.id,
        "user_id": booking.user_id,
        "gateway_order_id": gateway_order_id,
        "amount": amount,
        "currency": currency,
        "type": TransactionType.PAYMENT.value,
        "status": status.value,
        "source": TransactionSource.USER_VERIFICATION.value,
        **fields,
    }
    stmt = _insert(db).values(**values)
    changed = {"status": status.value, "amount": amount, "updated_at": func.now(), **fields}
    stmt = stmt.on_conflict_do_update(index_elements=_CONFLICT_COLUMNS, set_=changed).returning(
        Transaction.id
    )
    result = await db.execute(stmt)
    transaction_id = result.scalar_one()
    logger.info(
        "ledger_recorded",
        transaction_id=transaction_id,
        booking_id=booking.id,
        order_id=gateway_order_id,
        status=status.value,
    )
    return transaction_id


async def record_initiated(
    db: AsyncSession,
    booking: Booking,
    gateway_order_id: str,
    amount: Decimal,
    currency: str,
) -> int:
    return await _upsert(
        db,
        booking,
        gateway_order_id,
        TransactionStatus.INITIATED,
        amount,
        currency,
        failure_reason=None,
    )


async def record_success(
    db: AsyncSession,
    booking: Booking,
    gateway_order_id: str,
    gateway_payment_id: str,
    gateway_signature: str,
    amount: Decimal,
    currency: str,
    payment_method: Optional[str] = None,
    source: TransactionSource = TransactionSource.USER_VERIFICATION,
) -> int:
    return await _upsert(
        db,
        booking,
        gateway_order_id,
        TransactionStatus.SUCCESS,
        amount,
        currency,
        source=source.value,
        gateway_payment_id=gateway_payment_id,
        gateway_signature=gateway_signature,
        payment_method=payment_method,
        failure_reason=None,
        processed_at=datetime.now(timezone.utc),
    )


async def record_failed(
    db: AsyncSession,
    booking: Booking,
    gateway_order_id: str,
    gateway_payment_id: Optional[str],
    gateway_signature: Optional[str],
    amount: Decimal,
    currency: str,
    reason: str,
    source: TransactionSource = TransactionSource.USER_VERIFICATION,
) -> int:
    return await _upsert(
        db,
        booking,
        gateway_order_id,
        TransactionStatus.FAILED,
        amount,
        currency,
        source=source.value,
        gateway_payment_id=gateway_payment_id,
        gateway_signature=gateway_signature,
        failure_reason=reason,
        processed_at=datetime.now(timezone.utc),
    )


async def record_cancelled(
    db: AsyncSession,
    booking_id: int,
    gateway_order_id: str,
    reason: str,
) -> Optional[int]:
    """Mark an existing row cancelled. Never creates one."""
    result = await db.execute(
        update(Transaction)
        .where(
            Transaction.booking_id == booking_id,
            Transaction.gateway_order_id == gateway_order_id,
            Transaction.status != TransactionStatus.SUCCESS.value,
        )
        .values(
            status=TransactionStatus.CANCELLED.value,
            failure_reason=reason,
            processed_at=datetime.now(timezone.utc),
        )
        .returning(Transaction.id)
        .execution_options(synchronize_session=False)
    )
    transaction_id = result.scalar_one_or_none()
    if transaction_id is not None:
        logger.info(
            "ledger_recorded",
            transaction_id=transaction_id,
            booking_id=booking_id,
            order_id=gateway_order_id,
            status=TransactionStatus.CANCELLED.value,
        )
    return transaction_id

