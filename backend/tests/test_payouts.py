"""
Tests for payout creation on confirmed bookings.
"""

import pytest
from sqlalchemy import func, select

from academy_booking.models.payout import Payout
from academy_booking.services import booking_service, payment_service, payout_service
from academy_booking.services.booking_service import load_booking


@pytest.fixture
def paid_booking(db_session, test_user, academy_owner, test_batch, participants, gateway, runner, dispatcher):
    """Confirmed booking. Returns (booking, transaction id); the queued payout job is drained first."""

    async def _pay():
        booking = await booking_service.request_slot(
            db_session, test_user.id, test_batch.id, [p.id for p in participants], runner, dispatcher
        )
        await booking_service.approve_booking(db_session, academy_owner.id, booking.id, runner, dispatcher)
        order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)
        payment_id, signature = gateway.pay(order.order_id)
        await payment_service.verify_payment(
            db_session, test_user.id, order.order_id, payment_id, signature, gateway, runner, dispatcher
        )
        await runner.drain()
        payout = (await db_session.execute(select(Payout).where(Payout.booking_id == booking.id))).scalar_one()
        return await load_booking(db_session, booking.id), payout.transaction_id

    return _pay


@pytest.mark.asyncio
async def test_create_payout_is_idempotent(db_session, paid_booking):
    booking, transaction_id = await paid_booking()

    result = await payout_service.create_payout(db_session, booking.id, transaction_id)

    assert not result.created
    assert result.skipped_reason == "already_exists"
    assert result.payout_id is not None
    total = await db_session.scalar(select(func.count()).select_from(Payout))
    assert total == 1


@pytest.mark.asyncio
async def test_payout_job_uses_its_own_session(session_factory, paid_booking):
    booking, transaction_id = await paid_booking()

    result = await payout_service.create_payout_job(session_factory, booking.id, transaction_id)

    assert result.skipped_reason == "already_exists"
    assert booking.payout_status == "pending"
