"""
Tests for approve, reject, cancel and complete.
"""

import pytest
from sqlalchemy import select

from academy_booking.core.exceptions import AuthorizationError, InvalidStateError, NotFoundError
from academy_booking.models import Batch, BookingParticipant
from academy_booking.services import booking_service, payment_service

from conftest import add_user, get_transaction


async def booked_slots(db, batch_id: int) -> int:
    batch = await db.get(Batch, batch_id, populate_existing=True)
    return batch.booked_slots


async def active_links(db, booking_id: int) -> int:
    result = await db.execute(
        select(BookingParticipant).where(
            BookingParticipant.booking_id == booking_id, BookingParticipant.is_active.is_(True)
        )
    )
    return len(result.scalars().all())


@pytest.fixture
def slot_request(db_session, test_user, test_batch, participants, runner, dispatcher):
    async def _request():
        return await booking_service.request_slot(
            db_session, test_user.id, test_batch.id, [p.id for p in participants], runner, dispatcher
        )

    return _request


@pytest.mark.asyncio
async def test_approve(db_session, academy_owner, slot_request, runner, dispatcher):
    booking = await slot_request()
    booking = await booking_service.approve_booking(db_session, academy_owner.id, booking.id, runner, dispatcher)

    assert booking.status == "approved"
    assert booking.payment_status == "not_initiated"
    await runner.drain()
    assert "booking_approved" in dispatcher.types()


@pytest.mark.asyncio
async def test_approve_requires_academy_owner(db_session, test_user, slot_request, runner, dispatcher):
    booking = await slot_request()
    with pytest.raises(AuthorizationError):
        await booking_service.approve_booking(db_session, test_user.id, booking.id, runner, dispatcher)


@pytest.mark.asyncio
async def test_approve_twice(db_session, academy_owner, slot_request, runner, dispatcher):
    booking = await slot_request()
    await booking_service.approve_booking(db_session, academy_owner.id, booking.id, runner, dispatcher)
    with pytest.raises(InvalidStateError):
        await booking_service.approve_booking(db_session, academy_owner.id, booking.id, runner, dispatcher)


@pytest.mark.asyncio
async def test_reject_releases_slots(db_session, academy_owner, test_batch, slot_request, runner, dispatcher):
    booking = await slot_request()
    assert await booked_slots(db_session, test_batch.id) == 2

    booking = await booking_service.reject_booking(
        db_session, academy_owner.id, booking.id, "Batch is full for the term", runner, dispatcher
    )

    assert booking.status == "rejected"
    assert booking.rejection_reason == "Batch is full for the term"
    assert await booked_slots(db_session, test_batch.id) == 0
    assert await active_links(db_session, booking.id) == 0
    await runner.drain()
    assert "booking_rejected" in dispatcher.types()


@pytest.mark.asyncio
async def test_reject_with_live_order_cancels_payment(
    db_session, test_user, academy_owner, slot_request, gateway, runner, dispatcher
):
    booking = await slot_request()
    await booking_service.approve_booking(db_session, academy_owner.id, booking.id, runner, dispatcher)
    order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)

    booking = await booking_service.reject_booking(db_session, academy_owner.id, booking.id, None, runner, dispatcher)

    assert booking.status == "rejected"
    assert booking.payment_status == "cancelled"
    transaction = await get_transaction(db_session, booking.id, order.order_id)
    assert transaction.status == "cancelled"


@pytest.mark.asyncio
async def test_cancel_after_approval_before_payment(
    db_session, test_user, academy_owner, test_batch, slot_request, runner, dispatcher
):
    booking = await slot_request()
    await booking_service.approve_booking(db_session, academy_owner.id, booking.id, runner, dispatcher)

    booking = await booking_service.cancel_booking(
        db_session, test_user.id, booking.id, "Schedule clash", runner, dispatcher
    )

    assert booking.status == "cancelled"
    assert booking.payment_status == "not_initiated"
    assert booking.cancelled_by == "user"
    assert booking.cancellation_reason == "Schedule clash"
    assert booking.cancelled_at is not None
    assert await booked_slots(db_session, test_batch.id) == 0
    assert await active_links(db_session, booking.id) == 0

    # Participants are free to book the batch again
    again = await slot_request()
    assert again.status == "slot_booked"
    assert await booked_slots(db_session, test_batch.id) == 2


@pytest.mark.asyncio
async def test_cancel_twice(db_session, test_user, slot_request, runner, dispatcher):
    booking = await slot_request()
    await booking_service.cancel_booking(db_session, test_user.id, booking.id, None, runner, dispatcher)
    with pytest.raises(InvalidStateError):
        await booking_service.cancel_booking(db_session, test_user.id, booking.id, None, runner, dispatcher)


@pytest.mark.asyncio
async def test_cannot_cancel_after_payment(
    db_session, test_user, academy_owner, test_batch, slot_request, gateway, runner, dispatcher
):
    booking = await slot_request()
    await booking_service.approve_booking(db_session, academy_owner.id, booking.id, runner, dispatcher)
    order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)
    payment_id, signature = gateway.pay(order.order_id)
    await payment_service.verify_payment(
        db_session, test_user.id, order.order_id, payment_id, signature, gateway, runner, dispatcher
    )

    with pytest.raises(InvalidStateError, match="successful payment"):
        await booking_service.cancel_booking(db_session, test_user.id, booking.id, None, runner, dispatcher)

    completed = await booking_service.complete_booking(db_session, booking.id)
    assert completed.status == "completed"
    assert await booked_slots(db_session, test_batch.id) == 0


@pytest.mark.asyncio
async def test_user_sees_only_own_bookings(db_session, test_user, slot_request):
    booking = await slot_request()
    stranger = await add_user(db_session, "nosy@example.com", "Nosy")

    assert [b.id for b in await booking_service.get_user_bookings(db_session, test_user.id)] == [booking.id]
    assert await booking_service.get_user_bookings(db_session, stranger.id) == []
    with pytest.raises(NotFoundError):
        await booking_service.get_user_booking(db_session, stranger.id, booking.id)
