"""
Tests for gateway webhook settlement.
"""

import json
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from academy_booking.models import Booking, Transaction
from academy_booking.models.payout import Payout
from academy_booking.services import booking_service, payment_service
from academy_booking.services.booking_service import load_booking

from conftest import FakeGateway, get_transaction

WEBHOOK_URL = "/api/v1/bookings/payments/webhook"


async def approved_booking(db, user, batch, participants, owner, runner, dispatcher) -> Booking:
    booking = await booking_service.request_slot(
        db, user.id, batch.id, [p.id for p in participants], runner, dispatcher
    )
    return await booking_service.approve_booking(db, owner.id, booking.id, runner, dispatcher)


def payment_event(event: str, order_id: str, payment_id: str, amount: int = 118000, **entity) -> dict:
    payment = {
        "id": payment_id,
        "order_id": order_id,
        "amount": amount,
        "currency": "INR",
        "status": "captured" if event == "payment.captured" else "failed",
        "method": "upi",
    }
    payment.update(entity)
    return {"event": event, "payload": {"payment": {"entity": payment}}}


async def deliver(client, payload: dict, signature: str = None):
    body = json.dumps(payload).encode()
    headers = {"Content-Type": "application/json"}
    headers["X-Razorpay-Signature"] = signature if signature is not None else FakeGateway.sign_webhook(body)
    return await client.post(WEBHOOK_URL, content=body, headers=headers)


async def payout_count(db, booking_id: int) -> int:
    return await db.scalar(select(func.count()).select_from(Payout).where(Payout.booking_id == booking_id))


@pytest.mark.asyncio
async def test_captured_webhook_confirms_booking(
    client, db_session, test_user, academy_owner, test_batch, participants, gateway, runner, dispatcher
):
    booking = await approved_booking(db_session, test_user, test_batch, participants, academy_owner, runner, dispatcher)
    order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)

    response = await deliver(client, payment_event("payment.captured", order.order_id, "pay_hook_1"))

    assert response.status_code == 200, response.text
    assert response.json() == {"received": True, "outcome": "confirmed"}
    booking = await load_booking(db_session, booking.id)
    assert booking.status == "confirmed"
    assert booking.payment_status == "success"
    assert booking.gateway_payment_id == "pay_hook_1"
    assert booking.paid_at is not None

    transaction = await get_transaction(db_session, booking.id, order.order_id)
    assert transaction.status == "success"
    assert transaction.source == "webhook"
    assert transaction.gateway_payment_id == "pay_hook_1"
    assert transaction.amount == Decimal("1180.00")

    await runner.drain()
    assert await payout_count(db_session, booking.id) == 1
    assert "booking_confirmed" in dispatcher.types()


@pytest.mark.asyncio
async def test_captured_webhook_after_verify_is_a_no_op(
    client, db_session, test_user, academy_owner, test_batch, participants, gateway, runner, dispatcher
):
    booking = await approved_booking(db_session, test_user, test_batch, participants, academy_owner, runner, dispatcher)
    order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)
    payment_id, signature = gateway.pay(order.order_id)
    await payment_service.verify_payment(
        db_session, test_user.id, order.order_id, payment_id, signature, gateway, runner, dispatcher
    )

    response = await deliver(client, payment_event("payment.captured", order.order_id, payment_id))

    assert response.status_code == 200, response.text
    assert response.json()["outcome"] == "already_settled"
    await runner.drain()
    transactions = (
        await db_session.execute(select(Transaction).where(Transaction.booking_id == booking.id))
    ).scalars().all()
    assert len(transactions) == 1
    assert transactions[0].source == "user_verification"
    assert await payout_count(db_session, booking.id) == 1


@pytest.mark.asyncio
async def test_redelivered_capture_settles_once(
    client, db_session, test_user, academy_owner, test_batch, participants, gateway, runner, dispatcher
):
    booking = await approved_booking(db_session, test_user, test_batch, participants, academy_owner, runner, dispatcher)
    order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)
    payload = payment_event("payment.captured", order.order_id, "pay_hook_2")

    first = await deliver(client, payload)
    second = await deliver(client, payload)

    assert first.json()["outcome"] == "confirmed"
    assert second.json()["outcome"] == "already_settled"
    await runner.drain()
    assert await payout_count(db_session, booking.id) == 1


@pytest.mark.asyncio
async def test_order_paid_webhook_confirms_booking(
    client, db_session, test_user, academy_owner, test_batch, participants, gateway, runner, dispatcher
):
    booking = await approved_booking(db_session, test_user, test_batch, participants, academy_owner, runner, dispatcher)
    order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)
    payload = {
        "event": "order.paid",
        "payload": {
            "order": {
                "entity": {
                    "id": order.order_id,
                    "amount": 118000,
                    "amount_paid": 118000,
                    "currency": "INR",
                    "status": "paid",
                }
            }
        },
    }

    response = await deliver(client, payload)

    assert response.json()["outcome"] == "confirmed"
    booking = await load_booking(db_session, booking.id)
    assert booking.status == "confirmed"


@pytest.mark.asyncio
async def test_failed_webhook_marks_payment_failed(
    client, db_session, test_user, academy_owner, test_batch, participants, gateway, runner, dispatcher
):
    booking = await approved_booking(db_session, test_user, test_batch, participants, academy_owner, runner, dispatcher)
    order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)

    response = await deliver(
        client,
        payment_event(
            "payment.failed", order.order_id, "pay_hook_3", error_description="Card declined by bank"
        ),
    )

    assert response.json()["outcome"] == "failed"
    booking = await load_booking(db_session, booking.id)
    assert booking.status == "approved"
    assert booking.payment_status == "failed"
    assert booking.payment_failed_count == 1
    assert booking.payment_failure_reason == "Card declined by bank"
    transaction = await get_transaction(db_session, booking.id, order.order_id)
    assert transaction.status == "failed"
    assert transaction.source == "webhook"

    # The booking can be paid again
    retry = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)
    assert retry.order_id != order.order_id


@pytest.mark.asyncio
async def test_failed_webhook_never_demotes_success(
    client, db_session, test_user, academy_owner, test_batch, participants, gateway, runner, dispatcher
):
    booking = await approved_booking(db_session, test_user, test_batch, participants, academy_owner, runner, dispatcher)
    order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)
    payment_id, signature = gateway.pay(order.order_id)
    await payment_service.verify_payment(
        db_session, test_user.id, order.order_id, payment_id, signature, gateway, runner, dispatcher
    )

    response = await deliver(client, payment_event("payment.failed", order.order_id, "pay_earlier"))

    assert response.json()["outcome"] == "ignored"
    booking = await load_booking(db_session, booking.id)
    assert booking.payment_status == "success"
    transaction = await get_transaction(db_session, booking.id, order.order_id)
    assert transaction.status == "success"


@pytest.mark.asyncio
async def test_capture_with_wrong_amount_fails_payment(
    client, db_session, test_user, academy_owner, test_batch, participants, gateway, runner, dispatcher
):
    booking = await approved_booking(db_session, test_user, test_batch, participants, academy_owner, runner, dispatcher)
    order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)

    response = await deliver(client, payment_event("payment.captured", order.order_id, "pay_hook_4", amount=100))

    assert response.json()["outcome"] == "amount_mismatch"
    booking = await load_booking(db_session, booking.id)
    assert booking.status == "approved"
    assert booking.payment_status == "failed"
    assert booking.payment_failure_reason == "Payment amount mismatch. Expected: 118000, Received: 100"


@pytest.mark.asyncio
async def test_capture_after_cancellation_is_recorded_for_refund(
    client, db_session, test_user, academy_owner, test_batch, participants, gateway, runner, dispatcher
):
    booking = await approved_booking(db_session, test_user, test_batch, participants, academy_owner, runner, dispatcher)
    order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)
    await booking_service.cancel_booking(db_session, test_user.id, booking.id, "Changed plans", runner, dispatcher)

    response = await deliver(client, payment_event("payment.captured", order.order_id, "pay_hook_5"))

    assert response.json()["outcome"] == "recorded_for_refund"
    booking = await load_booking(db_session, booking.id)
    assert booking.status == "cancelled"
    transaction = await get_transaction(db_session, booking.id, order.order_id)
    assert transaction.status == "success"
    assert transaction.source == "webhook"
    await runner.drain()
    assert await payout_count(db_session, booking.id) == 0


@pytest.mark.asyncio
async def test_unknown_order_and_event(client):
    unknown_order = await deliver(client, payment_event("payment.captured", "order_missing", "pay_x"))
    assert unknown_order.status_code == 200
    assert unknown_order.json()["outcome"] == "not_found"

    refund = await deliver(client, {"event": "refund.processed", "payload": {}})
    assert refund.status_code == 200
    assert refund.json()["outcome"] == "ignored"


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(
    client, db_session, test_user, academy_owner, test_batch, participants, gateway, runner, dispatcher
):
    booking = await approved_booking(db_session, test_user, test_batch, participants, academy_owner, runner, dispatcher)
    order = await payment_service.create_payment_order(db_session, test_user.id, booking.id, gateway)
    payload = payment_event("payment.captured", order.order_id, "pay_forged")

    forged = await deliver(client, payload, signature="0" * 64)
    assert forged.status_code == 400
    assert forged.json()["detail"] == "Invalid webhook signature"

    unsigned = await client.post(WEBHOOK_URL, json=payload)
    assert unsigned.status_code == 400
    assert unsigned.json()["detail"] == "Missing webhook signature"

    booking = await load_booking(db_session, booking.id)
    assert booking.payment_status == "initiated"


@pytest.mark.asyncio
async def test_webhook_rejects_malformed_payload(client):
    response = await deliver(client, {"payload": {}})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid webhook payload"
