"""
Tests for notification builders and dispatchers.
"""

import json

import pytest

from academy_booking.services import notifications
from academy_booking.services.notifications import (
    BookingContext,
    LogDispatcher,
    RedisQueueDispatcher,
)

from conftest import FakeRedis

CTX = BookingContext(
    booking_id=7,
    reference="BK-2026-0007",
    batch_id=3,
    batch_name="Evening Juniors",
    academy_id=2,
    academy_name="Smash Badminton Academy",
    user_id=11,
    user_name="Meera Test",
    participant_names=("Asha Rao", "Kabir Rao"),
    amount="1180.00",
)


def test_booking_requested_reaches_academy_user_and_admins():
    requests = notifications.booking_requested(CTX)
    assert [r.recipient_type for r in requests] == ["academy", "user", "role"]
    assert requests[0].recipient_id == 2
    assert "Asha Rao, Kabir Rao" in requests[0].body
    assert requests[2].roles == ("admin", "super_admin")
    assert requests[0].metadata["bookingId"] == 7


def test_rejection_reason_in_body():
    (request,) = notifications.booking_rejected(CTX, "Coach unavailable")
    assert "Reason: Coach unavailable" in request.body
    assert request.metadata["reason"] == "Coach unavailable"


def test_confirmation_mentions_amount():
    requests = notifications.booking_confirmed(CTX)
    assert all("INR 1180.00" in r.body for r in requests)


@pytest.mark.asyncio
async def test_redis_dispatcher_queues_json(monkeypatch):
    client = FakeRedis()

    async def get_redis():
        return client

    monkeypatch.setattr(notifications, "get_redis", get_redis)
    dispatcher = RedisQueueDispatcher("notifications:test")
    for request in notifications.booking_approved(CTX):
        await dispatcher.dispatch(request)

    (payload,) = client.lists["notifications:test"]
    data = json.loads(payload)
    assert data["title"] == "Booking Approved"
    assert data["recipient_id"] == 11
    assert data["metadata"]["type"] == "booking_approved"


@pytest.mark.asyncio
async def test_redis_dispatcher_falls_back_when_redis_is_down(monkeypatch):
    async def get_redis():
        return None

    sent = []

    class Fallback(LogDispatcher):
        async def dispatch(self, request):
            sent.append(request)

    monkeypatch.setattr(notifications, "get_redis", get_redis)
    dispatcher = RedisQueueDispatcher("notifications:test", fallback=Fallback())
    for request in notifications.booking_cancelled(CTX, None):
        await dispatcher.dispatch(request)
    assert len(sent) == 2
