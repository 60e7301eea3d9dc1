"""
Booking endpoints for the user app: slot requests, payments and cancellation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from pydantic import ValidationError as PayloadError
from sqlalchemy.ext.asyncio import AsyncSession

from academy_booking.api.deps import get_dispatcher, get_gateway, get_runner
from academy_booking.core.exceptions import ValidationError
from academy_booking.core.logging import get_logger
from academy_booking.core.metrics import record_webhook
from academy_booking.core.security import get_current_user_id
from academy_booking.db.session import get_db
from academy_booking.schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingResponse,
    BookingSummaryResponse,
    PaymentCancelRequest,
    PaymentOrderResponse,
    PaymentVerifyRequest,
    PriceBreakdownResponse,
    SlotRequest,
    SummaryParticipant,
)
from academy_booking.schemas.webhook import WebhookAck, WebhookEvent
from academy_booking.services import booking_service, payment_service, webhook_service
from academy_booking.services.background_tasks import SideEffectRunner
from academy_booking.services.interfaces.payment_gateway import PaymentGateway
from academy_booking.services.notifications import NotificationDispatcher

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/summary", response_model=BookingSummaryResponse)
async def booking_summary(
    request: SlotRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Validate a prospective slot request and quote its price. Nothing is reserved."""
    ctx = await booking_service.get_booking_summary(db, user_id, request.batch_id, request.participant_ids)
    return BookingSummaryResponse(
        batch_id=ctx.batch.id,
        batch_name=ctx.batch.name,
        academy_id=ctx.academy.id,
        academy_name=ctx.academy.name,
        participants=[
            SummaryParticipant(id=p.id, name=p.full_name, age=ctx.ages[p.id]) for p in ctx.participants
        ],
        price=PriceBreakdownResponse.model_validate(ctx.breakdown),
    )


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    runner: SideEffectRunner = Depends(get_runner),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Request slots in a batch.

    Capacity is reserved with a conditional counter update and enrollment is
    enforced by a unique index, so concurrent requests can never overbook a
    batch or enroll a participant twice.
    """
    return await booking_service.request_slot(
        db,
        user_id,
        booking_data.batch_id,
        booking_data.participant_ids,
        runner,
        dispatcher,
        notes=booking_data.notes,
    )


@router.get("/", response_model=list[BookingResponse])
async def list_user_bookings(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings for the authenticated user."""
    return await booking_service.get_user_bookings(db, user_id)


@router.post("/payments/verify", response_model=BookingResponse)
async def verify_payment(
    request: PaymentVerifyRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    runner: SideEffectRunner = Depends(get_runner),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return await payment_service.verify_payment(
        db,
        user_id,
        request.order_id,
        request.payment_id,
        request.signature,
        gateway,
        runner,
        dispatcher,
    )


@router.post("/payments/cancel", response_model=BookingResponse)
async def cancel_payment_order(
    request: PaymentCancelRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Abandon checkout. The booking stays approved and can be paid later."""
    return await payment_service.cancel_payment_order(db, user_id, request.order_id)


@router.post("/payments/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    runner: SideEffectRunner = Depends(get_runner),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Gateway-to-server settlement. Authenticated by the HMAC signature over the
    raw body, not by a user token.
    """
    body = await request.body()
    if not x_razorpay_signature:
        record_webhook("unknown", "missing_signature")
        raise ValidationError("Missing webhook signature")
    if not await gateway.verify_webhook_signature(body, x_razorpay_signature):
        record_webhook("unknown", "invalid_signature")
        logger.warning("webhook_signature_rejected")
        raise ValidationError("Invalid webhook signature")

    try:
        event = WebhookEvent.model_validate_json(body)
    except PayloadError:
        record_webhook("unknown", "invalid_payload")
        raise ValidationError("Invalid webhook payload")

    outcome = await webhook_service.handle_webhook(db, event, runner, dispatcher)
    return WebhookAck(outcome=outcome.value)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.get_user_booking(db, user_id, booking_id)


@router.post("/{booking_id}/payment-order", response_model=PaymentOrderResponse)
async def create_payment_order(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    return await payment_service.create_payment_order(db, user_id, booking_id, gateway)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    request: BookingCancelRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    runner: SideEffectRunner = Depends(get_runner),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Cancel a booking and release its slots back to the batch."""
    return await booking_service.cancel_booking(db, user_id, booking_id, request.reason, runner, dispatcher)
