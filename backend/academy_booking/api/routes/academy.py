"""
Academy-side booking decisions. The caller must own the booking's academy.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from academy_booking.api.deps import get_dispatcher, get_runner
from academy_booking.core.security import get_current_user_id
from academy_booking.db.session import get_db
from academy_booking.schemas.booking import BookingRejectRequest, BookingResponse
from academy_booking.services import booking_service
from academy_booking.services.background_tasks import SideEffectRunner
from academy_booking.services.notifications import NotificationDispatcher

router = APIRouter(prefix="/academy/bookings", tags=["Academy"])


@router.post("/{booking_id}/approve", response_model=BookingResponse)
async def approve_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    runner: SideEffectRunner = Depends(get_runner),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    return await booking_service.approve_booking(db, user_id, booking_id, runner, dispatcher)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: int,
    request: BookingRejectRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    runner: SideEffectRunner = Depends(get_runner),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Reject a pending or approved booking and release its slots."""
    return await booking_service.reject_booking(db, user_id, booking_id, request.reason, runner, dispatcher)
