"""
Batch maintenance, admin only.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from academy_booking.api.deps import require_admin
from academy_booking.core.logging import get_logger
from academy_booking.db.session import get_db
from academy_booking.schemas.booking import BatchSlotsResponse
from academy_booking.services.capacity import reconcile_booked_slots

logger = get_logger(__name__)
router = APIRouter(prefix="/admin/batches", tags=["Admin"])


@router.post("/{batch_id}/reconcile-slots", response_model=BatchSlotsResponse)
async def reconcile_slots(
    batch_id: int,
    admin_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Rebuild the batch's booked_slots counter from its slot-holding bookings."""
    booked = await reconcile_booked_slots(db, batch_id)
    await db.commit()
    logger.info("batch_slots_reconciled_by_admin", batch_id=batch_id, admin_id=admin_id, booked_slots=booked)
    return BatchSlotsResponse(batch_id=batch_id, booked_slots=booked)
