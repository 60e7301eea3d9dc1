"""
Platform fee settings, admin only.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from academy_booking.api.deps import require_admin
from academy_booking.db.session import get_db
from academy_booking.schemas.settings import FeeSettingsResponse, FeeSettingsUpdate
from academy_booking.services import settings_service

router = APIRouter(prefix="/admin/settings", tags=["Admin"])


@router.get("/fees", response_model=FeeSettingsResponse)
async def get_fee_settings(
    admin_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await settings_service.get_fee_settings(db)


@router.put("/fees", response_model=FeeSettingsResponse)
async def update_fee_settings(
    update: FeeSettingsUpdate,
    admin_id: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """New bookings are priced with these values; existing bookings keep their snapshot."""
    return await settings_service.update_fee_settings(
        db,
        platform_fee=update.platform_fee,
        tax_percentage=update.tax_percentage,
        tax_enabled=update.tax_enabled,
        commission_rate=update.commission_rate,
    )
