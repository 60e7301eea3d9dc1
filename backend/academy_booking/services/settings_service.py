"""
Platform fee settings: Redis cache, then the platform_settings row, then
configured defaults.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from academy_booking.core.config import get_settings
from academy_booking.core.exceptions import ValidationError
from academy_booking.core.logging import get_logger
from academy_booking.models.platform_settings import PlatformSettings
from academy_booking.services.cache_service import (
    get_cached_fee_settings,
    invalidate_fee_settings,
    set_cached_fee_settings,
)
from academy_booking.services.money import FeeSettings, round_money, to_decimal

logger = get_logger(__name__)

HUNDRED = Decimal("100")


def _to_payload(fees: FeeSettings) -> dict:
    return {
        "platform_fee": str(fees.platform_fee),
        "tax_percentage": str(fees.tax_percentage),
        "tax_enabled": fees.tax_enabled,
        "commission_rate": str(fees.commission_rate),
    }


def _from_payload(data: dict) -> FeeSettings:
    return FeeSettings(
        platform_fee=to_decimal(data["platform_fee"]),
        tax_percentage=to_decimal(data["tax_percentage"]),
        tax_enabled=bool(data["tax_enabled"]),
        commission_rate=to_decimal(data["commission_rate"]),
    )


def default_fee_settings() -> FeeSettings:
    settings = get_settings()
    return FeeSettings(
        platform_fee=round_money(settings.PLATFORM_FEE),
        tax_percentage=round_money(settings.TAX_PERCENTAGE),
        tax_enabled=settings.TAX_ENABLED,
        commission_rate=round_money(settings.COMMISSION_RATE),
    )


async def _load_row(db: AsyncSession) -> Optional[PlatformSettings]:
    result = await db.execute(select(PlatformSettings).order_by(PlatformSettings.id).limit(1))
    return result.scalar_one_or_none()


async def get_fee_settings(db: AsyncSession) -> FeeSettings:
    cached = await get_cached_fee_settings()
    if cached:
        try:
            return _from_payload(cached)
        except (KeyError, ArithmeticError, TypeError) as e:
            logger.warning("fee_settings_cache_corrupt", error=str(e))

    row = await _load_row(db)
    if row is None:
        fees = default_fee_settings()
    else:
        fees = FeeSettings(
            platform_fee=round_money(row.platform_fee),
            tax_percentage=round_money(row.tax_percentage),
            tax_enabled=row.tax_enabled,
            commission_rate=round_money(row.commission_rate),
        )

    await set_cached_fee_settings(_to_payload(fees))
    return fees


async def update_fee_settings(
    db: AsyncSession,
    platform_fee: Optional[Decimal] = None,
    tax_percentage: Optional[Decimal] = None,
    tax_enabled: Optional[bool] = None,
    commission_rate: Optional[Decimal] = None,
) -> FeeSettings:
    """Persist new fee settings and drop the cached copy."""
    for name, value in (
        ("platform_fee", platform_fee),
        ("tax_percentage", tax_percentage),
        ("commission_rate", commission_rate),
    ):
        if value is not None and value < 0:
            raise ValidationError(f"{name} cannot be negative")
    for name, value in (("tax_percentage", tax_percentage), ("commission_rate", commission_rate)):
        if value is not None and value > HUNDRED:
            raise ValidationError(f"{name} cannot exceed 100")

    row = await _load_row(db)
    if row is None:
        defaults = default_fee_settings()
        row = PlatformSettings(
            platform_fee=defaults.platform_fee,
            tax_percentage=defaults.tax_percentage,
            tax_enabled=defaults.tax_enabled,
            commission_rate=defaults.commission_rate,
        )
        db.add(row)

    if platform_fee is not None:
        row.platform_fee = round_money(platform_fee)
    if tax_percentage is not None:
        row.tax_percentage = round_money(tax_percentage)
    if tax_enabled is not None:
        row.tax_enabled = tax_enabled
    if commission_rate is not None:
        row.commission_rate = round_money(commission_rate)

    await db.commit()
    await invalidate_fee_settings()

    fees = FeeSettings(
        platform_fee=round_money(row.platform_fee),
        tax_percentage=round_money(row.tax_percentage),
        tax_enabled=row.tax_enabled,
        commission_rate=round_money(row.commission_rate),
    )
    logger.info("fee_settings_updated", **_to_payload(fees))
    return fees
