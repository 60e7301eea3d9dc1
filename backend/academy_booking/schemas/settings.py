"""
Pydantic schemas for platform fee settings.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class FeeSettingsResponse(BaseModel):
    platform_fee: Decimal
    tax_percentage: Decimal
    tax_enabled: bool
    commission_rate: Decimal

    model_config = {"from_attributes": True}


class FeeSettingsUpdate(BaseModel):
    platform_fee: Optional[Decimal] = Field(default=None, ge=0)
    tax_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100)
    tax_enabled: Optional[bool] = None
    commission_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
