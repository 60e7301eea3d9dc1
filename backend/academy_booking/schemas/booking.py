"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from academy_booking.services import state_machine


class SlotRequest(BaseModel):
    batch_id: int
    participant_ids: list[int] = Field(..., min_length=1, max_length=20)


class BookingCreate(SlotRequest):
    notes: Optional[str] = Field(default=None, max_length=1000)


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class BookingRejectRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class PaymentVerifyRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=64)
    payment_id: str = Field(..., min_length=1, max_length=64)
    signature: str = Field(..., min_length=1, max_length=255)


class PaymentCancelRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=64)


class BookingParticipantResponse(BaseModel):
    participant_id: int
    is_active: bool

    model_config = {"from_attributes": True}


class PriceBreakdownResponse(BaseModel):
    participant_count: int
    admission_fee_per_participant: Decimal
    total_admission_fee: Decimal
    base_fee_per_participant: Decimal
    total_base_fee: Decimal
    batch_amount: Decimal
    platform_fee: Decimal
    subtotal: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    currency: str

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    reference: Optional[str] = None
    user_id: int
    batch_id: int
    academy_id: int
    sport_id: int
    status: str
    payment_status: str
    payout_status: str
    notes: Optional[str] = None

    participant_count: int
    participants: list[BookingParticipantResponse] = []
    admission_fee_per_participant: Decimal
    total_admission_fee: Decimal
    base_fee_per_participant: Decimal
    total_base_fee: Decimal
    batch_amount: Decimal
    platform_fee: Decimal
    subtotal: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    amount: Decimal
    currency: str

    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    payment_failure_reason: Optional[str] = None
    payment_initiated_count: int = 0
    payment_cancelled_count: int = 0
    payment_failed_count: int = 0

    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def status_message(self) -> str:
        return state_machine.status_message(self.status, self.payment_status)

    @computed_field
    @property
    def can_cancel(self) -> bool:
        return state_machine.can_cancel(self.status, self.payment_status)

    @computed_field
    @property
    def payment_link_enabled(self) -> bool:
        return state_machine.is_payment_link_enabled(self.status, self.payment_status)


class SummaryParticipant(BaseModel):
    id: int
    name: str
    age: int


class BookingSummaryResponse(BaseModel):
    batch_id: int
    batch_name: str
    academy_id: int
    academy_name: str
    participants: list[SummaryParticipant]
    price: PriceBreakdownResponse


class PaymentOrderResponse(BaseModel):
    booking_id: int
    order_id: str
    amount: int = Field(..., description="Order amount in minor units")
    currency: str
    receipt: Optional[str] = None
    key_id: str
    reused: bool = False

    model_config = {"from_attributes": True}


class BatchSlotsResponse(BaseModel):
    batch_id: int
    booked_slots: int
