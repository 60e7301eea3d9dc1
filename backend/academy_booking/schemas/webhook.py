"""
Pydantic schemas for Razorpay webhook deliveries.

Only the fields settlement reads are declared; the rest of the gateway's
payload is ignored.
"""

from typing import Optional

from pydantic import BaseModel


class WebhookPaymentEntity(BaseModel):
    id: str
    order_id: Optional[str] = None
    amount: int  # minor units
    currency: str = "INR"
    status: str
    method: Optional[str] = None
    error_code: Optional[str] = None
    error_description: Optional[str] = None
    error_reason: Optional[str] = None


class WebhookOrderEntity(BaseModel):
    id: str
    amount: int
    amount_paid: int = 0
    currency: str = "INR"
    status: str


class WebhookPaymentWrapper(BaseModel):
    entity: WebhookPaymentEntity


class WebhookOrderWrapper(BaseModel):
    entity: WebhookOrderEntity


class WebhookPayload(BaseModel):
    payment: Optional[WebhookPaymentWrapper] = None
    order: Optional[WebhookOrderWrapper] = None


class WebhookEvent(BaseModel):
    event: str
    payload: WebhookPayload

    @property
    def payment(self) -> Optional[WebhookPaymentEntity]:
        return self.payload.payment.entity if self.payload.payment else None

    @property
    def order(self) -> Optional[WebhookOrderEntity]:
        return self.payload.order.entity if self.payload.order else None


class WebhookAck(BaseModel):
    received: bool = True
    outcome: str
