from academy_booking.schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingRejectRequest,
    BookingResponse,
    BatchSlotsResponse,
    BookingSummaryResponse,
    PaymentCancelRequest,
    PaymentOrderResponse,
    PaymentVerifyRequest,
    SlotRequest,
)
from academy_booking.schemas.settings import FeeSettingsResponse, FeeSettingsUpdate
from academy_booking.schemas.webhook import WebhookAck, WebhookEvent

__all__ = [
    "SlotRequest", "BookingCreate", "BookingCancelRequest", "BookingRejectRequest",
    "BookingResponse", "BookingSummaryResponse", "BatchSlotsResponse",
    "PaymentOrderResponse", "PaymentVerifyRequest", "PaymentCancelRequest",
    "FeeSettingsResponse", "FeeSettingsUpdate",
    "WebhookEvent", "WebhookAck",
]
