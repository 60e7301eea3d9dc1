"""
Payment gateway factory.
Configures which PaymentGateway implementation the payment endpoints use.
"""

from typing import Optional

from academy_booking.core.config import get_settings
from academy_booking.core.exceptions import GatewayError
from academy_booking.services.interfaces.payment_gateway import PaymentGateway


def build_payment_gateway() -> PaymentGateway:
    """
    Build the configured gateway.

    Selected via the PAYMENT_GATEWAY env var. Only "razorpay" ships here;
    tests override the `get_payment_gateway` dependency instead.
    """
    settings = get_settings()
    name = settings.PAYMENT_GATEWAY.lower()

    if name == "razorpay":
        # Keeps the SDK import out of processes that never take payments
        from academy_booking.infrastructure.razorpay_gateway import RazorpayGateway

        return RazorpayGateway(
            key_id=settings.RAZORPAY_KEY_ID,
            key_secret=settings.RAZORPAY_KEY_SECRET,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )
    raise GatewayError(f"Unsupported payment gateway: {settings.PAYMENT_GATEWAY}")


# Singleton instance
_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """Get payment gateway singleton."""
    global _gateway
    if _gateway is None:
        _gateway = build_payment_gateway()
    return _gateway
