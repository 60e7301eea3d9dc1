"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .payment_gateway import GatewayOrder, GatewayPayment, PaymentGateway

__all__ = ["GatewayOrder", "GatewayPayment", "PaymentGateway"]
