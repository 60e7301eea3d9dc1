"""
Payment gateway interface.
Lets the payment service run against Razorpay in production and an
in-memory double in tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: int  # minor units
    currency: str
    receipt: str
    status: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class GatewayPayment:
    id: str
    status: str  # created, authorized, captured, refunded, failed
    amount: int  # minor units
    currency: str
    method: Optional[str] = None
    order_id: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False)


class PaymentGateway(ABC):
    """
    Implementations:
    - RazorpayGateway: the live gateway via the razorpay SDK

    Implementations raise GatewayError for any transport, SDK or timeout
    failure. They never retry on their own.
    """

    @abstractmethod
    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[dict] = None,
    ) -> GatewayOrder:
        """
        Create a payment order.

        Args:
            amount: Order amount in minor units (paise)
            currency: ISO currency code
            receipt: Merchant reference, unique per attempt
            notes: Free-form key/values stored with the order
        """

    @abstractmethod
    async def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check the checkout signature. False on mismatch, never raises for it."""

    @abstractmethod
    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        """Load a payment as the gateway sees it."""

    @abstractmethod
    async def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        """
        Check a webhook delivery against the shared webhook secret.

        `body` must be the raw request bytes; re-serialized JSON will not match.
        """
