"""
Razorpay implementation of the PaymentGateway interface.

The razorpay SDK is synchronous (requests under the hood), so every call runs
in a worker thread and is bounded by GATEWAY_TIMEOUT_SECONDS. Any SDK,
network or timeout failure is logged and surfaced as GatewayError; the
caller decides what to do, nothing is retried here.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import razorpay

from academy_booking.core.config import get_settings
from academy_booking.core.exceptions import GatewayError
from academy_booking.core.logging import get_logger
from academy_booking.core.metrics import gateway_latency
from academy_booking.services.interfaces.payment_gateway import (
    GatewayOrder,
    GatewayPayment,
    PaymentGateway,
)

logger = get_logger(__name__)


class RazorpayGateway(PaymentGateway):
    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        webhook_secret: Optional[str] = None,
    ):
        settings = get_settings()
        key_id = key_id or settings.RAZORPAY_KEY_ID
        key_secret = key_secret or settings.RAZORPAY_KEY_SECRET
        if not key_id or not key_secret:
            raise GatewayError("Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET.")

        self._client = razorpay.Client(auth=(key_id, key_secret))
        self._timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self._webhook_secret = webhook_secret or settings.RAZORPAY_WEBHOOK_SECRET

    async def _call(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error("gateway_timeout", operation=operation, timeout=self._timeout)
            raise GatewayError("Payment gateway timed out. Please try again.")
        except razorpay.errors.BadRequestError as e:
            logger.error("gateway_bad_request", operation=operation, error=str(e))
            raise GatewayError(f"Payment gateway rejected the request: {e}")
        except Exception as e:
            logger.error("gateway_call_failed", operation=operation, error=str(e))
            raise GatewayError("Payment gateway is temporarily unavailable. Please try again later.")
        finally:
            gateway_latency.labels(operation=operation).observe(time.perf_counter() - start)

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[dict] = None,
    ) -> GatewayOrder:
        payload = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        order = await self._call("create_order", self._client.order.create, payload)
        if not isinstance(order, dict) or not order.get("id"):
            logger.error("gateway_invalid_order_response", receipt=receipt)
            raise GatewayError("Payment gateway returned an invalid order")

        created_at = order.get("created_at")
        logger.info("gateway_order_created", order_id=order["id"], receipt=receipt, amount=amount)
        return GatewayOrder(
            id=order["id"],
            amount=int(order.get("amount", amount)),
            currency=order.get("currency", currency),
            receipt=order.get("receipt") or receipt,
            status=order.get("status", "created"),
            created_at=datetime.fromtimestamp(created_at, tz=timezone.utc) if created_at else None,
        )

    async def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        params = {
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature,
        }
        try:
            # HMAC-SHA256 of "order_id|payment_id", computed locally by the SDK
            self._client.utility.verify_payment_signature(params)
        except razorpay.errors.SignatureVerificationError:
            return False
        return True

    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        payment = await self._call("fetch_payment", self._client.payment.fetch, payment_id)
        if not isinstance(payment, dict) or not payment.get("id"):
            raise GatewayError("Payment gateway returned an invalid payment")
        return GatewayPayment(
            id=payment["id"],
            status=payment.get("status", ""),
            amount=int(payment.get("amount", 0)),
            currency=payment.get("currency", ""),
            method=payment.get("method"),
            order_id=payment.get("order_id"),
            raw=payment,
        )

    async def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        if not self._webhook_secret:
            logger.error("webhook_secret_not_configured")
            return False
        try:
            # HMAC-SHA256 of the raw body with the webhook secret (not the API secret)
            self._client.utility.verify_webhook_signature(body.decode("utf-8"), signature, self._webhook_secret)
        except (razorpay.errors.SignatureVerificationError, UnicodeDecodeError):
            return False
        return True
