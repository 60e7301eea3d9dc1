"""
Booking notifications.

The core only builds typed NotificationRequest values and hands them to a
dispatcher; channel selection, templates per channel and delivery belong to
the notification service. Two dispatchers ship here:

- RedisQueueDispatcher: LPUSH of the JSON request onto NOTIFICATION_QUEUE_KEY,
  consumed by the notification service workers
- LogDispatcher: structured log line only (local runs, or Redis down)

Dispatch always runs on the side-effect runner after commit.
"""

import enum
import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from academy_booking.core.config import get_settings
from academy_booking.core.logging import get_logger
from academy_booking.infrastructure.redis_client import get_redis
from academy_booking.models.user import ADMIN_ROLES

logger = get_logger(__name__)


class RecipientType(str, enum.Enum):
    USER = "user"
    ACADEMY = "academy"
    ROLE = "role"


class Priority(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"


@dataclass(frozen=True)
class NotificationRequest:
    recipient_type: str
    title: str
    body: str
    recipient_id: Optional[int] = None
    roles: tuple[str, ...] = ()
    priority: str = Priority.MEDIUM.value
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["roles"] = list(self.roles)
        return data


@dataclass(frozen=True)
class BookingContext:
    """Names and ids the messages mention, captured at transition time."""

    booking_id: int
    reference: str
    batch_id: int
    batch_name: str
    academy_id: int
    academy_name: str
    user_id: int
    user_name: str
    participant_names: tuple[str, ...] = ()
    amount: Optional[str] = None
    currency: str = "INR"

    @property
    def participants(self) -> str:
        return ", ".join(self.participant_names)

    def metadata(self, type_: str, **extra: Any) -> dict[str, Any]:
        return {
            "type": type_,
            "bookingId": self.booking_id,
            "reference": self.reference,
            "batchId": self.batch_id,
            "academyId": self.academy_id,
            **extra,
        }


def _reason_suffix(reason: Optional[str]) -> str:
    return f" Reason: {reason}" if reason else ""


# Message builders


def booking_requested(ctx: BookingContext) -> list[NotificationRequest]:
    return [
        NotificationRequest(
            recipient_type=RecipientType.ACADEMY.value,
            recipient_id=ctx.academy_id,
            title="New Booking Request",
            body=(
                f'You have a new booking request for batch "{ctx.batch_name}" from '
                f"{ctx.user_name}. Participants: {ctx.participants}. Booking ID: {ctx.reference}."
            ),
            priority=Priority.HIGH.value,
            metadata=ctx.metadata("booking_request"),
        ),
        NotificationRequest(
            recipient_type=RecipientType.USER.value,
            recipient_id=ctx.user_id,
            title="Booking Request Sent",
            body=(
                f'Your booking request for "{ctx.batch_name}" at "{ctx.academy_name}" has been '
                f"sent. You will be notified once the academy responds. Booking ID: {ctx.reference}."
            ),
            metadata=ctx.metadata("booking_request_sent"),
        ),
        NotificationRequest(
            recipient_type=RecipientType.ROLE.value,
            roles=ADMIN_ROLES,
            title="New Booking Request",
            body=(
                f'{ctx.user_name} requested "{ctx.batch_name}" at "{ctx.academy_name}" for '
                f"{ctx.participants}. Booking ID: {ctx.reference}."
            ),
            metadata=ctx.metadata("booking_request_admin"),
        ),
    ]


def booking_approved(ctx: BookingContext) -> list[NotificationRequest]:
    return [
        NotificationRequest(
            recipient_type=RecipientType.USER.value,
            recipient_id=ctx.user_id,
            title="Booking Approved",
            body=(
                f'Great news! Your booking request for "{ctx.batch_name}" at "{ctx.academy_name}" '
                f"has been approved. Please proceed with payment. Booking ID: {ctx.reference}."
            ),
            priority=Priority.HIGH.value,
            metadata=ctx.metadata("booking_approved"),
        )
    ]


def booking_rejected(ctx: BookingContext, reason: Optional[str]) -> list[NotificationRequest]:
    return [
        NotificationRequest(
            recipient_type=RecipientType.USER.value,
            recipient_id=ctx.user_id,
            title="Booking Request Rejected",
            body=(
                f'Your booking request for "{ctx.batch_name}" at "{ctx.academy_name}" has been '
                f"rejected.{_reason_suffix(reason)} Booking ID: {ctx.reference}."
            ),
            priority=Priority.HIGH.value,
            metadata=ctx.metadata("booking_rejected", reason=reason),
        )
    ]


def booking_confirmed(ctx: BookingContext) -> list[NotificationRequest]:
    amount = f"{ctx.currency} {ctx.amount}"
    return [
        NotificationRequest(
            recipient_type=RecipientType.USER.value,
            recipient_id=ctx.user_id,
            title="Booking Confirmed",
            body=(
                f"Dear {ctx.user_name}, your booking {ctx.reference} for {ctx.batch_name} at "
                f"{ctx.academy_name} has been confirmed. Participants: {ctx.participants}. "
                f"Amount Paid: {amount}."
            ),
            priority=Priority.HIGH.value,
            metadata=ctx.metadata("booking_confirmed"),
        ),
        NotificationRequest(
            recipient_type=RecipientType.ACADEMY.value,
            recipient_id=ctx.academy_id,
            title="New Booking Received",
            body=(
                f"New booking {ctx.reference} received for {ctx.batch_name}. Customer: "
                f"{ctx.user_name}. Participants: {ctx.participants}. Amount: {amount}."
            ),
            priority=Priority.HIGH.value,
            metadata=ctx.metadata("booking_confirmed_academy"),
        ),
        NotificationRequest(
            recipient_type=RecipientType.ROLE.value,
            roles=ADMIN_ROLES,
            title="Booking Confirmed",
            body=(
                f"Booking {ctx.reference} for {ctx.batch_name} at {ctx.academy_name} was paid. "
                f"Amount: {amount}."
            ),
            metadata=ctx.metadata("booking_confirmed_admin"),
        ),
    ]


def booking_cancelled(ctx: BookingContext, reason: Optional[str]) -> list[NotificationRequest]:
    suffix = _reason_suffix(reason)
    return [
        NotificationRequest(
            recipient_type=RecipientType.USER.value,
            recipient_id=ctx.user_id,
            title="Booking Cancelled",
            body=(
                f'Your booking for "{ctx.batch_name}" at "{ctx.academy_name}" has been '
                f"cancelled.{suffix} Booking ID: {ctx.reference}."
            ),
            metadata=ctx.metadata("booking_cancelled", reason=reason),
        ),
        NotificationRequest(
            recipient_type=RecipientType.ACADEMY.value,
            recipient_id=ctx.academy_id,
            title="Booking Cancelled",
            body=(
                f'Booking {ctx.reference} for batch "{ctx.batch_name}" has been cancelled by '
                f"{ctx.user_name}.{suffix}"
            ),
            metadata=ctx.metadata("booking_cancelled_academy", reason=reason),
        ),
    ]


# Dispatchers


class NotificationDispatcher(ABC):
    @abstractmethod
    async def dispatch(self, request: NotificationRequest) -> None:
        """Hand one request to the delivery subsystem. May raise; the runner retries."""


class LogDispatcher(NotificationDispatcher):
    async def dispatch(self, request: NotificationRequest) -> None:
        logger.info(
            "notification_dispatched",
            recipient_type=request.recipient_type,
            recipient_id=request.recipient_id,
            roles=list(request.roles),
            title=request.title,
            notification_type=request.metadata.get("type"),
            booking_id=request.metadata.get("bookingId"),
        )


class RedisQueueDispatcher(NotificationDispatcher):
    def __init__(self, queue_key: str, fallback: Optional[NotificationDispatcher] = None):
        self.queue_key = queue_key
        self.fallback = fallback or LogDispatcher()

    async def dispatch(self, request: NotificationRequest) -> None:
        client = await get_redis()
        if client is None:
            await self.fallback.dispatch(request)
            return
        await client.lpush(self.queue_key, json.dumps(request.to_dict(), default=str))
        logger.debug(
            "notification_queued",
            queue=self.queue_key,
            notification_type=request.metadata.get("type"),
        )


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        if settings.NOTIFICATION_BACKEND == "redis":
            _dispatcher = RedisQueueDispatcher(settings.NOTIFICATION_QUEUE_KEY)
        else:
            _dispatcher = LogDispatcher()
    return _dispatcher
