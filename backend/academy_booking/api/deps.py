"""
Shared route dependencies.

Side-effect runner, notification dispatcher and payment gateway are resolved
through these so tests can swap them with `app.dependency_overrides`.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from academy_booking.core.exceptions import AuthorizationError
from academy_booking.core.security import get_current_user_id
from academy_booking.db.session import get_db
from academy_booking.models.user import ADMIN_ROLES, User
from academy_booking.services.background_tasks import SideEffectRunner, get_side_effect_runner
from academy_booking.services.gateway_factory import get_payment_gateway
from academy_booking.services.interfaces.payment_gateway import PaymentGateway
from academy_booking.services.notifications import NotificationDispatcher, get_notification_dispatcher


def get_runner() -> SideEffectRunner:
    return get_side_effect_runner()


def get_dispatcher() -> NotificationDispatcher:
    return get_notification_dispatcher()


def get_gateway() -> PaymentGateway:
    return get_payment_gateway()


async def require_admin(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> int:
    user = await db.get(User, user_id)
    if user is None or not user.is_active or user.is_deleted or user.role not in ADMIN_ROLES:
        raise AuthorizationError("Admin access required")
    return user_id
