"""
Audit trail writer. Runs as a side effect with its own session so a failed
audit insert never touches the booking transaction.
"""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy_booking.core.logging import get_logger
from academy_booking.models.audit_event import AuditEvent

logger = get_logger(__name__)


async def record_audit_event(
    session_factory: async_sessionmaker[AsyncSession],
    action: str,
    booking_id: int,
    actor_id: Optional[int] = None,
    actor_role: Optional[str] = None,
    academy_id: Optional[int] = None,
    message: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    async with session_factory() as db:
        db.add(
            AuditEvent(
                action=action,
                entity_type="booking",
                entity_id=booking_id,
                booking_id=booking_id,
                actor_id=actor_id,
                actor_role=actor_role,
                academy_id=academy_id,
                message=message,
                metadata_=metadata or {},
            )
        )
        await db.commit()
    logger.debug("audit_recorded", action=action, booking_id=booking_id)
