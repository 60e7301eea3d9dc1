"""
Enrollment guard: a participant may hold at most one live booking per batch.

The read-time check produces a friendly error naming the participants. The
partial unique index on booking_participants(batch_id, participant_id) WHERE
is_active catches the concurrent case; `enrollment_conflict` builds the same
error for it.
"""

from typing import Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from academy_booking.core.exceptions import AlreadyEnrolledError
from academy_booking.models.booking import Booking, BookingParticipant, ENROLLMENT_BLOCKING_STATUSES
from academy_booking.models.participant import Participant


def enrolled_error(names: Sequence[str]) -> AlreadyEnrolledError:
    if not names:
        return AlreadyEnrolledError("One or more participants are already enrolled in this batch")
    verb = "is" if len(names) == 1 else "are"
    return AlreadyEnrolledError(
        f"{', '.join(names)} {verb} already enrolled in this batch",
        details={"participants": list(names)},
    )


async def find_enrolled_participant_ids(
    db: AsyncSession,
    batch_id: int,
    participant_ids: Sequence[int],
) -> list[int]:
    result = await db.execute(
        select(BookingParticipant.participant_id)
        .join(Booking, Booking.id == BookingParticipant.booking_id)
        .where(
            BookingParticipant.batch_id == batch_id,
            BookingParticipant.participant_id.in_(participant_ids),
            Booking.status.in_(ENROLLMENT_BLOCKING_STATUSES),
            Booking.is_deleted.is_(False),
        )
        .distinct()
    )
    return sorted(result.scalars().all())


async def ensure_not_enrolled(
    db: AsyncSession,
    batch_id: int,
    participants: Sequence[Participant],
) -> None:
    enrolled = set(await find_enrolled_participant_ids(db, batch_id, [p.id for p in participants]))
    if enrolled:
        raise enrolled_error([p.full_name or str(p.id) for p in participants if p.id in enrolled])


async def enrollment_conflict(
    db: AsyncSession,
    batch_id: int,
    participants: Sequence[Participant],
) -> AlreadyEnrolledError:
    """Error for a unique-index violation, naming whoever is enrolled now."""
    enrolled = set(await find_enrolled_participant_ids(db, batch_id, [p.id for p in participants]))
    return enrolled_error([p.full_name or str(p.id) for p in participants if p.id in enrolled])


async def deactivate_enrollments(db: AsyncSession, booking_id: int) -> None:
    """Free the participants of a booking that left the slot-occupying set."""
    await db.execute(
        update(BookingParticipant)
        .where(BookingParticipant.booking_id == booking_id, BookingParticipant.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
