"""
Batch capacity: occupancy reads and the atomic slot reservation.

CONCURRENCY STRATEGY: Conditional counter update
================================================

Problem:
  Two users request the last slot simultaneously. Both read occupied=9 of
  10, both insert a booking. Result: 11 participants in a 10-slot batch.

Solution:
  `batches.booked_slots` is a denormalized occupancy counter. Every reservation
  is a single statement that only succeeds while the batch still has room:

    UPDATE batches
       SET booked_slots = booked_slots + :n, version = version + 1
     WHERE id = :id AND is_active AND NOT is_deleted
       AND (capacity_max IS NULL OR booked_slots + :n <= capacity_max)

  The row lock taken by the UPDATE serializes concurrent reservations for one
  batch, and each re-evaluates the predicate against the committed counter.
  rows_affected == 0 means the batch filled up (or went away) between the
  read-time check and the write, and the request fails with the same error a
  read-time rejection would produce. No retry loop is needed because the
  predicate does not depend on a previously read version.

  The CHECK constraint `capacity_max IS NULL OR booked_slots <= capacity_max`
  is the final safety net.

  Releases decrement the counter in the same transaction that moves the
  booking out of the slot-occupying set. `reconcile_booked_slots` rebuilds the
  counter from bookings for repair jobs.
"""

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from academy_booking.core.exceptions import CapacityExceededError, NotFoundError
from academy_booking.core.logging import get_logger
from academy_booking.models.batch import Batch
from academy_booking.models.booking import Booking, SLOT_OCCUPYING_STATUSES

logger = get_logger(__name__)


def capacity_error(remaining: int, requested: int) -> CapacityExceededError:
    return CapacityExceededError(
        f"Insufficient slots available. Only {max(remaining, 0)} slot(s) remaining. "
        f"Requested: {requested}",
        details={"remaining": max(remaining, 0), "requested": requested},
    )


async def count_occupied_slots(db: AsyncSession, batch_id: int) -> int:
    """Participants held by live, slot-occupying bookings of the batch."""
    result = await db.execute(
        select(func.coalesce(func.sum(Booking.participant_count), 0)).where(
            Booking.batch_id == batch_id,
            Booking.status.in_(SLOT_OCCUPYING_STATUSES),
            Booking.is_deleted.is_(False),
        )
    )
    return int(result.scalar_one())


def check_capacity(batch: Batch, occupied: int, requested: int) -> None:
    if batch.capacity_max is None:
        return
    if occupied + requested > batch.capacity_max:
        raise capacity_error(batch.capacity_max - occupied, requested)


async def reserve_slots(db: AsyncSession, batch_id: int, requested: int) -> None:
    """Atomically add `requested` to the batch counter or raise CapacityExceededError."""
    result = await db.execute(
        update(Batch)
        .where(
            Batch.id == batch_id,
            Batch.is_active.is_(True),
            Batch.is_deleted.is_(False),
            (Batch.capacity_max.is_(None))
            | (Batch.booked_slots + requested <= Batch.capacity_max),
        )
        .values(
            booked_slots=Batch.booked_slots + requested,
            version=Batch.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    current = await db.execute(
        select(Batch.capacity_max, Batch.booked_slots, Batch.is_active, Batch.is_deleted).where(
            Batch.id == batch_id
        )
    )
    row = current.one_or_none()
    if row is None:
        raise NotFoundError("Batch not found")

    logger.warning(
        "slot_reservation_conflict",
        batch_id=batch_id,
        requested=requested,
        capacity_max=row.capacity_max,
        booked_slots=row.booked_slots,
    )
    if row.capacity_max is None:
        # Only reachable when the batch was disabled mid-request
        raise CapacityExceededError("Batch is no longer available for booking")
    raise capacity_error(row.capacity_max - row.booked_slots, requested)


async def release_slots(db: AsyncSession, batch_id: int, count: int) -> None:
    """Give `count` slots back, never driving the counter below zero."""
    await db.execute(
        update(Batch)
        .where(Batch.id == batch_id)
        .values(
            booked_slots=case(
                (Batch.booked_slots >= count, Batch.booked_slots - count),
                else_=0,
            ),
            version=Batch.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    logger.info("slots_released", batch_id=batch_id, count=count)


async def reconcile_booked_slots(db: AsyncSession, batch_id: int) -> int:
    """Reset the counter to the occupancy derived from bookings."""
    if await db.get(Batch, batch_id) is None:
        raise NotFoundError("Batch not found")
    occupied = await count_occupied_slots(db, batch_id)
    await db.execute(
        update(Batch)
        .where(Batch.id == batch_id)
        .values(booked_slots=occupied, version=Batch.version + 1)
        .execution_options(synchronize_session=False)
    )
    logger.info("booked_slots_reconciled", batch_id=batch_id, booked_slots=occupied)
    return occupied
