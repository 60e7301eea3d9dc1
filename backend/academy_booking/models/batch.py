"""
Training batch with slot inventory tracking.

Key design decisions:
- `booked_slots` is denormalized occupancy (avoids SUM over bookings on the
  hot path). It is moved only by conditional UPDATEs and can be rebuilt from
  bookings with `reconcile_booked_slots`.
- `capacity_max` NULL means unlimited.
- `version` is bumped on every occupancy change for optimistic readers.
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, JSON, Index, CheckConstraint

from academy_booking.db.base import Base, TimestampMixin, SoftDeleteMixin, Money
from academy_booking.models.academy import PublicationStatus


class Batch(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "batches"

    id = Column(Integer, primary_key=True, index=True)
    academy_id = Column(Integer, ForeignKey("academies.id"), nullable=False, index=True)
    sport_id = Column(Integer, ForeignKey("sports.id"), nullable=False)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=PublicationStatus.DRAFT.value)

    # Eligibility policy
    age_min = Column(Integer, nullable=True)
    age_max = Column(Integer, nullable=True)
    allowed_genders = Column(JSON, nullable=True)
    is_allowed_disabled = Column(Boolean, default=True, nullable=False)

    # Capacity
    capacity_max = Column(Integer, nullable=True)
    booked_slots = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)

    # Pricing
    admission_fee = Column(Money, nullable=True)
    base_price = Column(Money, nullable=False)
    discounted_price = Column(Money, nullable=True)

    __table_args__ = (
        CheckConstraint("booked_slots >= 0", name="check_booked_slots_non_negative"),
        CheckConstraint(
            "capacity_max IS NULL OR booked_slots <= capacity_max",
            name="check_booked_slots_lte_capacity",
        ),
        CheckConstraint("capacity_max IS NULL OR capacity_max > 0", name="check_capacity_positive"),
        Index("ix_batches_academy_active", "academy_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Batch(id={self.id}, name={self.name}, booked={self.booked_slots}/{self.capacity_max})>"
