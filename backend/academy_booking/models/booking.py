"""
Booking aggregate: one user's request for one or more participants to join a
batch, its price snapshot and the payment sub-record.

Key design decisions:
- Prices, tax and commission are snapshotted at request time so later fee
  changes never alter an existing booking.
- `status` and `payment_status` move only through compare-and-set UPDATEs
  in the state machine service.
- BookingParticipant carries a partial unique index on
  (batch_id, participant_id) WHERE is_active, the datastore-level guarantee
  that a participant holds at most one live booking per batch.
- Rows are soft-deleted, never removed.
"""

import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    Text,
    ForeignKey,
    Index,
    CheckConstraint,
    text,
)
from sqlalchemy.orm import relationship

from academy_booking.db.base import Base, TimestampMixin, Money, Rate, Percentage


class BookingStatus(str, enum.Enum):
    SLOT_BOOKED = "slot_booked"
    APPROVED = "approved"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    REJECTED = "rejected"
    # Legacy values still present in older rows
    REQUESTED = "requested"
    PENDING = "pending"
    PAYMENT_PENDING = "payment_pending"


class PaymentStatus(str, enum.Enum):
    NOT_INITIATED = "not_initiated"
    INITIATED = "initiated"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PayoutStatus(str, enum.Enum):
    NOT_INITIATED = "not_initiated"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Bookings in these states hold capacity on their batch.
SLOT_OCCUPYING_STATUSES = (
    BookingStatus.SLOT_BOOKED.value,
    BookingStatus.APPROVED.value,
    BookingStatus.PAYMENT_PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.REQUESTED.value,
    BookingStatus.PENDING.value,
)

# A participant with a booking in one of these states cannot be booked again.
ENROLLMENT_BLOCKING_STATUSES = SLOT_OCCUPYING_STATUSES

TERMINAL_STATUSES = (
    BookingStatus.CANCELLED.value,
    BookingStatus.COMPLETED.value,
    BookingStatus.REJECTED.value,
)

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in BookingStatus)
_PAYMENT_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in PaymentStatus)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(32), unique=True, nullable=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=False, index=True)
    academy_id = Column(Integer, ForeignKey("academies.id"), nullable=False, index=True)
    sport_id = Column(Integer, ForeignKey("sports.id"), nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.SLOT_BOOKED.value)
    notes = Column(Text, nullable=True)

    # Price breakdown snapshot
    participant_count = Column(Integer, nullable=False)
    admission_fee_per_participant = Column(Money, nullable=False)
    total_admission_fee = Column(Money, nullable=False)
    base_fee_per_participant = Column(Money, nullable=False)
    total_base_fee = Column(Money, nullable=False)
    batch_amount = Column(Money, nullable=False)
    platform_fee = Column(Money, nullable=False)
    subtotal = Column(Money, nullable=False)
    tax_percentage = Column(Percentage, nullable=False)
    tax_amount = Column(Money, nullable=False)
    total_amount = Column(Money, nullable=False)
    amount = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    priced_at = Column(DateTime(timezone=True), nullable=False)

    # Commission snapshot
    commission_rate = Column(Rate, nullable=True)
    commission_amount = Column(Money, nullable=True)
    payout_amount = Column(Money, nullable=True)
    commission_computed_at = Column(DateTime(timezone=True), nullable=True)

    # Payment sub-record
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.NOT_INITIATED.value)
    gateway_order_id = Column(String(64), nullable=True, index=True)
    gateway_payment_id = Column(String(64), nullable=True)
    gateway_signature = Column(String(255), nullable=True)
    payment_amount = Column(Money, nullable=True)
    payment_currency = Column(String(3), nullable=True)
    payment_method = Column(String(50), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_failure_reason = Column(Text, nullable=True)
    payment_initiated_count = Column(Integer, nullable=False, default=0)
    payment_cancelled_count = Column(Integer, nullable=False, default=0)
    payment_failed_count = Column(Integer, nullable=False, default=0)

    payout_status = Column(String(20), nullable=False, default=PayoutStatus.NOT_INITIATED.value)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(20), nullable=True)  # user | academy | system
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    participants = relationship(
        "BookingParticipant",
        back_populates="booking",
        lazy="selectin",
        order_by="BookingParticipant.id",
    )

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="check_booking_status"),
        CheckConstraint(
            f"payment_status IN ({_PAYMENT_STATUS_VALUES})", name="check_booking_payment_status"
        ),
        CheckConstraint("participant_count > 0", name="check_booking_participant_count_positive"),
        CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        Index("ix_bookings_batch_status", "batch_id", "status"),
        Index("ix_bookings_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, ref={self.reference}, status={self.status}, "
            f"payment={self.payment_status})>"
        )


class BookingParticipant(Base, TimestampMixin):
    __tablename__ = "booking_participants"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    participant_id = Column(Integer, ForeignKey("participants.id"), nullable=False)
    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    booking = relationship("Booking", back_populates="participants")

    __table_args__ = (
        # One live booking per participant per batch
        Index(
            "uq_active_participant_batch",
            "batch_id",
            "participant_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<BookingParticipant(booking={self.booking_id}, participant={self.participant_id}, "
            f"active={self.is_active})>"
        )
