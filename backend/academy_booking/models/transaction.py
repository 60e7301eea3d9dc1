"""
Ledger row per (booking, gateway order). Written through upserts so retries
and concurrent verifications converge on one row.
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, UniqueConstraint

from academy_booking.db.base import Base, TimestampMixin, Money


class TransactionType(str, enum.Enum):
    PAYMENT = "payment"


class TransactionStatus(str, enum.Enum):
    INITIATED = "initiated"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TransactionSource(str, enum.Enum):
    USER_VERIFICATION = "user_verification"
    WEBHOOK = "webhook"


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    gateway_order_id = Column(String(64), nullable=False)
    gateway_payment_id = Column(String(64), nullable=True)
    gateway_signature = Column(String(255), nullable=True)
    amount = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    type = Column(String(20), nullable=False, default=TransactionType.PAYMENT.value)
    status = Column(String(20), nullable=False, default=TransactionStatus.INITIATED.value)
    source = Column(String(30), nullable=False, default=TransactionSource.USER_VERIFICATION.value)
    payment_method = Column(String(50), nullable=True)
    failure_reason = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("booking_id", "gateway_order_id", name="uq_transaction_booking_order"),
    )

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, booking={self.booking_id}, status={self.status})>"
