"""
Academy payouts and the gateway-side accounts they are paid into.
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, Text, ForeignKey, UniqueConstraint

from academy_booking.db.base import Base, TimestampMixin, Money, Rate


class PayoutAccountStatus(str, enum.Enum):
    CREATED = "created"
    ACTIVATED = "activated"
    SUSPENDED = "suspended"


class PayoutRecordStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PayoutAccount(Base, TimestampMixin):
    __tablename__ = "payout_accounts"

    id = Column(Integer, primary_key=True, index=True)
    academy_id = Column(Integer, ForeignKey("academies.id"), nullable=False, index=True)
    gateway_account_id = Column(String(64), nullable=False)
    activation_status = Column(String(20), nullable=False, default=PayoutAccountStatus.CREATED.value)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<PayoutAccount(id={self.id}, academy={self.academy_id}, status={self.activation_status})>"


class Payout(Base, TimestampMixin):
    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)
    payout_account_id = Column(Integer, ForeignKey("payout_accounts.id"), nullable=True)
    academy_id = Column(Integer, ForeignKey("academies.id"), nullable=False, index=True)
    academy_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Money, nullable=False)
    batch_amount = Column(Money, nullable=False)
    commission_rate = Column(Rate, nullable=False)
    commission_amount = Column(Money, nullable=False)
    payout_amount = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(String(20), nullable=False, default=PayoutRecordStatus.PENDING.value)
    failure_reason = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("booking_id", "transaction_id", name="uq_payout_booking_transaction"),
    )

    def __repr__(self) -> str:
        return f"<Payout(id={self.id}, booking={self.booking_id}, amount={self.payout_amount})>"
