"""
Coaching centers (academies). Only the fields the booking core reads are
mapped: contact details for notifications and the eligibility policy that
applies to every batch the academy runs.
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, JSON

from academy_booking.db.base import Base, TimestampMixin, SoftDeleteMixin


class PublicationStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Academy(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "academies"

    id = Column(Integer, primary_key=True, index=True)
    owner_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    mobile = Column(String(20), nullable=True)

    # Eligibility policy
    age_min = Column(Integer, nullable=True)
    age_max = Column(Integer, nullable=True)
    allowed_genders = Column(JSON, nullable=True)  # empty or null means everyone
    allowed_disabled = Column(Boolean, default=True, nullable=False)
    is_only_for_disabled = Column(Boolean, default=False, nullable=False)

    status = Column(String(20), nullable=False, default=PublicationStatus.DRAFT.value)
    approval_status = Column(String(20), nullable=False, default=ApprovalStatus.PENDING.value)

    def __repr__(self) -> str:
        return f"<Academy(id={self.id}, name={self.name})>"
