"""
Participants are the people who actually attend a batch. A user (parent,
guardian or the learner themselves) owns one or more participants.
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, Date, ForeignKey

from academy_booking.db.base import Base, TimestampMixin, SoftDeleteMixin


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class Participant(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(10), nullable=True)
    is_disabled = Column(Boolean, default=False, nullable=False)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self) -> str:
        return f"<Participant(id={self.id}, user={self.user_id}, name={self.full_name})>"
