from sqlalchemy import Column, Integer, String, Text, JSON, Index

from academy_booking.db.base import Base, TimestampMixin


class AuditEvent(Base, TimestampMixin):
    """Append-only trail of booking lifecycle actions."""

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(50), nullable=False)
    entity_type = Column(String(30), nullable=False)
    entity_id = Column(Integer, nullable=True)
    actor_id = Column(Integer, nullable=True)
    actor_role = Column(String(20), nullable=True)
    booking_id = Column(Integer, nullable=True)
    academy_id = Column(Integer, nullable=True)
    message = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)

    __table_args__ = (Index("ix_audit_events_booking", "booking_id"),)

    def __repr__(self) -> str:
        return f"<AuditEvent(id={self.id}, action={self.action}, booking={self.booking_id})>"
