from sqlalchemy import Column, Integer, String

from academy_booking.db.base import Base, TimestampMixin


class Sport(Base, TimestampMixin):
    __tablename__ = "sports"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Sport(id={self.id}, name={self.name})>"
