from sqlalchemy import Column, Integer, Boolean

from academy_booking.db.base import Base, TimestampMixin, Money, Percentage


class PlatformSettings(Base, TimestampMixin):
    """Single-row table holding the marketplace fee configuration."""

    __tablename__ = "platform_settings"

    id = Column(Integer, primary_key=True)
    platform_fee = Column(Money, nullable=False)
    tax_percentage = Column(Percentage, nullable=False)
    tax_enabled = Column(Boolean, nullable=False, default=True)
    commission_rate = Column(Percentage, nullable=False)  # 0-100

    def __repr__(self) -> str:
        return f"<PlatformSettings(fee={self.platform_fee}, tax={self.tax_percentage}, commission={self.commission_rate})>"
