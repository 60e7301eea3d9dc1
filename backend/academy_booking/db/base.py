"""
Declarative base and shared column mixins.
"""

from sqlalchemy import Boolean, Column, DateTime, Numeric, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Money columns. Python code only ever sees Decimal.
Money = Numeric(12, 2, asdecimal=True)
Rate = Numeric(6, 4, asdecimal=True)
Percentage = Numeric(5, 2, asdecimal=True)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class SoftDeleteMixin:
    """Rows are flagged, never physically deleted."""

    is_active = Column(Boolean, default=True, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
