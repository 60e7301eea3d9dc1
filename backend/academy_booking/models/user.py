"""
Marketplace users. Accounts are managed by the identity service; this table
is the read model the booking core resolves identities against.
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint

from academy_booking.db.base import Base, TimestampMixin


class UserRole(str, enum.Enum):
    USER = "user"
    ACADEMY = "academy"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


ADMIN_ROLES = (UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value)


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    mobile = Column(String(20), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    is_active = Column(Boolean, default=True, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "role IN ('user', 'academy', 'admin', 'super_admin')",
            name="check_user_role",
        ),
    )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
