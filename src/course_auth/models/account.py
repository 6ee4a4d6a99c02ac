"""SQLAlchemy Account model."""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from course_auth.models.base import Base


class AccountRole(str, enum.Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"


class Account(Base):
    """A person who can sign in to the e-learning platform.

    Employees self-register after verifying their email with a signup OTP;
    admins are seeded.  Either role can reset a forgotten password through
    a password-reset OTP.
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(
        String(256), nullable=False, unique=True, doc="Lower-cased login email"
    )
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[AccountRole] = mapped_column(
        Enum(
            AccountRole,
            native_enum=False,
            length=16,
            values_callable=lambda roles: [r.value for r in roles],
        ),
        nullable=False,
        default=AccountRole.EMPLOYEE,
    )
    department: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("ix_accounts_email_role", "email", "role"),)

    def __repr__(self) -> str:
        return f"<Account id={self.id} email={self.email!r} role={self.role.value!r}>"
