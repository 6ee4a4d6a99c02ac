"""SQLAlchemy OTP record model."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from course_auth.models.base import Base


class OTPPurpose(str, enum.Enum):
    """Context an OTP is valid for.  Codes never satisfy another purpose."""

    SIGNUP = "signup"
    PASSWORD_RESET = "password-reset"
    EMAIL_VERIFICATION = "email-verification"


class OTPRecord(Base):
    """One outstanding or recently-verified verification attempt.

    At most one *unverified* record exists per ``(subject_email, purpose)``;
    issuance deletes the previous ones before inserting.  Records are never
    reset in place: expiry, attempt exhaustion and consumption all delete.
    """

    __tablename__ = "otp_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject_email: Mapped[str] = mapped_column(String(256), nullable=False)
    purpose: Mapped[OTPPurpose] = mapped_column(
        Enum(
            OTPPurpose,
            native_enum=False,
            length=32,
            values_callable=lambda purposes: [p.value for p in purposes],
        ),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_otp_records_email_purpose", "subject_email", "purpose"),
        CheckConstraint("attempts >= 0 AND attempts <= 5", name="ck_otp_records_attempts"),
    )

    def __repr__(self) -> str:
        return (
            f"<OTPRecord id={self.id} email={self.subject_email!r} "
            f"purpose={self.purpose.value!r} attempts={self.attempts} "
            f"verified={self.verified}>"
        )
