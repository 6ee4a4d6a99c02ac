"""Account service — registration and password reset backed by verified OTPs."""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from course_auth.database.repository import AccountRepository
from course_auth.errors import ConflictError, NotFoundError, ValidationError
from course_auth.models.account import Account, AccountRole
from course_auth.models.otp import OTPPurpose
from course_auth.services.otp_manager import IssueResult, OTPManager
from course_auth.services.otp_policy import OTP_TTL_SECONDS, normalize_email
from course_auth.services.passwords import MIN_PASSWORD_LENGTH, hash_password

logger = logging.getLogger(__name__)


class AccountService:
    """Downstream actions that spend a verified OTP.

    Each action runs inside ``OTPManager.consume`` so the verified record
    is deleted only when the action itself succeeds.
    """

    def __init__(self, accounts: AccountRepository, otp_manager: OTPManager) -> None:
        self._accounts = accounts
        self._otp = otp_manager

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        code: str,
        department: str | None = None,
    ) -> Account:
        """Create an employee account for an email verified with a signup OTP."""
        if not name or not name.strip():
            raise ValidationError("Missing required fields", details="Name is required")
        _check_password(password)
        email = normalize_email(email)

        async with self._otp.consume(email, OTPPurpose.SIGNUP, code):
            if await self._accounts.find_by_email(email) is not None:
                logger.info("Registration rejected, %s already registered", email)
                raise ConflictError(
                    "Employee already exists",
                    details="An employee with this email already exists",
                )
            try:
                account = await self._accounts.add(
                    Account(
                        email=email,
                        name=name.strip(),
                        password_hash=hash_password(password),
                        role=AccountRole.EMPLOYEE,
                        department=department,
                    )
                )
            except IntegrityError as exc:
                raise ConflictError(
                    "Employee already exists",
                    details="An employee with this email already exists",
                ) from exc

        logger.info("Employee registered: %s", email)
        return account

    async def request_password_reset(self, email: str, role: AccountRole) -> IssueResult:
        """Issue a password-reset OTP if the account exists.

        Unknown accounts get the same result as known ones so the response
        does not reveal whether an email is registered.
        """
        email = normalize_email(email)
        account = await self._accounts.find_by_email(email, role)
        if account is None:
            logger.info("Password reset requested for unknown %s account %s", role.value, email)
            return IssueResult(expires_in=OTP_TTL_SECONDS)
        return await self._otp.issue(email, OTPPurpose.PASSWORD_RESET)

    async def reset_password(
        self, email: str, role: AccountRole, code: str, new_password: str
    ) -> None:
        """Replace the password of an account verified with a password-reset OTP."""
        _check_password(new_password)
        email = normalize_email(email)

        async with self._otp.consume(email, OTPPurpose.PASSWORD_RESET, code):
            account = await self._accounts.find_by_email(email, role)
            if account is None:
                raise NotFoundError(
                    "User not found", details="No account found with this email"
                )
            await self._accounts.update_password(account, hash_password(new_password))

        logger.info("Password reset for %s (%s)", email, role.value)


def _check_password(password: str | None) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "Invalid password",
            details=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
        )
