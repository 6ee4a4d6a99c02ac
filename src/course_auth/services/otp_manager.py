"""OTP lifecycle manager — issuance, verification and consumption.

State machine per ``(email, purpose)``::

    Unverified(attempts 0..4) ──correct code──▶ Verified ──consume──▶ deleted
            │                                      │
            ├── past expires_at ─────▶ deleted     └── past 30 min ──▶ deleted
            └── 5 wrong codes ───────▶ deleted

A deleted record never comes back; a fresh ``issue`` starts a new lifecycle.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from course_auth.database.otp_repository import OTPRepository
from course_auth.errors import (
    APIError,
    ExpiredError,
    InternalError,
    InvalidCodeError,
    NotFoundError,
    RateLimitedError,
    ValidationError,
)
from course_auth.models.otp import OTPPurpose, OTPRecord
from course_auth.services.email_service import OTPDispatcher
from course_auth.services.otp_policy import (
    COOLDOWN,
    MAX_ATTEMPTS,
    OTP_TTL,
    OTP_TTL_SECONDS,
    VERIFIED_WINDOW,
    Clock,
    attempts_exhausted,
    cooldown_remaining,
    generate_code,
    is_expired,
    normalize_email,
    utcnow,
    verified_window_elapsed,
)

logger = logging.getLogger(__name__)

# Conditional writes that lose a race are retried this many times.
_MAX_WRITE_RETRIES = MAX_ATTEMPTS + 1


@dataclass(frozen=True)
class IssueResult:
    expires_in: int


@dataclass(frozen=True)
class VerifyResult:
    verified: bool
    already_verified: bool = False


class OTPManager:
    """Owns every state transition of an OTP record.

    Collaborators are injected: the repository (durable store), the
    dispatcher (best-effort delivery) and a clock returning aware UTC
    datetimes.
    """

    def __init__(
        self,
        repository: OTPRepository,
        dispatcher: OTPDispatcher,
        clock: Clock = utcnow,
    ) -> None:
        self._repo = repository
        self._dispatcher = dispatcher
        self._clock = clock

    # ── Issuance ─────────────────────────────────────────

    async def issue(self, email: str, purpose: OTPPurpose | str) -> IssueResult:
        """Create a fresh code for the pair and dispatch it.

        Raises ``RateLimitedError`` (with ``cooldown_seconds``) when the
        newest record for the pair is younger than the cooldown.
        """
        email = normalize_email(email)
        purpose = _coerce_purpose(purpose)
        now = self._clock()

        async with self._unit_of_work():
            recent = await self._repo.find_most_recent(
                email, purpose, created_since=now - COOLDOWN
            )
            if recent is not None:
                remaining = cooldown_remaining(recent.created_at, now)
                if remaining:
                    logger.info(
                        "OTP cooldown active for %s (%s): %ss left",
                        email,
                        purpose.value,
                        remaining,
                    )
                    raise RateLimitedError(
                        "Please wait",
                        details=(
                            f"Please wait {remaining} seconds before requesting "
                            "another OTP"
                        ),
                        cooldown_seconds=remaining,
                    )

            purged = await self._repo.purge_expired(now, VERIFIED_WINDOW)
            if purged:
                logger.debug("Purged %d stale OTP record(s)", purged)

            removed = await self._repo.delete_many(email, purpose, verified=False)
            if removed:
                logger.debug("Discarded %d pending OTP(s) for %s", removed, email)

            code = generate_code()
            expires_at = now + OTP_TTL
            record = OTPRecord(
                subject_email=email,
                purpose=purpose,
                code=code,
                created_at=now,
                expires_at=expires_at,
                attempts=0,
                verified=False,
            )
            await self._repo.insert(record)

        logger.info("OTP issued for %s (%s)", email, purpose.value)
        await self._dispatch(email, code, purpose)
        return IssueResult(expires_in=OTP_TTL_SECONDS)

    async def _dispatch(self, email: str, code: str, purpose: OTPPurpose) -> None:
        try:
            await self._dispatcher.send_otp(email, code, purpose)
        except Exception:
            # Delivery is best-effort: the record is already durable.
            logger.exception(
                "Failed to deliver %s OTP to %s; code remains valid",
                purpose.value,
                email,
            )

    # ── Verification ─────────────────────────────────────

    async def verify(
        self, email: str, purpose: OTPPurpose | str, submitted_code: str
    ) -> VerifyResult:
        """Check *submitted_code* against the newest unverified record.

        A correct code marks the record verified and keeps it for the
        downstream action.  Repeating the correct code afterwards succeeds
        again while the verified record is still within its window.
        """
        email = normalize_email(email)
        purpose = _coerce_purpose(purpose)
        submitted_code = _require_code(submitted_code)
        now = self._clock()

        async with self._unit_of_work():
            for _ in range(_MAX_WRITE_RETRIES):
                record = await self._repo.find_most_recent(email, purpose, verified=False)
                if record is None:
                    return await self._reconfirm(email, purpose, submitted_code, now)

                if is_expired(record.expires_at, now):
                    await self._repo.delete_one(record.id)
                    logger.info("OTP expired for %s (%s)", email, purpose.value)
                    raise ExpiredError(
                        "OTP expired",
                        details="This OTP has expired. Please request a new OTP.",
                    )

                attempts = record.attempts
                if attempts_exhausted(attempts):
                    await self._repo.delete_one(record.id)
                    logger.warning(
                        "OTP attempts exhausted for %s (%s)", email, purpose.value
                    )
                    raise RateLimitedError(
                        "Too many attempts",
                        details=(
                            "Maximum verification attempts reached. "
                            "Please request a new OTP."
                        ),
                    )

                if not _codes_match(submitted_code, record.code):
                    if await self._repo.increment_attempts(record.id, attempts):
                        attempts_left = MAX_ATTEMPTS - (attempts + 1)
                        logger.info(
                            "Invalid OTP for %s (%s), %d attempt(s) left",
                            email,
                            purpose.value,
                            attempts_left,
                        )
                        raise InvalidCodeError(attempts_left)
                    continue

                if await self._repo.mark_verified(record.id, attempts):
                    logger.info("OTP verified for %s (%s)", email, purpose.value)
                    return VerifyResult(verified=True)

            logger.error("OTP record for %s kept changing under verification", email)
            raise InternalError("Could not verify OTP, please retry")

    async def _reconfirm(
        self, email: str, purpose: OTPPurpose, submitted_code: str, now: datetime
    ) -> VerifyResult:
        record = await self._repo.find_most_recent(
            email, purpose, verified=True, code=submitted_code
        )
        if record is None:
            raise NotFoundError(
                "OTP not found",
                details="No OTP found for this email. Please request a new OTP.",
            )
        if verified_window_elapsed(record.created_at, now):
            await self._repo.delete_one(record.id)
            raise ExpiredError(
                "OTP expired",
                details="This OTP has expired. Please request a new OTP.",
            )
        return VerifyResult(verified=True, already_verified=True)

    # ── Consumption ──────────────────────────────────────

    @asynccontextmanager
    async def consume(
        self, email: str, purpose: OTPPurpose | str, submitted_code: str
    ) -> AsyncIterator[OTPRecord]:
        """Authorize one downstream action with a verified record.

        Usage::

            async with manager.consume(email, OTPPurpose.SIGNUP, code):
                ...create the account...

        The record is deleted only if the body completes without raising;
        on failure it stays usable until its window closes.
        """
        email = normalize_email(email)
        purpose = _coerce_purpose(purpose)
        submitted_code = _require_code(submitted_code)
        now = self._clock()

        async with self._unit_of_work():
            record = await self._repo.find_most_recent(
                email, purpose, verified=True, code=submitted_code
            )
            if record is None:
                raise NotFoundError(
                    "Email not verified",
                    details="Please verify the OTP first before continuing.",
                )
            if verified_window_elapsed(record.created_at, now):
                await self._repo.delete_one(record.id)
                logger.info(
                    "Verified OTP for %s (%s) outside its window", email, purpose.value
                )
                raise ExpiredError(
                    "OTP verification expired",
                    details="Please verify your email again with a new OTP.",
                )

            record_id = record.id

        yield record

        async with self._unit_of_work():
            await self._repo.delete_one(record_id)
        logger.info("Consumed verified OTP for %s (%s)", email, purpose.value)

    # ── Transactions ─────────────────────────────────────

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[None]:
        """Commit on exit; deletions made before a domain error are kept."""
        try:
            try:
                yield
            except APIError:
                await self._repo.commit()
                raise
            await self._repo.commit()
        except SQLAlchemyError as exc:
            logger.exception("OTP store failure")
            await self._repo.rollback()
            raise InternalError("Verification store is unavailable") from exc


def _coerce_purpose(purpose: OTPPurpose | str) -> OTPPurpose:
    try:
        return OTPPurpose(purpose)
    except ValueError:
        allowed = ", ".join(p.value for p in OTPPurpose)
        raise ValidationError(
            "Invalid purpose", details=f"Purpose must be one of: {allowed}"
        ) from None


def _require_code(code: str | None) -> str:
    if not code or not str(code).strip():
        raise ValidationError("Missing fields", details="Email and OTP are required")
    return str(code).strip()


def _codes_match(submitted: str, expected: str) -> bool:
    return hmac.compare_digest(submitted.encode(), expected.encode())
