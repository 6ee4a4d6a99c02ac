"""OTP lifecycle constants and pure policy functions.

Everything here is side-effect free so issuance, resend and verification
all apply the exact same rules.
"""

from __future__ import annotations

import math
import re
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from course_auth.errors import ValidationError

OTP_TTL = timedelta(minutes=10)
OTP_TTL_SECONDS = int(OTP_TTL.total_seconds())

# How long a verified record may back a registration / password reset.
VERIFIED_WINDOW = timedelta(minutes=30)

COOLDOWN = timedelta(seconds=60)

MAX_ATTEMPTS = 5

CODE_MIN = 100_000
CODE_MAX = 999_999

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def generate_code() -> str:
    """Return a six-digit code drawn uniformly from [CODE_MIN, CODE_MAX]."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def normalize_email(email: str | None) -> str:
    """Lower-case *email* after a basic address-shape check."""
    if not email or not email.strip():
        raise ValidationError(
            "Email required", details="Email address is required to send OTP"
        )
    normalized = email.strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise ValidationError(
            "Invalid email", details="Please provide a valid email address"
        )
    return normalized


def cooldown_remaining(last_created_at: datetime, now: datetime) -> int:
    """Seconds until a new OTP may be issued; ``0`` means issuance is allowed.

    *last_created_at* is the creation time of the newest record for the
    ``(email, purpose)`` pair.  Partial seconds round up.
    """
    elapsed = as_utc(now) - as_utc(last_created_at)
    if elapsed >= COOLDOWN:
        return 0
    remaining = math.ceil((COOLDOWN - elapsed).total_seconds())
    return min(max(remaining, 1), int(COOLDOWN.total_seconds()))


def is_expired(expires_at: datetime, now: datetime) -> bool:
    return as_utc(now) > as_utc(expires_at)


def attempts_exhausted(attempts: int) -> bool:
    return attempts >= MAX_ATTEMPTS


def verified_window_elapsed(created_at: datetime, now: datetime) -> bool:
    """True once a verified record is too old to authorize a downstream action."""
    return as_utc(now) - as_utc(created_at) > VERIFIED_WINDOW
