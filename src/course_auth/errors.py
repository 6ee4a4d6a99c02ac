"""Error taxonomy shared by services, repositories and HTTP handlers.

Every failure a caller can act on is an ``APIError`` subclass.  The
exception handler in ``course_auth.main`` renders them as::

    {"error": <message>, "code": <code>, "details": <details>, **extra}

``extra`` carries remediation fields such as ``cooldownSeconds`` or
``attemptsLeft`` using the camelCase names the frontend expects.
"""

from __future__ import annotations

from typing import Any


class APIError(Exception):
    """Base class for all service errors.

    Attributes:
        code: Machine-readable error code (e.g. ``"RATE_LIMITED"``).
        message: Short human-readable summary.
        status_code: HTTP status returned to clients.
        details: Optional longer explanation / remediation hint.
        extra: Additional fields merged into the response body.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.extra = extra or {}
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        """Return the JSON body sent to clients."""
        body: dict[str, Any] = {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }
        body.update(self.extra)
        return body


class ValidationError(APIError):
    """Malformed or missing input (400)."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class NotFoundError(APIError):
    """No matching OTP record or account (404)."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
            details=details,
        )


class ExpiredError(APIError):
    """An OTP's TTL, a verified record's window or a token deadline elapsed (400)."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(
            code="EXPIRED",
            message=message,
            status_code=400,
            details=details,
        )


class RateLimitedError(APIError):
    """Cooldown active or verification attempts exhausted (429).

    ``cooldown_seconds`` is only set for the issuance cooldown.
    """

    def __init__(
        self,
        message: str,
        details: str | None = None,
        cooldown_seconds: int | None = None,
    ) -> None:
        self.cooldown_seconds = cooldown_seconds
        super().__init__(
            code="RATE_LIMITED",
            message=message,
            status_code=429,
            details=details,
            extra=(
                {"cooldownSeconds": cooldown_seconds}
                if cooldown_seconds is not None
                else None
            ),
        )


class InvalidCodeError(APIError):
    """Submitted OTP does not match (400)."""

    def __init__(self, attempts_left: int) -> None:
        self.attempts_left = attempts_left
        if attempts_left > 0:
            details = f"Incorrect OTP. {attempts_left} attempt(s) remaining."
        else:
            details = "Incorrect OTP. No attempts remaining."
        super().__init__(
            code="INVALID_CODE",
            message="Invalid OTP",
            status_code=400,
            details=details,
            extra={"attemptsLeft": attempts_left},
        )


class MalformedTokenError(APIError):
    """Token is not ``<payload>.<signature>`` or its payload cannot be decoded (400)."""

    def __init__(self, details: str | None = None) -> None:
        super().__init__(
            code="MALFORMED_TOKEN",
            message="Malformed access token",
            status_code=400,
            details=details,
        )


class InvalidSignatureError(APIError):
    """Token signature does not match its payload (401)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_SIGNATURE",
            message="Invalid access token",
            status_code=401,
            details="The link has been altered or was issued with a different key.",
        )


class SubjectMismatchError(APIError):
    """Token was issued to a different email address (403)."""

    def __init__(self) -> None:
        super().__init__(
            code="SUBJECT_MISMATCH",
            message="Access token belongs to another user",
            status_code=403,
        )


class ConflictError(APIError):
    """Duplicate registration (409)."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(
            code="CONFLICT",
            message=message,
            status_code=409,
            details=details,
            extra={"alreadyRegistered": True},
        )


class InternalError(APIError):
    """Store failure outside the best-effort dispatch path (500)."""

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
