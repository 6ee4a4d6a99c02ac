"""Signed token codec — stateless, deadline-bound course-access tokens.

Wire format::

    <base64(canonical JSON payload)>.<lower-case hex HMAC-SHA256>

The HMAC covers the exact encoded payload bytes.  The payload carries a
format version ``v`` so the encoding can change without older tokens
being misread.  Tokens need no store lookup to verify and cannot be
revoked before their deadline; rotating the secret invalidates all of them.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import SecretStr

from course_auth.errors import (
    ExpiredError,
    InvalidSignatureError,
    MalformedTokenError,
    SubjectMismatchError,
)
from course_auth.services.otp_policy import Clock, utcnow

logger = logging.getLogger(__name__)

TOKEN_FORMAT_VERSION = 1
SEPARATOR = "."


def to_epoch_ms(value: datetime | int) -> int:
    """Convert a datetime (naive means UTC) or epoch milliseconds to epoch ms."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return int(value.timestamp() * 1000)
    return int(value)


@dataclass(frozen=True)
class TokenPayload:
    """Decoded token contents.  ``deadline`` and ``issued_at`` are epoch ms."""

    subject_email: str
    resource_label: str
    deadline: int | None
    issued_at: int
    correlation_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        # Insertion order is the canonical field order.
        data: dict[str, Any] = {
            "v": TOKEN_FORMAT_VERSION,
            "subjectEmail": self.subject_email,
            "resourceLabel": self.resource_label,
            "deadline": self.deadline,
            "issuedAt": self.issued_at,
        }
        if self.correlation_id is not None:
            data["correlationId"] = self.correlation_id
        return data

    @classmethod
    def from_wire(cls, data: Any) -> TokenPayload:
        if not isinstance(data, dict):
            raise MalformedTokenError("Token payload is not an object")
        if data.get("v") != TOKEN_FORMAT_VERSION:
            raise MalformedTokenError(f"Unsupported token version: {data.get('v')!r}")

        subject_email = data.get("subjectEmail")
        resource_label = data.get("resourceLabel")
        deadline = data.get("deadline")
        issued_at = data.get("issuedAt")
        correlation_id = data.get("correlationId")

        if not isinstance(subject_email, str) or not isinstance(resource_label, str):
            raise MalformedTokenError("Token payload is missing required fields")
        if deadline is not None and not _is_int(deadline):
            raise MalformedTokenError("Token deadline must be epoch milliseconds")
        if not _is_int(issued_at):
            raise MalformedTokenError("Token issuedAt must be epoch milliseconds")
        if correlation_id is not None and not isinstance(correlation_id, str):
            raise MalformedTokenError("Token correlationId must be a string")

        return cls(
            subject_email=subject_email,
            resource_label=resource_label,
            deadline=deadline,
            issued_at=issued_at,
            correlation_id=correlation_id,
        )


@dataclass(frozen=True)
class SignedToken:
    """The two halves of a token before they are joined for transport."""

    encoded_payload: str
    signature: str

    def serialize(self) -> str:
        return f"{self.encoded_payload}{SEPARATOR}{self.signature}"

    @classmethod
    def parse(cls, token: str) -> SignedToken:
        parts = (token or "").strip().split(SEPARATOR)
        if len(parts) != 2 or not all(parts):
            raise MalformedTokenError("Token must have exactly a payload and a signature")
        return cls(encoded_payload=parts[0], signature=parts[1])


class SignedTokenCodec:
    """Issues and verifies signed course-access tokens.

    Holds no mutable state and is safe to share across concurrent requests.
    """

    def __init__(self, secret: SecretStr | str, clock: Clock = utcnow) -> None:
        raw = secret.get_secret_value() if isinstance(secret, SecretStr) else secret
        if not raw:
            raise ValueError("A token signing secret must be configured (TOKEN_SECRET)")
        self._key = raw.encode("utf-8")
        self._clock = clock

    def issue(
        self,
        subject_email: str,
        resource_label: str,
        deadline: datetime | int,
        correlation_id: str | None = None,
    ) -> str:
        """Return a token granting *subject_email* access to *resource_label*.

        *deadline* is a datetime or epoch milliseconds; the token is
        rejected once the current time passes it.
        """
        payload = TokenPayload(
            subject_email=subject_email.strip().lower(),
            resource_label=resource_label,
            deadline=to_epoch_ms(deadline),
            issued_at=to_epoch_ms(self._clock()),
            correlation_id=correlation_id,
        )
        encoded = self._encode(payload)
        token = SignedToken(encoded_payload=encoded, signature=self._sign(encoded))
        logger.info(
            "Issued access token for %s (%s), deadline=%s",
            payload.subject_email,
            resource_label,
            payload.deadline,
        )
        return token.serialize()

    def verify(self, token: str, expected_subject_email: str | None = None) -> TokenPayload:
        """Validate *token* and return its payload.

        Raises ``MalformedTokenError``, ``InvalidSignatureError``,
        ``ExpiredError`` or ``SubjectMismatchError``.
        """
        signed = SignedToken.parse(token)

        expected = self._sign(signed.encoded_payload)
        if not hmac.compare_digest(signed.signature.encode("utf-8"), expected.encode("ascii")):
            logger.warning("Rejected access token: signature mismatch")
            raise InvalidSignatureError()

        payload = self._decode(signed.encoded_payload)

        now_ms = to_epoch_ms(self._clock())
        if payload.deadline is not None and now_ms > payload.deadline:
            logger.info(
                "Rejected access token for %s: deadline passed %d ms ago",
                payload.subject_email,
                now_ms - payload.deadline,
            )
            raise ExpiredError(
                "Access link expired",
                details="The deadline for this course link has passed.",
            )

        if (
            expected_subject_email is not None
            and expected_subject_email.strip().lower() != payload.subject_email.lower()
        ):
            logger.warning("Rejected access token for %s: subject mismatch", payload.subject_email)
            raise SubjectMismatchError()

        return payload

    # ── Encoding ─────────────────────────────────────────

    def _sign(self, encoded_payload: str) -> str:
        return hmac.new(
            self._key, encoded_payload.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    @staticmethod
    def _encode(payload: TokenPayload) -> str:
        raw = json.dumps(payload.to_wire(), separators=(",", ":"), ensure_ascii=True)
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    @staticmethod
    def _decode(encoded_payload: str) -> TokenPayload:
        try:
            raw = base64.b64decode(encoded_payload.encode("ascii"), validate=True)
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise MalformedTokenError("Token payload could not be decoded") from exc
        return TokenPayload.from_wire(data)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
