"""Course-access links built from signed tokens."""

from __future__ import annotations

from datetime import datetime
from urllib.parse import quote

from course_auth.config import settings
from course_auth.services.token_codec import SignedTokenCodec


def build_course_link(
    codec: SignedTokenCodec,
    email: str,
    course: str,
    deadline: datetime | int,
    frontend_url: str | None = None,
    correlation_id: str | None = None,
) -> str:
    """Return ``<frontend>/course-access?token=...`` for *email* and *course*.

    The frontend page hands the token back to
    ``GET /api/courses/course-access`` for validation.
    """
    token = codec.issue(email, course, deadline, correlation_id=correlation_id)
    base = (frontend_url or settings.frontend_url).rstrip("/")
    return f"{base}/course-access?token={quote(token, safe='')}"
