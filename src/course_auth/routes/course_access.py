"""Course-access link validation.

GET /api/courses/course-access?token=...[&email=...]

Called by the frontend ``/course-access`` page.  No store lookup: the
token alone decides whether the link is still valid.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from course_auth.routes.deps import get_token_codec
from course_auth.services.token_codec import SignedTokenCodec

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/courses", tags=["course-access"])


class CourseAccessResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool = True
    subject_email: str = Field(alias="subjectEmail")
    resource_label: str = Field(alias="resourceLabel")
    deadline: int | None
    issued_at: int = Field(alias="issuedAt")
    correlation_id: str | None = Field(default=None, alias="correlationId")


@router.get("/course-access", response_model=CourseAccessResponse)
async def validate_course_access(
    token: str = Query(..., description="Signed course-access token"),
    email: str | None = Query(None, description="Email the link must belong to"),
    codec: SignedTokenCodec = Depends(get_token_codec),
):
    """Validate a course-access token and return what it grants."""
    payload = codec.verify(token, expected_subject_email=email)
    logger.info(
        "Course access granted to %s for %s", payload.subject_email, payload.resource_label
    )
    return CourseAccessResponse(
        subject_email=payload.subject_email,
        resource_label=payload.resource_label,
        deadline=payload.deadline,
        issued_at=payload.issued_at,
        correlation_id=payload.correlation_id,
    )
