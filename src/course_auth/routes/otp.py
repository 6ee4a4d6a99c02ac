"""OTP and registration endpoints.

Endpoints
---------
POST /api/auth/send-otp     → issue a code for ``(email, purpose)``
POST /api/auth/resend-otp   → same issuance path and cooldown as send-otp
POST /api/auth/verify-otp   → check a submitted code
POST /api/auth/register     → create an employee account with a verified signup code
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from course_auth.models.otp import OTPPurpose
from course_auth.routes.deps import get_account_service, get_otp_manager
from course_auth.services.accounts import AccountService
from course_auth.services.otp_manager import OTPManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["otp"])


# ── Request / response models ────────────────────────────

class OTPSendRequest(BaseModel):
    email: str = Field(validation_alias=AliasChoices("email", "subjectEmail"))
    purpose: OTPPurpose


class OTPIssueResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    expires_in: int = Field(alias="expiresIn")


class OTPVerifyRequest(BaseModel):
    email: str = Field(validation_alias=AliasChoices("email", "subjectEmail"))
    purpose: OTPPurpose
    otp: str = Field(validation_alias=AliasChoices("otp", "submittedCode"))


class OTPVerifyResponse(BaseModel):
    success: bool = True
    message: str
    verified: bool


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    department: str | None = None
    otp: str = Field(validation_alias=AliasChoices("otp", "submittedCode"))


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    email: str


# ── Endpoints ────────────────────────────────────────────

@router.post("/send-otp", response_model=OTPIssueResponse)
async def send_otp(body: OTPSendRequest, manager: OTPManager = Depends(get_otp_manager)):
    """Issue a one-time passcode and email it to the subject."""
    result = await manager.issue(body.email, body.purpose)
    return OTPIssueResponse(message="OTP sent successfully", expires_in=result.expires_in)


@router.post("/resend-otp", response_model=OTPIssueResponse)
async def resend_otp(body: OTPSendRequest, manager: OTPManager = Depends(get_otp_manager)):
    """Issue a replacement code, subject to the same cooldown as send-otp."""
    result = await manager.issue(body.email, body.purpose)
    return OTPIssueResponse(message="OTP resent successfully", expires_in=result.expires_in)


@router.post("/verify-otp", response_model=OTPVerifyResponse)
async def verify_otp(body: OTPVerifyRequest, manager: OTPManager = Depends(get_otp_manager)):
    """Validate a submitted code for the given purpose."""
    result = await manager.verify(body.email, body.purpose, body.otp)
    return OTPVerifyResponse(message="OTP verified successfully", verified=result.verified)


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    body: RegisterRequest, service: AccountService = Depends(get_account_service)
):
    """Register an employee whose email was verified with a signup OTP."""
    account = await service.register(
        name=body.name,
        email=body.email,
        password=body.password,
        code=body.otp,
        department=body.department,
    )
    return RegisterResponse(message="Registration successful", email=account.email)
