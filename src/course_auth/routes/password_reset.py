"""Forgot-password endpoints.

Endpoints
---------
POST /api/auth/forgot-password          → issue a password-reset code
POST /api/auth/forgot-password/verify   → check the code
POST /api/auth/forgot-password/reset    → set a new password with the verified code

The request endpoint answers identically whether or not the account exists.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field

from course_auth.models.account import AccountRole
from course_auth.models.otp import OTPPurpose
from course_auth.routes.deps import get_account_service, get_otp_manager
from course_auth.routes.otp import OTPIssueResponse, OTPVerifyResponse
from course_auth.services.accounts import AccountService
from course_auth.services.otp_manager import OTPManager

router = APIRouter(prefix="/api/auth/forgot-password", tags=["password-reset"])

_REQUEST_MESSAGE = "If an account exists with this email, an OTP has been sent"


class ResetRequest(BaseModel):
    email: str = Field(validation_alias=AliasChoices("email", "subjectEmail"))
    role: AccountRole


class ResetVerifyRequest(BaseModel):
    email: str = Field(validation_alias=AliasChoices("email", "subjectEmail"))
    otp: str = Field(validation_alias=AliasChoices("otp", "submittedCode"))


class ResetPasswordRequest(ResetRequest):
    otp: str = Field(validation_alias=AliasChoices("otp", "submittedCode"))
    new_password: str = Field(validation_alias=AliasChoices("newPassword", "new_password"))


class ResetPasswordResponse(BaseModel):
    success: bool = True
    message: str


@router.post("", response_model=OTPIssueResponse)
async def request_password_reset(
    body: ResetRequest, service: AccountService = Depends(get_account_service)
):
    """Send a password-reset OTP if the account exists."""
    result = await service.request_password_reset(body.email, body.role)
    return OTPIssueResponse(message=_REQUEST_MESSAGE, expires_in=result.expires_in)


@router.post("/verify", response_model=OTPVerifyResponse)
async def verify_password_reset_otp(
    body: ResetVerifyRequest, manager: OTPManager = Depends(get_otp_manager)
):
    result = await manager.verify(body.email, OTPPurpose.PASSWORD_RESET, body.otp)
    return OTPVerifyResponse(
        message="OTP verified successfully. You can now reset your password.",
        verified=result.verified,
    )


@router.post("/reset", response_model=ResetPasswordResponse)
async def reset_password(
    body: ResetPasswordRequest, service: AccountService = Depends(get_account_service)
):
    await service.reset_password(body.email, body.role, body.otp, body.new_password)
    return ResetPasswordResponse(
        message="Password reset successfully. You can now login with your new password."
    )
