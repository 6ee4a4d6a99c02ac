"""FastAPI dependencies that assemble services for each request."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from course_auth.config import settings
from course_auth.database.engine import get_session
from course_auth.database.otp_repository import OTPRepository
from course_auth.database.repository import AccountRepository
from course_auth.errors import InternalError
from course_auth.services.accounts import AccountService
from course_auth.services.email_service import EmailService, OTPDispatcher
from course_auth.services.otp_manager import OTPManager
from course_auth.services.otp_policy import Clock, utcnow
from course_auth.services.token_codec import SignedTokenCodec

logger = logging.getLogger(__name__)

# ── Shared instances (created once, reused across requests) ──
_email_service = EmailService()


def get_clock() -> Clock:
    return utcnow


def get_dispatcher() -> OTPDispatcher:
    return _email_service


@lru_cache(maxsize=1)
def _default_codec() -> SignedTokenCodec:
    return SignedTokenCodec(settings.token_secret)


def get_token_codec() -> SignedTokenCodec:
    """Codec signed with the configured secret; fails if none is set."""
    try:
        return _default_codec()
    except ValueError as exc:
        logger.error("Token codec unavailable: %s", exc)
        raise InternalError("Course access links are not configured") from exc


def get_otp_manager(
    session: AsyncSession = Depends(get_session),
    dispatcher: OTPDispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
) -> OTPManager:
    return OTPManager(OTPRepository(session), dispatcher, clock)


def get_account_service(
    session: AsyncSession = Depends(get_session),
    otp_manager: OTPManager = Depends(get_otp_manager),
) -> AccountService:
    return AccountService(AccountRepository(session), otp_manager)
