"""Email service — delivers one-time passcodes via async SMTP."""

from __future__ import annotations

import logging
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib

from course_auth.config import Settings, settings
from course_auth.models.otp import OTPPurpose
from course_auth.services.otp_policy import OTP_TTL_SECONDS

logger = logging.getLogger(__name__)

_SUBJECTS = {
    OTPPurpose.SIGNUP: "Verify Your Email",
    OTPPurpose.PASSWORD_RESET: "Reset Your Password",
    OTPPurpose.EMAIL_VERIFICATION: "Verify Your Email Address",
}

_INTROS = {
    OTPPurpose.SIGNUP: (
        "Thank you for signing up! Please use the following OTP to verify "
        "your email address:"
    ),
    OTPPurpose.PASSWORD_RESET: (
        "You requested to reset your password. Please use the following OTP:"
    ),
    OTPPurpose.EMAIL_VERIFICATION: (
        "Please use the following OTP to verify your email address:"
    ),
}


class OTPDispatcher(Protocol):
    """Anything that can deliver a code to an email address.

    Implementations may raise; the OTP manager treats delivery as
    best-effort and never surfaces the failure to its caller.
    """

    async def send_otp(self, to_email: str, code: str, purpose: OTPPurpose) -> None: ...


class EmailService:
    """Sends transactional emails using the configured SMTP server.

    When no SMTP host is configured the code is written to the log instead,
    which keeps local development usable without a mail server.
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._config = config or settings

    @property
    def configured(self) -> bool:
        return bool(self._config.smtp_host)

    async def send_otp(self, to_email: str, code: str, purpose: OTPPurpose) -> None:
        """Send *code* to *to_email* with purpose-specific wording.

        Parameters
        ----------
        to_email:
            Recipient email address (already normalized).
        code:
            The six-digit passcode.
        purpose:
            Why the code was issued; selects subject and body text.
        """
        minutes = OTP_TTL_SECONDS // 60

        if not self.configured:
            logger.info(
                "SMTP not configured — OTP (%s) for %s: %s (expires in %d minutes)",
                purpose.value,
                to_email,
                code,
                minutes,
            )
            return

        msg = self._build_message(to_email, code, purpose, minutes)
        logger.info("Sending %s OTP email to %s", purpose.value, to_email)

        implicit_tls = self._config.smtp_port == 465
        await aiosmtplib.send(
            msg,
            hostname=self._config.smtp_host,
            port=self._config.smtp_port,
            username=self._config.smtp_username or None,
            password=self._config.smtp_password or None,
            use_tls=implicit_tls,
            start_tls=not implicit_tls,
        )

        logger.info("OTP email sent to %s", to_email)

    def _build_message(
        self, to_email: str, code: str, purpose: OTPPurpose, minutes: int
    ) -> EmailMessage:
        app_name = self._config.app_name
        intro = _INTROS[purpose]

        msg = EmailMessage()
        msg["Subject"] = f"{_SUBJECTS[purpose]} - {app_name}"
        msg["From"] = self._config.email_from
        msg["To"] = to_email
        msg.set_content(
            f"{intro}\n\n"
            f"    {code}\n\n"
            f"This OTP will expire in {minutes} minutes.\n"
            "If you didn't request this OTP, please ignore this email.\n\n"
            f"{app_name}\n"
        )
        msg.add_alternative(
            f"""\
<html>
  <body style="font-family: Arial, sans-serif; color: #333;">
    <h2>{_SUBJECTS[purpose]}</h2>
    <p>{intro}</p>
    <p style="font-size: 32px; font-weight: bold; letter-spacing: 5px;">{code}</p>
    <p><strong>This OTP will expire in {minutes} minutes.</strong></p>
    <p>If you didn't request this OTP, please ignore this email.</p>
    <p style="color: #666; font-size: 12px;">{app_name}</p>
  </body>
</html>
""",
            subtype="html",
        )
        return msg
