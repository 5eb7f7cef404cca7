"""Email delivery service."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from auth.config import AuthConfig

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text_body: str
    html_body: str


def password_reset_email(to: str, reset_url: str, expiry_minutes: int) -> EmailMessage:
    text = (
        "You are receiving this email because you (or someone else) requested a password reset.\n\n"
        f"Reset your password here: {reset_url}\n\n"
        f"This link will expire in {expiry_minutes} minutes.\n\n"
        "If you did not request this, ignore this email and your password will remain unchanged."
    )
    html = (
        "<p>You are receiving this email because you (or someone else) requested a password reset.</p>"
        f'<p><a href="{reset_url}">Reset your password</a></p>'
        f"<p>This link will expire in {expiry_minutes} minutes.</p>"
        "<p>If you did not request this, ignore this email and your password will remain unchanged.</p>"
    )
    return EmailMessage(
        to=to,
        subject="Password Reset Request - Swayamvar",
        text_body=text,
        html_body=html,
    )


def verification_email(to: str, verification_url: str, expiry_hours: int) -> EmailMessage:
    text = (
        "Welcome to Swayamvar! Please verify your email address:\n\n"
        f"{verification_url}\n\n"
        f"This link will expire in {expiry_hours} hours.\n\n"
        "If you did not create an account, please ignore this email."
    )
    html = (
        "<p>Welcome to Swayamvar! Please verify your email address.</p>"
        f'<p><a href="{verification_url}">Verify email</a></p>'
        f"<p>This link will expire in {expiry_hours} hours.</p>"
        "<p>If you did not create an account, please ignore this email.</p>"
    )
    return EmailMessage(
        to=to,
        subject="Verify Your Email Address - Swayamvar",
        text_body=text,
        html_body=html,
    )


class EmailService:
    def __init__(self, config: AuthConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._transport = transport

    async def send(self, message: EmailMessage) -> bool:
        """Deliver a message. Returns False on any delivery failure."""
        if self._config.EMAIL_PROVIDER != "resend":
            logger.warning("Unsupported email provider %s", self._config.EMAIL_PROVIDER)
            return False
        if not self._config.RESEND_API_KEY:
            logger.warning("RESEND_API_KEY not configured, email to %s not sent", message.to)
            return False

        payload = {
            "from": f"{self._config.EMAIL_FROM_NAME} <{self._config.EMAIL_FROM_ADDRESS}>",
            "to": [message.to],
            "subject": message.subject,
            "text": message.text_body,
            "html": message.html_body,
        }
        headers = {"Authorization": f"Bearer {self._config.RESEND_API_KEY}"}

        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                response = await client.post(RESEND_API_URL, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Email delivery to %s failed: %s", message.to, exc)
            return False

        if response.status_code != 200:
            logger.warning(
                "Email provider rejected message to %s with status %s",
                message.to,
                response.status_code,
            )
            return False
        return True
