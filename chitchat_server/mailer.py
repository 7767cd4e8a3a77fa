"""Outbound e-mail through the Resend HTTP API."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

RESEND_ENDPOINT = "https://api.resend.com/emails"


class Mailer:
    """Sends HTML e-mail. Delivery problems are logged, never raised."""

    def __init__(self, api_key: Optional[str], sender: str, timeout: float = 10.0):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def send(self, to: str, subject: str, html: str) -> bool:
        if not self.enabled:
            logger.info(f"Mail disabled, not sending '{subject}' to {to}")
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    RESEND_ENDPOINT,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"from": self.sender, "to": [to], "subject": subject, "html": html},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send '{subject}' to {to}: {e}")
            return False

        logger.info(f"Email '{subject}' sent to {to}")
        return True


def otp_email(first_name: str, last_name: str, otp: str) -> tuple[str, str]:
    """Build (subject, html) for an account verification code."""
    subject = "chitChat Account Verification Code"
    html = f"""
      <p>Dear {first_name} {last_name},</p>
      <p>Your verification code is:</p>
      <h2 style="color:#2c3e50;">{otp}</h2>
      <p>Please enter this code within 10 minutes to verify your account.</p>
      <p>If you did not request this, please disregard this email.</p>
      <br/>
      <p>Thank you for choosing <strong>chitChat</strong>.</p>
    """
    return subject, html
