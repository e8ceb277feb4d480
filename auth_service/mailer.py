"""Verification email delivery through the SendGrid v3 HTTP API.

Delivery is best effort: errors are logged and never propagate to the
request that triggered the email.
"""

from __future__ import annotations

import html
import logging
from email.utils import parseaddr
from typing import Optional

import httpx

from config import Settings
from models import User

logger = logging.getLogger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"
SUBJECT = "Email Verification"

_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; color: #333; padding: 20px; line-height: 1.6;">
  <h2 style="color: #4CAF50;">Welcome to NutriSync, {username}!</h2>
  <p>Thank you for signing up. To start your nutrition journey, please verify your email address by clicking the button below:</p>
  <a href="{link}"
     style="background-color: #4CAF50; color: white; padding: 10px 20px; text-decoration: none; border-radius: 5px; display: inline-block;">
    Verify Email
  </a>
  <p>If the button above doesn't work, copy and paste the following link into your browser:</p>
  <p><a href="{link}" style="color: #4CAF50;">{link}</a></p>
  <p>If you did not create an account with NutriSync, please ignore this email.</p>
  <p>Thank you,<br/>The NutriSync Team</p>
</div>
"""


def verification_link(callback_url: str, token: str) -> str:
    return f"{callback_url}?token={token}"


def render_verification_email(user: User, callback_url: str) -> str:
    link = html.escape(verification_link(callback_url, user.verification_token or ""))
    return _TEMPLATE.format(username=html.escape(user.username), link=link)


class Mailer:
    """Sends transactional emails for the auth workflow."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self.settings = settings
        self.transport = transport
        self.timeout = timeout

    def _payload(self, user: User) -> dict:
        sender_name, sender_email = parseaddr(self.settings.mail_from)
        sender = {"email": sender_email}
        if sender_name:
            sender["name"] = sender_name
        return {
            "personalizations": [{"to": [{"email": user.email}]}],
            "from": sender,
            "subject": SUBJECT,
            "content": [
                {
                    "type": "text/html",
                    "value": render_verification_email(user, self.settings.sendgrid_callback),
                }
            ],
        }

    async def send_verification_email(self, user: User) -> bool:
        """Email ``user`` a link embedding their verification token.

        Returns ``True`` if the provider accepted the message.
        """
        if not self.settings.mail_enabled:
            logger.warning(
                "Mail is not configured; skipping verification email for %s", user.email
            )
            return False
        if not user.verification_token:
            logger.warning("User %s has no verification token; nothing to send", user.id)
            return False

        headers = {"Authorization": f"Bearer {self.settings.sendgrid_api_key}"}
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                resp = await client.post(SENDGRID_API_URL, json=self._payload(user), headers=headers)
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "SendGrid HTTP error for %s: %s - %s",
                user.email,
                exc.response.status_code,
                exc.response.text,
            )
            return False
        except Exception as exc:
            logger.error("Failed to send verification email to %s: %s", user.email, exc)
            return False

        logger.info("Verification email sent to %s (status=%s)", user.email, resp.status_code)
        return True
