"""Invitation email delivery.

Modes:
    - console: log the message (development default)
    - brevo: send through the Brevo transactional email HTTP API

``send`` never raises: callers treat email as a side channel and the
invitation row stays authoritative.
"""
import logging
from html import escape
from typing import Any, Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"


class EmailSender:
    """Invitation email sender with console and Brevo modes."""

    def __init__(
        self,
        mode: Optional[str] = None,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        app_url: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self._mode = mode or settings.EMAIL_MODE
        self._api_key = api_key if api_key is not None else settings.BREVO_API_KEY
        self._from_email = from_email or settings.FROM_EMAIL
        self._from_name = from_name or settings.FROM_NAME
        self._app_url = app_url or settings.APP_URL
        self._timeout = timeout

        if self._mode == "brevo" and not self._api_key:
            logger.warning("Brevo API key not configured, falling back to console mode")
            self._mode = "console"
        elif self._mode not in ("console", "brevo"):
            logger.warning("Unknown EMAIL_MODE %r, falling back to console mode", self._mode)
            self._mode = "console"

    @property
    def mode(self) -> str:
        return self._mode

    def _render(self, data: dict[str, Any]) -> tuple[str, str]:
        group_name = data.get("group_name", "")
        inviter = data.get("inviter_name", "")
        join_code = data.get("join_code", "")
        subject = f'You\'re invited to join "{group_name}" on {self._from_name}'
        html = f"""<!DOCTYPE html>
<html>
  <body style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333;">
    <p>Hi there!</p>
    <p><strong>{escape(inviter)}</strong> has invited you to join a group:</p>
    <p style="font-size: 20px; font-weight: 600; color: #0d9488;">{escape(group_name)}</p>
    <p>Log in, choose "Join Group" and enter this code:</p>
    <p style="font-size: 24px; font-weight: bold; letter-spacing: 4px;">{escape(join_code)}</p>
    <p><a href="{escape(self._app_url)}">Open {escape(self._from_name)}</a></p>
    <p style="color: #64748b;">If you didn't expect this invitation, you can safely ignore this email.</p>
  </body>
</html>
"""
        return subject, html

    def send(self, to_address: str, template_data: dict[str, Any]) -> bool:
        """Send an invitation email. Returns False on any failure."""
        subject, html = self._render(template_data)

        if self._mode == "console":
            logger.info(
                "[console email] to=%s subject=%r code=%s",
                to_address, subject, template_data.get("join_code"),
            )
            return True

        try:
            response = httpx.post(
                BREVO_API_URL,
                headers={"api-key": self._api_key, "Content-Type": "application/json"},
                json={
                    "sender": {"email": self._from_email, "name": self._from_name},
                    "to": [{"email": to_address}],
                    "subject": subject,
                    "htmlContent": html,
                },
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("Invitation email to %s failed: %s", to_address, exc)
            return False

        if response.status_code >= 400:
            logger.warning(
                "Invitation email to %s rejected (%d): %s",
                to_address, response.status_code, response.text[:200],
            )
            return False

        logger.info("Invitation email sent to %s", to_address)
        return True


_default_sender: Optional[EmailSender] = None


def get_email_sender() -> EmailSender:
    """FastAPI dependency returning the process-wide sender."""
    global _default_sender
    if _default_sender is None:
        _default_sender = EmailSender()
    return _default_sender
