"""
Email notification dispatch via the SendGrid v3 mail API.

``notify(subject, body)`` returns a boolean outcome and never raises: a
disabled channel, a missing API key, a non-2xx response or a transport error
all yield ``False``. Calls are bounded by a timeout and never retried.

CHANGELOG:
- 2026-10-11: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import html
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from monitor.src.settings_store import AlertSettings

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
_DEFAULT_TIMEOUT_S = 5.0


def render_html(subject: str, body: str) -> str:
    """Wrap a plain-text message in the simple HTML alert layout."""
    paragraphs = html.escape(body).replace("\n", "<br>")
    return (
        '<div style="font-family: Arial, sans-serif; padding: 20px;">'
        f'<h2 style="color: #667eea;">{html.escape(subject)}</h2>'
        f'<p style="font-size: 16px;">{paragraphs}</p>'
        '<hr style="margin: 20px 0; border: none; border-top: 1px solid #e0e0e0;">'
        '<p style="color: #999; font-size: 12px;">Solar Monitor Alert System</p>'
        "</div>"
    )


class Notifier:
    """SendGrid email notifier.

    Settings are read through a callable at send time so edits made via the
    API take effect without rebuilding the notifier.

    Args:
        settings: Callable returning the current AlertSettings.
        timeout_s: Request timeout in seconds.

    Usage::

        notifier = Notifier(lambda: context.alert_settings)
        ok = await notifier.notify("Low Battery Alert", "SOC dropped to 42%")
    """

    def __init__(
        self,
        settings: Callable[[], AlertSettings],
        timeout_s: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self._settings = settings
        self._timeout_s = timeout_s

    async def notify(self, subject: str, body: str) -> bool:
        """Send one email.

        Returns:
            True if SendGrid accepted the message, False otherwise.
        """
        settings = self._settings()
        if not settings.enabled or not settings.sendgrid_api_key:
            logger.info("Alerts disabled or no API key configured, not sending '%s'", subject)
            return False

        payload = {
            "personalizations": [{"to": [{"email": settings.to_email}]}],
            "from": {"email": settings.from_email},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": body},
                {"type": "text/html", "value": render_html(subject, body)},
            ],
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.post(
                    SENDGRID_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {settings.sendgrid_api_key}"},
                )
        except httpx.HTTPError as exc:
            logger.error("Error sending email alert '%s': %s", subject, exc)
            return False

        if response.is_success:
            logger.info("Alert sent: %s", subject)
            return True

        logger.error(
            "Email alert '%s' rejected (HTTP %d)", subject, response.status_code
        )
        return False
