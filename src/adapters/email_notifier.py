"""Email notification adapter — Resend HTTP API.

Renders the channel-agnostic payload as a small HTML email and posts it to
Resend. Gracefully degrades: returns False on any failure (no API key,
timeout, non-2xx response).
"""

from __future__ import annotations

import html
import logging

import httpx

from src.ports.notification_port import NotificationPayload, Recipient

logger = logging.getLogger(__name__)

_RESEND_URL = "https://api.resend.com/emails"
_TIMEOUT_SECONDS = 10


def render_email_html(payload: NotificationPayload) -> str:
    """HTML body for a payload; body lines become paragraphs."""
    paragraphs = "".join(
        f'<p style="margin: 4px 0;">{html.escape(line)}</p>' if line else "<br />"
        for line in payload.body.splitlines()
    )
    link = ""
    if payload.url:
        link = (
            '<hr style="margin: 16px 0; border: none; border-top: 1px solid #e5e7eb;" />'
            f'<a href="{html.escape(payload.url, quote=True)}" style="color: #2563eb;">'
            "Open Family Scheduler</a>"
        )
    return (
        '<div style="font-family: sans-serif; max-width: 520px; margin: 0 auto;">'
        f'<h2 style="color: #2563eb;">{html.escape(payload.title)}</h2>'
        f"{paragraphs}{link}</div>"
    )


class EmailNotifier:
    """Resend implementation of a channel sender."""

    def __init__(self, api_key: str, sender: str) -> None:
        self._api_key = api_key
        self._sender = sender

    async def send(self, recipient: Recipient, payload: NotificationPayload) -> bool:
        if not recipient.email or not self._api_key:
            return False

        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                resp = await client.post(
                    _RESEND_URL,
                    json={
                        "from": self._sender,
                        "to": recipient.email,
                        "subject": payload.title,
                        "html": render_email_html(payload),
                    },
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                resp.raise_for_status()
                data = resp.json()
        except Exception as exc:
            logger.warning("Email to %s failed: %s", recipient.email, exc)
            return False

        logger.info("Email sent to %s: %s", recipient.email, data.get("id"))
        return True
