"""Telegram notification adapter — chat channel sender.

Wraps a telegram.Bot instance; used by the ChannelDispatcher for
Channel.TELEGRAM.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import TelegramError

from src.ports.notification_port import NotificationPayload, Recipient

logger = logging.getLogger(__name__)


def format_chat_message(payload: NotificationPayload) -> str:
    return f"🔔 {payload.title}\n{payload.body}"


class TelegramNotifier:
    """Telegram implementation of a channel sender."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send(self, recipient: Recipient, payload: NotificationPayload) -> bool:
        if not recipient.chat_id:
            return False
        try:
            await self._bot.send_message(
                chat_id=recipient.chat_id, text=format_chat_message(payload),
            )
        except TelegramError as exc:
            logger.warning("Telegram send to chat %s failed: %s", recipient.chat_id, exc)
            return False
        return True
