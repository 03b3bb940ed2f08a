"""Channel dispatcher — implements NotificationPort over per-channel senders.

Channels without a configured sender are skipped (reported as not
delivered), so a deployment without push keys or a bot token still sends
email reminders.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from src.ports.notification_port import Channel, NotificationPayload, Recipient

if TYPE_CHECKING:
    from telegram import Bot

    from src.config import Settings

logger = logging.getLogger(__name__)


class ChannelSender(Protocol):
    async def send(self, recipient: Recipient, payload: NotificationPayload) -> bool: ...


class ChannelDispatcher:
    """Routes each dispatch to the sender registered for its channel."""

    def __init__(self, senders: dict[Channel, ChannelSender]) -> None:
        self._senders = dict(senders)

    @property
    def channels(self) -> list[Channel]:
        return list(self._senders)

    async def dispatch(
        self, channel: Channel, recipient: Recipient, payload: NotificationPayload
    ) -> bool:
        sender = self._senders.get(channel)
        if sender is None:
            logger.debug("Channel %s not configured, skipping user %d", channel.value, recipient.user_id)
            return False
        return await sender.send(recipient, payload)


def create_dispatcher(settings: Settings, bot: Bot | None = None) -> ChannelDispatcher:
    """Build a dispatcher with every channel the settings enable."""
    senders: dict[Channel, ChannelSender] = {}

    if settings.RESEND_API_KEY:
        from src.adapters.email_notifier import EmailNotifier

        senders[Channel.EMAIL] = EmailNotifier(settings.RESEND_API_KEY, settings.EMAIL_FROM)

    if settings.VAPID_PRIVATE_KEY:
        from src.adapters.push_notifier import PushNotifier

        senders[Channel.PUSH] = PushNotifier(settings.VAPID_PRIVATE_KEY, settings.VAPID_SUBJECT)

    if bot is None and settings.TELEGRAM_BOT_TOKEN:
        from telegram import Bot

        bot = Bot(settings.TELEGRAM_BOT_TOKEN)
    if bot is not None:
        from src.adapters.telegram_notifier import TelegramNotifier

        senders[Channel.TELEGRAM] = TelegramNotifier(bot)

    logger.info("Notification channels enabled: %s", ", ".join(c.value for c in senders) or "none")
    return ChannelDispatcher(senders)
