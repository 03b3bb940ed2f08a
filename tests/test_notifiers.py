"""Tests for the notification adapters and the channel dispatcher."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import requests
from pywebpush import WebPushException
from telegram.error import TelegramError

from src.adapters.dispatcher import ChannelDispatcher, create_dispatcher
from src.adapters.email_notifier import EmailNotifier, render_email_html
from src.adapters.push_notifier import PushNotifier
from src.adapters.telegram_notifier import TelegramNotifier, format_chat_message
from src.config import Settings
from src.data.models import PushSubscription
from src.ports.notification_port import Channel, NotificationPayload, Recipient

PAYLOAD = NotificationPayload(
    title="Reminder: Math test",
    body="Tuesday, Mar 10 at 8:00 AM — Noam",
    url="https://family.example/dashboard",
    tag="reminder-1-7d",
)


def _mock_client(post):
    client = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.post = post
    return client


# ---------------------------------------------------------------------------
# Email (Resend)
# ---------------------------------------------------------------------------


class TestEmailNotifier:
    @pytest.mark.asyncio
    async def test_successful_send(self):
        mock_resp = MagicMock()
        mock_resp.json.return_value = {"id": "email-123"}
        mock_resp.raise_for_status = MagicMock()
        client = _mock_client(AsyncMock(return_value=mock_resp))

        with patch("src.adapters.email_notifier.httpx.AsyncClient", return_value=client):
            ok = await EmailNotifier("re_key", "Family <noreply@family.example>").send(
                Recipient(user_id=1, email="dana@example.com"), PAYLOAD,
            )

        assert ok is True
        body = client.post.call_args.kwargs["json"]
        assert body["to"] == "dana@example.com"
        assert body["subject"] == "Reminder: Math test"
        assert client.post.call_args.kwargs["headers"]["Authorization"] == "Bearer re_key"

    @pytest.mark.asyncio
    async def test_http_error_returns_false(self):
        client = _mock_client(AsyncMock(side_effect=Exception("Connection timeout")))
        with patch("src.adapters.email_notifier.httpx.AsyncClient", return_value=client):
            ok = await EmailNotifier("re_key", "x@y").send(
                Recipient(user_id=1, email="dana@example.com"), PAYLOAD,
            )
        assert ok is False

    @pytest.mark.asyncio
    async def test_no_email_no_call(self):
        with patch("src.adapters.email_notifier.httpx.AsyncClient") as client_cls:
            ok = await EmailNotifier("re_key", "x@y").send(Recipient(user_id=1), PAYLOAD)
        assert ok is False
        client_cls.assert_not_called()

    def test_html_is_escaped(self):
        payload = NotificationPayload(title="<b>Exam</b>", body="Line 1\n\nLine & 2")
        rendered = render_email_html(payload)
        assert "&lt;b&gt;Exam&lt;/b&gt;" in rendered
        assert "Line &amp; 2" in rendered
        assert "<br />" in rendered
        assert "Open Family Scheduler" not in rendered


# ---------------------------------------------------------------------------
# Web Push
# ---------------------------------------------------------------------------


class TestPushNotifier:
    SUB = PushSubscription(user_id=1, endpoint="https://push.example/abc", p256dh="key", auth="secret")

    @pytest.mark.asyncio
    async def test_successful_send(self):
        with patch("src.adapters.push_notifier.webpush") as mock_webpush:
            ok = await PushNotifier("vapid-private", "mailto:admin@family.example").send(
                Recipient(user_id=1, subscription=self.SUB), PAYLOAD,
            )
        assert ok is True
        kwargs = mock_webpush.call_args.kwargs
        assert kwargs["subscription_info"]["endpoint"] == "https://push.example/abc"
        assert kwargs["vapid_claims"] == {"sub": "mailto:admin@family.example"}
        assert '"tag": "reminder-1-7d"' in kwargs["data"]

    @pytest.mark.asyncio
    async def test_expired_subscription_returns_false(self):
        response = MagicMock(status_code=410)
        with patch("src.adapters.push_notifier.webpush",
                   side_effect=WebPushException("Gone", response=response)):
            ok = await PushNotifier("vapid-private", "mailto:a@b").send(
                Recipient(user_id=1, subscription=self.SUB), PAYLOAD,
            )
        assert ok is False

    @pytest.mark.asyncio
    async def test_connection_error_returns_false(self):
        with patch("src.adapters.push_notifier.webpush",
                   side_effect=requests.exceptions.ConnectionError("connection refused")):
            ok = await PushNotifier("vapid-private", "mailto:a@b").send(
                Recipient(user_id=1, subscription=self.SUB), PAYLOAD,
            )
        assert ok is False

    @pytest.mark.asyncio
    async def test_no_subscription(self):
        with patch("src.adapters.push_notifier.webpush") as mock_webpush:
            ok = await PushNotifier("vapid-private", "mailto:a@b").send(Recipient(user_id=1), PAYLOAD)
        assert ok is False
        mock_webpush.assert_not_called()


# ---------------------------------------------------------------------------
# Telegram
# ---------------------------------------------------------------------------


class TestTelegramNotifier:
    def test_format(self):
        assert format_chat_message(PAYLOAD) == (
            "🔔 Reminder: Math test\nTuesday, Mar 10 at 8:00 AM — Noam"
        )

    @pytest.mark.asyncio
    async def test_send(self):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        ok = await TelegramNotifier(bot).send(Recipient(user_id=1, chat_id="555"), PAYLOAD)
        assert ok is True
        bot.send_message.assert_awaited_once()
        assert bot.send_message.call_args.kwargs["chat_id"] == "555"

    @pytest.mark.asyncio
    async def test_telegram_error_returns_false(self):
        bot = MagicMock()
        bot.send_message = AsyncMock(side_effect=TelegramError("Forbidden: bot was blocked"))
        ok = await TelegramNotifier(bot).send(Recipient(user_id=1, chat_id="555"), PAYLOAD)
        assert ok is False

    @pytest.mark.asyncio
    async def test_no_chat(self):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        assert await TelegramNotifier(bot).send(Recipient(user_id=1), PAYLOAD) is False
        bot.send_message.assert_not_awaited()


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class TestChannelDispatcher:
    @pytest.mark.asyncio
    async def test_routes_to_sender(self):
        email = MagicMock()
        email.send = AsyncMock(return_value=True)
        dispatcher = ChannelDispatcher({Channel.EMAIL: email})
        recipient = Recipient(user_id=1, email="a@b")

        assert await dispatcher.dispatch(Channel.EMAIL, recipient, PAYLOAD) is True
        email.send.assert_awaited_once_with(recipient, PAYLOAD)

    @pytest.mark.asyncio
    async def test_unconfigured_channel(self):
        dispatcher = ChannelDispatcher({})
        assert await dispatcher.dispatch(Channel.PUSH, Recipient(user_id=1), PAYLOAD) is False

    def test_create_dispatcher_from_settings(self):
        settings = Settings(CRON_SECRET="s", RESEND_API_KEY="re_key", VAPID_PRIVATE_KEY="vapid")
        dispatcher = create_dispatcher(settings)
        assert dispatcher.channels == [Channel.EMAIL, Channel.PUSH]

    def test_create_dispatcher_with_bot(self):
        dispatcher = create_dispatcher(Settings(CRON_SECRET="s"), bot=MagicMock())
        assert dispatcher.channels == [Channel.TELEGRAM]
