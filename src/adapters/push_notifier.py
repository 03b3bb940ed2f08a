"""Web Push notification adapter — VAPID via pywebpush.

One call per subscription. pywebpush is synchronous, so the request runs in
a worker thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict

from pywebpush import WebPushException, webpush

from src.ports.notification_port import NotificationPayload, Recipient

logger = logging.getLogger(__name__)


class PushNotifier:
    """Web Push implementation of a channel sender."""

    def __init__(self, private_key: str, subject: str) -> None:
        self._private_key = private_key
        self._claims = {"sub": subject}

    async def send(self, recipient: Recipient, payload: NotificationPayload) -> bool:
        sub = recipient.subscription
        if sub is None or not self._private_key:
            return False

        subscription_info = {
            "endpoint": sub.endpoint,
            "keys": {"p256dh": sub.p256dh, "auth": sub.auth},
        }
        data = json.dumps({k: v for k, v in asdict(payload).items() if v is not None})
        try:
            await asyncio.to_thread(
                webpush,
                subscription_info=subscription_info,
                data=data,
                vapid_private_key=self._private_key,
                vapid_claims=dict(self._claims),
            )
        except WebPushException as exc:
            status = getattr(exc.response, "status_code", None)
            if status == 410:
                logger.info("Push subscription expired: %s", sub.endpoint)
            else:
                logger.warning("Push to %s failed: %s", sub.endpoint, exc)
            return False
        except Exception as exc:
            # connection errors and timeouts from the underlying HTTP call
            logger.warning("Push to %s failed: %s", sub.endpoint, exc)
            return False
        return True
