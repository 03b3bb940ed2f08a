"""Notification port — abstract interface for delivering messages to users.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.data.models import PushSubscription


class Channel(str, Enum):
    EMAIL = "email"
    PUSH = "push"
    TELEGRAM = "telegram"


@dataclass(frozen=True)
class NotificationPayload:
    """Channel-agnostic message content."""

    title: str
    body: str
    url: str | None = None
    tag: str | None = None  # push grouping / replacement


@dataclass(frozen=True)
class Recipient:
    """Where one dispatch goes. Only the field for the target channel is used."""

    user_id: int
    email: str | None = None
    chat_id: str | None = None
    subscription: PushSubscription | None = None


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def dispatch(
        self, channel: Channel, recipient: Recipient, payload: NotificationPayload
    ) -> bool: ...
