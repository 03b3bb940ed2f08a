"""
Family Scheduler — Data Models.

Families, their members and users, calendar events, reminder rules and the
notification log. Everything here is plain data; persistence lives in
src.data.db.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from src.core.reminder_rules import ReminderOffset


class Category(str, Enum):
    TEST = "test"
    CLASS = "class"
    PERSONAL = "personal"
    OTHER = "other"


class EventSource(str, Enum):
    """Where an event was captured."""

    MANUAL = "manual"
    TELEGRAM = "telegram"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class Family:
    id: int
    name: str
    created_at: str = ""


@dataclass
class User:
    """An adult account that receives reminders for its family."""

    id: int
    email: str
    name: str
    family_id: int | None = None
    created_at: str = ""


@dataclass
class FamilyMember:
    """A person events can be booked for (kids have no user account)."""

    id: int
    family_id: int
    display_name: str
    role: str = "kid"                 # "adult" | "kid"
    user_id: int | None = None


@dataclass
class CalendarEvent:
    """A durable event owned by the event store.

    `conflict_flag` is maintained by whoever inserts or updates events, via
    the conflict detector; it is never recomputed on read.
    """

    id: int
    family_id: int
    title: str
    start_time: datetime
    end_time: datetime
    person_id: int | None = None
    all_day: bool = False
    rrule: str | None = None
    category: Category = Category.OTHER
    priority: Priority = Priority.MEDIUM
    conflict_flag: bool = False
    created_from: EventSource = EventSource.MANUAL
    source_message_id: str | None = None
    notes: str | None = None
    person_name: str | None = None    # joined from family_members on read


@dataclass
class ReminderRule:
    """Ordered offsets for one (family, category) pair."""

    family_id: int
    category: Category
    offsets: list[ReminderOffset] = field(default_factory=list)
    id: int | None = None


@dataclass
class NotificationLogEntry:
    """One processed (event, offset, user) triple. Written once, never updated."""

    event_id: int
    offset_key: str                   # e.g. "7d", "15m", "morning-of"
    user_id: int
    channel: str = "email"
    sent_at: str = ""
    id: int | None = None


@dataclass
class PushSubscription:
    user_id: int
    endpoint: str
    p256dh: str
    auth: str
    user_agent: str | None = None
    id: int | None = None


@dataclass
class ChatLink:
    """A Telegram chat linked to a user account."""

    user_id: int
    chat_id: str
    username: str | None = None
