"""Store ports — abstract read/write interfaces used by core modules.

Core modules depend on these protocols, never on a specific database.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.data.models import (
    CalendarEvent,
    ChatLink,
    FamilyMember,
    PushSubscription,
    ReminderRule,
    User,
)


class StoreError(Exception):
    """Raised when any storage operation fails."""


class EventStore(Protocol):
    """Calendar events owned by the application."""

    def add_event(self, event: CalendarEvent) -> CalendarEvent: ...

    def get_event(self, event_id: int) -> CalendarEvent | None: ...

    def find_overlapping(
        self,
        family_id: int,
        person_id: int,
        start: datetime,
        end: datetime,
        exclude_event_id: int | None = None,
    ) -> list[CalendarEvent]: ...

    def set_conflict_flag(self, event_id: int, has_conflict: bool) -> None: ...

    def list_events_starting_between(
        self,
        start: datetime,
        end: datetime,
        family_id: int | None = None,
        category: str | None = None,
    ) -> list[CalendarEvent]: ...

    def find_by_source_message(
        self, source: str, source_message_id: str
    ) -> CalendarEvent | None: ...


class RuleStore(Protocol):
    """Reminder rules, one per (family, category)."""

    def list_rules(self, family_id: int | None = None) -> list[ReminderRule]: ...


class UserDirectory(Protocol):
    """Users, family members and their notification endpoints."""

    def list_family_users(self, family_id: int) -> list[User]: ...

    def list_users_with_family(self) -> list[User]: ...

    def list_members(self, family_id: int) -> list[FamilyMember]: ...

    def list_push_subscriptions(self, user_id: int) -> list[PushSubscription]: ...

    def get_chat_link(self, user_id: int) -> ChatLink | None: ...


class NotificationLog(Protocol):
    """Record of processed (event, offset, user) triples."""

    def has_entry(self, event_id: int, offset_key: str, user_id: int) -> bool: ...

    def record(
        self, event_id: int, offset_key: str, user_id: int, channel: str = "email"
    ) -> bool:
        """Insert the triple. Returns False if it was already recorded."""
        ...
