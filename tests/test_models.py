"""Tests for src.data.models — event and family dataclasses."""

from datetime import datetime

from src.data.models import (
    CalendarEvent,
    Category,
    EventSource,
    FamilyMember,
    NotificationLogEntry,
    Priority,
    ReminderRule,
)


def test_event_defaults():
    event = CalendarEvent(
        id=1, family_id=1, title="Gym",
        start_time=datetime(2026, 2, 5), end_time=datetime(2026, 2, 6),
    )
    assert event.person_id is None
    assert event.all_day is False
    assert event.category == Category.OTHER
    assert event.priority == Priority.MEDIUM
    assert event.conflict_flag is False
    assert event.created_from == EventSource.MANUAL


def test_category_values_match_stored_strings():
    assert Category("test") is Category.TEST
    assert Category.CLASS == "class"


def test_member_defaults_to_kid():
    member = FamilyMember(id=1, family_id=1, display_name="Noam")
    assert member.role == "kid"
    assert member.user_id is None


def test_rule_offsets_not_shared():
    a = ReminderRule(family_id=1, category=Category.TEST)
    b = ReminderRule(family_id=2, category=Category.TEST)
    a.offsets.append("x")
    assert b.offsets == []


def test_log_entry_channel_default():
    entry = NotificationLogEntry(event_id=1, offset_key="7d", user_id=2)
    assert entry.channel == "email"
