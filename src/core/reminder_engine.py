"""
Family Scheduler — Reminder Engine.

Reminders: on every external trigger, scan events starting in the next 30
days, work out which reminder offsets are due, and notify each family user
over every channel they have, exactly once per (event, offset, user).

Daily Summary: once a day, send each user today's and tomorrow's family
events plus tests coming up within a week.

This module is provider-agnostic: it depends on the store and notification
ports, not on SQLite, Resend, Web Push or Telegram.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING, Callable

from src.core.reminder_rules import (
    DEFAULT_MORNING_HOUR,
    ReminderRuleResolver,
    compute_fire_time,
    is_due,
    offset_key,
)
from src.ports.notification_port import Channel, NotificationPayload, Recipient

if TYPE_CHECKING:
    from src.core.reminder_rules import ReminderOffset
    from src.data.models import CalendarEvent, User
    from src.ports.notification_port import NotificationPort
    from src.ports.store_port import EventStore, NotificationLog, RuleStore, UserDirectory

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30
UPCOMING_TESTS_DAYS = 7


@dataclass
class ReminderRunResult:
    """Outcome of one reminder pass."""

    sent: int = 0
    errors: int = 0


@dataclass
class SummaryResult:
    """Outcome of one daily summary run."""

    sent: int = 0
    errors: int = 0


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------


def _format_clock(value: datetime) -> str:
    """8:05 AM"""
    return f"{value:%I:%M %p}".lstrip("0")


def format_event_when(event: CalendarEvent) -> str:
    """Tuesday, Mar 10 at 8:00 AM (all-day events omit the time)."""
    day = f"{event.start_time:%A, %b} {event.start_time.day}"
    if event.all_day:
        return day
    return f"{day} at {_format_clock(event.start_time)}"


def build_reminder_payload(
    event: CalendarEvent, key: str, app_url: str
) -> NotificationPayload:
    body = format_event_when(event)
    if event.person_name:
        body += f" — {event.person_name}"
    return NotificationPayload(
        title=f"Reminder: {event.title}",
        body=body,
        url=f"{app_url.rstrip('/')}/dashboard",
        tag=f"reminder-{event.id}-{key}",
    )


def _summary_line(event: CalendarEvent, with_date: bool = False) -> str:
    if with_date:
        when = f"{event.start_time:%a, %b} {event.start_time.day}"
    elif event.all_day:
        when = "All day"
    else:
        when = _format_clock(event.start_time)
    person = f" ({event.person_name})" if event.person_name else ""
    return f"- {when} {event.title}{person}"


def build_summary_payload(
    user_name: str,
    today: list[CalendarEvent],
    tomorrow: list[CalendarEvent],
    upcoming_tests: list[CalendarEvent],
    now: datetime,
    app_url: str,
) -> NotificationPayload:
    lines = [f"Good morning, {user_name or 'there'}!", "", "Today"]
    lines += [_summary_line(ev) for ev in today] or ["Nothing scheduled"]
    lines += ["", "Tomorrow"]
    lines += [_summary_line(ev) for ev in tomorrow] or ["Nothing scheduled"]
    if upcoming_tests:
        lines += ["", f"Tests in the next {UPCOMING_TESTS_DAYS} days"]
        lines += [_summary_line(ev, with_date=True) for ev in upcoming_tests]
    return NotificationPayload(
        title=f"Daily Schedule — {now:%a, %b} {now.day}",
        body="\n".join(lines),
        url=f"{app_url.rstrip('/')}/dashboard",
        tag="daily-summary",
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ReminderEngine:
    """Scans upcoming events and fans out due reminders.

    Safe to run more often than needed, or concurrently with itself: the
    notification log's (event, offset key, user) uniqueness is the only
    dedup mechanism, and each triple is dispatched before it is logged so a
    crash in between is retried on the next pass.
    """

    def __init__(
        self,
        events: EventStore,
        rules: RuleStore,
        users: UserDirectory,
        log: NotificationLog,
        notifier: NotificationPort,
        app_url: str = "http://localhost:3000",
        window_days: int = DEFAULT_WINDOW_DAYS,
        morning_hour: int = DEFAULT_MORNING_HOUR,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._events = events
        self._users = users
        self._log = log
        self._notifier = notifier
        self._resolver = ReminderRuleResolver(rules)
        self._app_url = app_url
        self._window = timedelta(days=window_days)
        self._morning_hour = morning_hour
        self._clock = clock

    # -- reminders -----------------------------------------------------------

    async def process_reminders(self) -> ReminderRunResult:
        """Run one reminder pass."""
        now = self._clock()
        result = ReminderRunResult()

        try:
            events = self._events.list_events_starting_between(now, now + self._window)
            self._resolver.load()
        except Exception as exc:
            logger.error("Reminder pass aborted, failed to load events/rules: %s", exc)
            result.errors += 1
            return result

        for event in events:
            offsets = self._resolver.offsets_for(event.family_id, event.category)
            if not offsets:
                continue

            try:
                due_keys = self._due_keys(event, offsets, now)
            except Exception as exc:
                logger.error("Failed to evaluate offsets for event %d: %s", event.id, exc)
                result.errors += 1
                continue
            if not due_keys:
                continue

            try:
                users = self._users.list_family_users(event.family_id)
            except Exception as exc:
                logger.error("Failed to load users for family %d: %s", event.family_id, exc)
                result.errors += 1
                continue

            for key in due_keys:
                for user in users:
                    try:
                        if await self._process_triple(event, key, user):
                            result.sent += 1
                    except Exception as exc:
                        logger.error(
                            "Reminder failed for event %d / %s / user %d: %s",
                            event.id, key, user.id, exc,
                        )
                        result.errors += 1

        logger.info("Reminder pass done: %d sent, %d errors", result.sent, result.errors)
        return result

    def _due_keys(
        self, event: CalendarEvent, offsets: list[ReminderOffset], now: datetime
    ) -> list[str]:
        """Offset keys due for `event` at `now`, in rule order, without repeats."""
        due_keys: list[str] = []
        for offset in offsets:
            fire_time = compute_fire_time(event.start_time, offset, self._morning_hour)
            key = offset_key(offset)
            if is_due(fire_time, event.start_time, now) and key not in due_keys:
                due_keys.append(key)
        return due_keys

    async def _process_triple(self, event: CalendarEvent, key: str, user: User) -> bool:
        """Dispatch then log one triple. Returns True if this run recorded it."""
        if self._log.has_entry(event.id, key, user.id):
            logger.debug("Already sent: event %d / %s / user %d", event.id, key, user.id)
            return False

        payload = build_reminder_payload(event, key, self._app_url)
        delivered = await self._dispatch_all(user, payload)

        if not self._log.record(event.id, key, user.id, channel=Channel.EMAIL.value):
            logger.info(
                "Event %d / %s / user %d was handled by a concurrent run",
                event.id, key, user.id,
            )
            return False

        logger.info(
            "Reminder sent: '%s' (%s) to user %d over %d channel(s)",
            event.title, key, user.id, delivered,
        )
        return True

    async def _dispatch_all(self, user: User, payload: NotificationPayload) -> int:
        """Send over every channel the user has. Returns the number that succeeded."""
        delivered = 0

        if user.email:
            ok = await self._notifier.dispatch(
                Channel.EMAIL, Recipient(user_id=user.id, email=user.email), payload,
            )
            if ok:
                delivered += 1
            else:
                logger.warning("Email reminder to user %d failed", user.id)

        for sub in self._users.list_push_subscriptions(user.id):
            if await self._notifier.dispatch(
                Channel.PUSH, Recipient(user_id=user.id, subscription=sub), payload,
            ):
                delivered += 1

        link = self._users.get_chat_link(user.id)
        if link is not None:
            if await self._notifier.dispatch(
                Channel.TELEGRAM, Recipient(user_id=user.id, chat_id=link.chat_id), payload,
            ):
                delivered += 1

        return delivered

    # -- daily summary -------------------------------------------------------

    async def send_daily_summary(self) -> SummaryResult:
        """Send one summary per user who belongs to a family.

        No dedup: the external scheduler calls this at most once a day.
        """
        now = self._clock()
        today_start = datetime.combine(now.date(), time.min)
        today_end = datetime.combine(now.date(), time.max)
        tomorrow_start = today_start + timedelta(days=1)
        tomorrow_end = today_end + timedelta(days=1)
        tests_end = today_start + timedelta(days=UPCOMING_TESTS_DAYS)
        result = SummaryResult()

        try:
            users = self._users.list_users_with_family()
        except Exception as exc:
            logger.error("Daily summary aborted, failed to load users: %s", exc)
            result.errors += 1
            return result

        for user in users:
            try:
                today = self._events.list_events_starting_between(
                    today_start, today_end, family_id=user.family_id,
                )
                tomorrow = self._events.list_events_starting_between(
                    tomorrow_start, tomorrow_end, family_id=user.family_id,
                )
                tests = self._events.list_events_starting_between(
                    today_start, tests_end, family_id=user.family_id, category="test",
                )
                payload = build_summary_payload(
                    user.name, today, tomorrow, tests, now, self._app_url,
                )
                ok = await self._notifier.dispatch(
                    Channel.EMAIL, Recipient(user_id=user.id, email=user.email), payload,
                )
            except Exception as exc:
                logger.error("Failed to send daily summary to user %d: %s", user.id, exc)
                result.errors += 1
                continue

            if ok:
                result.sent += 1
                logger.info("Daily summary sent to user %d", user.id)
            else:
                result.errors += 1

        return result
