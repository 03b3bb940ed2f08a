"""
Family Scheduler — Capture Service.

Turns a captured message into a stored event: parse the text, resolve the
person against the family's members, check that person's calendar for
overlaps, store the event and flag every event involved in a conflict.

Conflicts never block saving; they are reported back so the caller can warn.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from src.core.parser import MAX_MESSAGE_LENGTH, ParsedEvent, parse_message
from src.core.reminder_engine import format_event_when
from src.data.models import CalendarEvent, EventSource

if TYPE_CHECKING:
    from src.core.conflict_checker import ConflictDetector, OverlapSummary
    from src.data.models import FamilyMember
    from src.ports.store_port import EventStore, UserDirectory

logger = logging.getLogger(__name__)


@dataclass
class CaptureResult:
    """A stored event plus the events it overlaps."""

    event: CalendarEvent
    parsed: ParsedEvent | None = None
    conflicts: list[OverlapSummary] = field(default_factory=list)
    duplicate: bool = False


def resolve_person(name: str | None, members: list[FamilyMember]) -> int | None:
    """Case-insensitive exact match of a parsed name to a member id."""
    if not name:
        return None
    wanted = name.lower()
    for member in members:
        if member.display_name.lower() == wanted:
            return member.id
    return None


class CaptureService:
    """Coordinates parser, conflict detector and event store."""

    def __init__(
        self,
        events: EventStore,
        users: UserDirectory,
        detector: ConflictDetector,
        max_message_length: int = MAX_MESSAGE_LENGTH,
    ) -> None:
        self._events = events
        self._users = users
        self._detector = detector
        self._max_length = max_message_length

    def capture(
        self,
        family_id: int,
        text: str,
        source: EventSource = EventSource.MANUAL,
        source_message_id: str | None = None,
        now: datetime | None = None,
    ) -> CaptureResult | None:
        """Parse and store one message.

        Returns None when the text is empty. A message already captured from
        the same source returns the existing event with `duplicate=True`.
        """
        if source_message_id:
            existing = self._events.find_by_source_message(source, source_message_id)
            if existing is not None:
                logger.info("Message %s/%s already captured as event #%d",
                            source, source_message_id, existing.id)
                return CaptureResult(event=existing, duplicate=True)

        members = self._users.list_members(family_id)
        parsed = parse_message(
            text, [m.display_name for m in members], now=now, max_length=self._max_length,
        )
        if parsed is None:
            return None

        person_id = resolve_person(parsed.person, members)
        conflicts = self._detector.find_conflicts(family_id, person_id, parsed.start, parsed.end)

        event = self._events.add_event(CalendarEvent(
            id=0,
            family_id=family_id,
            title=parsed.title,
            start_time=parsed.start,
            end_time=parsed.end,
            person_id=person_id,
            all_day=parsed.all_day,
            rrule=parsed.rrule,
            category=parsed.category,
            conflict_flag=bool(conflicts),
            created_from=source,
            source_message_id=source_message_id,
        ))
        self._detector.flag_conflicts(event.id, conflicts)

        logger.info("Captured event #%d '%s' (%d conflicts)", event.id, event.title, len(conflicts))
        return CaptureResult(event=event, parsed=parsed, conflicts=conflicts)


def format_capture_reply(result: CaptureResult) -> str:
    """Chat reply confirming a captured event."""
    event = result.event
    lines = [f"Added: {event.title}", format_event_when(event)]
    if event.person_name:
        lines.append(f"For: {event.person_name}")
    if event.rrule:
        lines.append("(Recurring)")
    if result.conflicts:
        titles = ", ".join(c.title for c in result.conflicts)
        lines.append(f"Heads up, this overlaps with: {titles}")
    return "\n".join(lines)
