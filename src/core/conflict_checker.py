"""
Family Scheduler — Event Conflict Checker.

Detects when a new or rescheduled event overlaps another event booked for the
same person. Detection is read-only; flagging is a separate, explicit step so
callers choose their own transactional boundaries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.ports.store_port import EventStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverlapSummary:
    """An existing event that overlaps the proposed time range."""

    id: int
    title: str
    start_time: datetime
    end_time: datetime


def overlaps(
    start: datetime, end: datetime, other_start: datetime, other_end: datetime
) -> bool:
    """Half-open [start, end) overlap; back-to-back ranges do not overlap."""
    return other_start < end and other_end > start


class ConflictDetector:
    """Per-person overlap queries against an event store.

    Storage errors propagate: an undetected conflict is a correctness problem,
    so there is no empty-list fallback.
    """

    def __init__(self, events: EventStore) -> None:
        self._events = events

    def find_conflicts(
        self,
        family_id: int,
        person_id: int | None,
        start_time: datetime,
        end_time: datetime,
        exclude_event_id: int | None = None,
    ) -> list[OverlapSummary]:
        """Existing events for `person_id` overlapping [start_time, end_time).

        Args:
            family_id: Family the events belong to.
            person_id: Family member; None means no conflicts are possible.
            start_time: Proposed start.
            end_time: Proposed end.
            exclude_event_id: Event to skip (self-exclusion when updating).
        """
        if person_id is None:
            return []

        existing = self._events.find_overlapping(
            family_id, person_id, start_time, end_time,
            exclude_event_id=exclude_event_id,
        )
        conflicts = [
            OverlapSummary(id=ev.id, title=ev.title, start_time=ev.start_time, end_time=ev.end_time)
            for ev in existing
            if ev.id != exclude_event_id
            and overlaps(start_time, end_time, ev.start_time, ev.end_time)
        ]
        if conflicts:
            logger.info(
                "Person %d in family %d has %d conflict(s) between %s and %s",
                person_id, family_id, len(conflicts), start_time, end_time,
            )
        return conflicts

    def set_conflict_flag(self, event_id: int, has_conflict: bool) -> None:
        self._events.set_conflict_flag(event_id, has_conflict)

    def flag_conflicts(self, event_id: int, conflicts: list[OverlapSummary]) -> None:
        """Mark a newly inserted event and every event it overlaps."""
        if not conflicts:
            return
        self.set_conflict_flag(event_id, True)
        for conflict in conflicts:
            self.set_conflict_flag(conflict.id, True)
