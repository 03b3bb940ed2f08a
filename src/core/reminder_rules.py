"""
Family Scheduler — Reminder offsets and rule resolution.

An offset is either a lead time ("7 days before") or the "morning-of" anchor
(07:00 on the event's calendar day). The two cases are separate types so a
numeric offset can never carry a label.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.ports.store_port import RuleStore

logger = logging.getLogger(__name__)

MORNING_OF = "morning-of"
DEFAULT_MORNING_HOUR = 7
UNITS = ("minutes", "hours", "days")

# Longest lead time a rule may carry.
MAX_OFFSET = timedelta(days=366)


@dataclass(frozen=True)
class DurationOffset:
    """Fire `value` units before the event starts."""

    value: float
    unit: str = "days"

    def __post_init__(self) -> None:
        if self.unit not in UNITS:
            raise ValueError(f"Unknown offset unit: {self.unit!r}")
        if not math.isfinite(self.value):
            raise ValueError(f"Offset value must be finite: {self.value}")
        if self.value < 0:
            raise ValueError(f"Offset value must not be negative: {self.value}")
        try:
            span = timedelta(**{self.unit: self.value})
        except OverflowError:
            span = None
        if span is None or span > MAX_OFFSET:
            raise ValueError(f"Offset longer than {MAX_OFFSET.days} days: {self.value} {self.unit}")


@dataclass(frozen=True)
class MorningOf:
    """Fire at a fixed hour on the event's calendar day."""


ReminderOffset = DurationOffset | MorningOf


# ---------------------------------------------------------------------------
# Offset semantics
# ---------------------------------------------------------------------------


def offset_key(offset: ReminderOffset) -> str:
    """Canonical dedup key: "7d", "15m", "2h", "morning-of"."""
    if isinstance(offset, MorningOf):
        return MORNING_OF
    value = float(offset.value)
    amount = str(int(value)) if value.is_integer() else repr(value)
    return f"{amount}{offset.unit[0]}"


def compute_fire_time(
    event_start: datetime,
    offset: ReminderOffset,
    morning_hour: int = DEFAULT_MORNING_HOUR,
) -> datetime:
    """When a reminder for `event_start` should fire."""
    if isinstance(offset, MorningOf):
        return datetime.combine(event_start.date(), time(morning_hour, 0))
    return event_start - timedelta(**{offset.unit: offset.value})


def is_due(fire_time: datetime, event_start: datetime, now: datetime) -> bool:
    """Due once the fire time is reached, and only while the event is still ahead."""
    return fire_time <= now and event_start > now


# ---------------------------------------------------------------------------
# Storage shape: {"value": 7, "unit": "days"} / {"value": 0, "unit": "days", "label": "morning-of"}
# ---------------------------------------------------------------------------


def offset_from_dict(record: dict[str, Any]) -> ReminderOffset:
    """Build an offset from its stored record. Raises ValueError if malformed."""
    if record.get("label") == MORNING_OF:
        return MorningOf()
    try:
        value = record["value"]
        unit = record.get("unit", "days")
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed reminder offset: {record!r}") from exc
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Offset value must be a number: {value!r}")
    return DurationOffset(value=value, unit=unit)


def offset_to_dict(offset: ReminderOffset) -> dict[str, Any]:
    if isinstance(offset, MorningOf):
        return {"value": 0, "unit": "days", "label": MORNING_OF}
    return {"value": offset.value, "unit": offset.unit}


def parse_offsets(records: list[dict[str, Any]]) -> list[ReminderOffset]:
    """Parse stored records, skipping (and logging) malformed ones."""
    offsets: list[ReminderOffset] = []
    for record in records or []:
        try:
            offsets.append(offset_from_dict(record))
        except ValueError as exc:
            logger.warning("Skipping reminder offset: %s", exc)
    return offsets


# Applied to a newly created family.
DEFAULT_REMINDER_RULES: dict[str, list[ReminderOffset]] = {
    "test": [DurationOffset(7, "days"), DurationOffset(1, "days"), MorningOf()],
    "class": [DurationOffset(1, "hours")],
    "personal": [DurationOffset(1, "days"), DurationOffset(1, "hours")],
    "other": [DurationOffset(1, "days")],
}


# ---------------------------------------------------------------------------
# Rule resolver
# ---------------------------------------------------------------------------


def _category_key(category: Enum | str) -> str:
    return category.value if isinstance(category, Enum) else category


class ReminderRuleResolver:
    """Maps (family, category) to its ordered offsets.

    `load()` reads every rule once per scan; lookups after that are in memory.
    """

    def __init__(self, rules: RuleStore) -> None:
        self._rules = rules
        self._index: dict[tuple[int, str], list[ReminderOffset]] = {}

    def load(self) -> int:
        """(Re)build the index from the rule store. Returns the number of rules."""
        index: dict[tuple[int, str], list[ReminderOffset]] = {}
        rules = self._rules.list_rules()
        for rule in rules:
            index[(rule.family_id, _category_key(rule.category))] = list(rule.offsets)
        self._index = index
        logger.debug("Loaded %d reminder rules", len(index))
        return len(index)

    def offsets_for(self, family_id: int, category: str) -> list[ReminderOffset]:
        """Offsets for the pair, or [] when the family has no rule for it."""
        return self._index.get((family_id, _category_key(category)), [])
