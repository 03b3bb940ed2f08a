"""
Family Scheduler — Event Parser.

Brain of the Capture System: converts a free-form message ("Math test for
Noam on Mar 10 8:00") into a structured event candidate.

The parser is a permissive heuristic: every non-empty message yields a
best-effort event. Each detection step removes the text it recognised from a
working buffer, and whatever is left becomes the title.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta

from pydantic import BaseModel, model_validator

from src.core.vocabulary import (
    RRULE_DAY_CODES,
    WEEKDAY_NAMES,
    category_for,
    month_index,
    weekday_index,
)
from src.data.models import Category

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Event"
MAX_MESSAGE_LENGTH = 4096
TIMED_EVENT_DURATION = timedelta(hours=1)


# ---------------------------------------------------------------------------
# Shared contract: consumed by the capture service and the Telegram bot
# ---------------------------------------------------------------------------


class ParsedEvent(BaseModel):
    """Structured event candidate extracted from a message.

    Example:
    {
        "title": "Math test",
        "person": "Noam",
        "category": "test",
        "start": "2026-03-10T08:00:00",
        "end": "2026-03-10T09:00:00",
        "all_day": false,
        "rrule": null
    }
    """
    title: str
    person: str | None = None
    category: Category = Category.OTHER
    start: datetime
    end: datetime
    all_day: bool
    rrule: str | None = None  # "RRULE:FREQ=DAILY" | "RRULE:FREQ=WEEKLY;BYDAY=TU"

    @model_validator(mode="after")
    def _end_after_start(self) -> ParsedEvent:
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_WEEKDAY_ALT = (
    r"sun(?:day)?|mon(?:day)?|tue(?:sday)?|wed(?:nesday)?"
    r"|thu(?:rsday)?|fri(?:day)?|sat(?:urday)?"
)
_EVERY_RE = re.compile(rf"\bevery\s+({_WEEKDAY_ALT}|day)\b", re.IGNORECASE)
_TIME_RE = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
_TOMORROW_RE = re.compile(r"tomorrow", re.IGNORECASE)
_TODAY_RE = re.compile(r"today", re.IGNORECASE)
_MONTH_DATE_RE = re.compile(
    r"\b(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
    r"|aug(?:ust)?|sep(?:tember)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
    r"\s+(\d{1,2})(?:\s+(\d{4}))?\b",
    re.IGNORECASE,
)
_NUMERIC_DATE_RE = re.compile(r"\b(\d{1,2})[/\-.](\d{1,2})(?:[/\-.](\d{2,4}))?\b")
_FILLER_RE = re.compile(r"\b(?:on|at)\b", re.IGNORECASE)
_SPACES_RE = re.compile(r"\s{2,}")


def _weekday_pattern(name: str) -> re.Pattern[str]:
    return re.compile(rf"\bon\s+{name}\b|\b{name}\b", re.IGNORECASE)


# Compiled once, in the same order as WEEKDAY_NAMES.
_WEEKDAY_PATTERNS: tuple[tuple[re.Pattern[str], int], ...] = tuple(
    (_weekday_pattern(name), idx) for name, idx in WEEKDAY_NAMES
)


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------


def next_weekday(today: date, weekday: int) -> date:
    """Next date with the given weekday, strictly after `today`."""
    days_ahead = (weekday - today.weekday()) % 7
    return today + timedelta(days=days_ahead or 7)


def _roll_forward(candidate: date, today: date, explicit_year: bool) -> date:
    """Bump a year-less date that already passed into next year."""
    if explicit_year or candidate >= today:
        return candidate
    try:
        return candidate.replace(year=candidate.year + 1)
    except ValueError:
        # Feb 29 with no leap day next year
        return candidate.replace(year=candidate.year + 1, day=28)


def _strip(buffer: str, match: re.Match[str]) -> str:
    return buffer[:match.start()] + buffer[match.end():]


def _match_month_date(buffer: str, today: date) -> tuple[date, re.Match[str]] | None:
    m = _MONTH_DATE_RE.search(buffer)
    if not m:
        return None
    month = month_index(m.group(1))
    year = int(m.group(3)) if m.group(3) else today.year
    try:
        candidate = date(year, month, int(m.group(2)))
    except (TypeError, ValueError):
        logger.debug("Ignoring invalid month date '%s'", m.group(0))
        return None
    return _roll_forward(candidate, today, explicit_year=bool(m.group(3))), m


def _match_numeric_date(buffer: str, today: date) -> tuple[date, re.Match[str]] | None:
    m = _NUMERIC_DATE_RE.search(buffer)
    if not m:
        return None
    year = today.year
    if m.group(3):
        year = int(m.group(3))
        if year < 100:
            year += 2000
    try:
        candidate = date(year, int(m.group(2)), int(m.group(1)))
    except ValueError:
        logger.debug("Ignoring invalid numeric date '%s'", m.group(0))
        return None
    return _roll_forward(candidate, today, explicit_year=bool(m.group(3))), m


# ---------------------------------------------------------------------------
# Parser function
# ---------------------------------------------------------------------------


def parse_message(
    text: str,
    known_persons: list[str] | tuple[str, ...] = (),
    now: datetime | None = None,
    max_length: int = MAX_MESSAGE_LENGTH,
) -> ParsedEvent | None:
    """Parse a free-text message into a ParsedEvent.

    Examples:
        "Math test for Noam on Mar 10 8:00"
        "Soccer practice every Tue 16:00"
        "Gym tomorrow 19:00"
        "Dentist appointment Jan 15"

    Args:
        text: Raw message text.
        known_persons: Family member names; list order is match priority.
        now: Reference time (defaults to the local clock).
        max_length: Characters of `text` considered.

    Returns:
        ParsedEvent, or None when the message is empty after trimming.
    """
    text = (text or "")[:max_length]
    lower = text.lower().strip()
    if not lower:
        return None

    now = now or datetime.now()
    today = now.date()
    buffer = text

    # 1. Person: first known name contained in the text
    person: str | None = None
    for name in known_persons:
        if name and name.lower() in lower:
            person = name
            break
    if person:
        buffer = re.sub(rf"\bfor\s+{re.escape(person)}\b", "", buffer, count=1, flags=re.IGNORECASE)

    # 2. Category: first keyword in table order
    category = category_for(lower)

    # 3. Recurrence: "every <weekday>" or "every day"
    rrule: str | None = None
    recurring_weekday: int | None = None
    every = _EVERY_RE.search(buffer)
    if every:
        day_word = every.group(1).lower()
        if day_word == "day":
            rrule = "RRULE:FREQ=DAILY"
        else:
            recurring_weekday = weekday_index(day_word)
            rrule = f"RRULE:FREQ=WEEKLY;BYDAY={RRULE_DAY_CODES[recurring_weekday]}"
        buffer = _strip(buffer, every)

    # 4. Time of day: first H:MM / HH:MM
    at: time | None = None
    time_match = _TIME_RE.search(buffer)
    if time_match:
        at = time(int(time_match.group(1)), int(time_match.group(2)))
        buffer = _strip(buffer, time_match)

    # 5. Date: first successful rule wins
    start_date = today
    date_found = False

    if m := _TOMORROW_RE.search(buffer):
        start_date = today + timedelta(days=1)
        buffer = _strip(buffer, m)
        date_found = True
    elif m := _TODAY_RE.search(buffer):
        buffer = _strip(buffer, m)
        date_found = True
    elif not every:
        for pattern, weekday in _WEEKDAY_PATTERNS:
            if m := pattern.search(buffer):
                start_date = next_weekday(today, weekday)
                buffer = _strip(buffer, m)
                date_found = True
                break
    elif recurring_weekday is not None:
        start_date = next_weekday(today, recurring_weekday)
        date_found = True

    if not date_found:
        found = _match_month_date(buffer, today)
        if found is None:
            found = _match_numeric_date(buffer, today)
        if found is not None:
            start_date, m = found
            buffer = _strip(buffer, m)

    # 6-7. Apply time and compute end
    all_day = at is None
    start = datetime.combine(start_date, at or time(0, 0))
    end = start + (timedelta(days=1) if all_day else TIMED_EVENT_DURATION)

    # 8. Title cleanup
    title = _FILLER_RE.sub("", buffer)
    title = _SPACES_RE.sub(" ", title).strip()
    title = title[0].upper() + title[1:] if title else DEFAULT_TITLE

    parsed = ParsedEvent(
        title=title,
        person=person,
        category=category,
        start=start,
        end=end,
        all_day=all_day,
        rrule=rrule,
    )
    logger.debug("Parsed '%s' -> %s", text, parsed)
    return parsed
