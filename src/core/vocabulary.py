"""
Family Scheduler — Time and category vocabulary.

Static lookup tables shared by the parser. Order matters: tables are scanned
front to back and the first hit wins, so a message mentioning both "exam" and
"practice" is a test.
"""

from __future__ import annotations

# (keyword, category): scanned in this order, substring match.
CATEGORY_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("test", "test"),
    ("exam", "test"),
    ("quiz", "test"),
    ("midterm", "test"),
    ("final", "test"),
    ("class", "class"),
    ("lesson", "class"),
    ("course", "class"),
    ("practice", "class"),
    ("training", "class"),
    ("soccer", "class"),
    ("basketball", "class"),
    ("swimming", "class"),
    ("piano", "class"),
    ("gym", "personal"),
    ("doctor", "personal"),
    ("dentist", "personal"),
    ("meeting", "personal"),
    ("appointment", "personal"),
)

DEFAULT_CATEGORY = "other"

# (name, python weekday): Monday is 0. Week starts on Sunday for scanning.
WEEKDAY_NAMES: tuple[tuple[str, int], ...] = (
    ("sun", 6), ("sunday", 6),
    ("mon", 0), ("monday", 0),
    ("tue", 1), ("tuesday", 1),
    ("wed", 2), ("wednesday", 2),
    ("thu", 3), ("thursday", 3),
    ("fri", 4), ("friday", 4),
    ("sat", 5), ("saturday", 5),
)

WEEKDAYS: dict[str, int] = dict(WEEKDAY_NAMES)

# RRULE BYDAY codes indexed by python weekday
RRULE_DAY_CODES: tuple[str, ...] = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

MONTHS: dict[str, int] = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}


def category_for(text: str) -> str:
    """Return the category of the first keyword found in `text`."""
    lower = text.lower()
    for keyword, category in CATEGORY_KEYWORDS:
        if keyword in lower:
            return category
    return DEFAULT_CATEGORY


def weekday_index(name: str) -> int | None:
    """Map a weekday name or 3-letter prefix to a python weekday."""
    return WEEKDAYS.get(name.lower()[:3])


def month_index(name: str) -> int | None:
    """Map a month name or 3-letter prefix to a month number (1-12)."""
    return MONTHS.get(name.lower()[:3])
