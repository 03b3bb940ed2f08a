"""Shared test fixtures.

All stores point at one temp SQLite file per test, the same way production
wires them to DATABASE_PATH.
"""

from datetime import datetime

import pytest

# Wednesday, Feb 4 2026, 10:00 local
NOW = datetime(2026, 2, 4, 10, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_family.db")


@pytest.fixture
def event_db(tmp_db_path):
    from src.data.db import EventDB
    return EventDB(tmp_db_path)


@pytest.fixture
def rule_db(tmp_db_path):
    from src.data.db import ReminderRuleDB
    return ReminderRuleDB(tmp_db_path)


@pytest.fixture
def log_db(tmp_db_path):
    from src.data.db import NotificationLogDB
    return NotificationLogDB(tmp_db_path)


@pytest.fixture
def user_db(tmp_db_path):
    from src.data.db import UserDB
    return UserDB(tmp_db_path)


@pytest.fixture
def family(user_db):
    """A family with one adult user and one kid member ("Noam")."""
    fam = user_db.add_family("Cohen")
    user = user_db.add_user("dana@example.com", "Dana", family_id=fam.id)
    kid = user_db.add_member(fam.id, "Noam")
    return {"family": fam, "user": user, "kid": kid}


@pytest.fixture
def make_event():
    """Factory for unsaved CalendarEvents."""
    from src.data.models import CalendarEvent, Category

    def _make(family_id, start, end, title="Event", person_id=None, category="other", **kwargs):
        return CalendarEvent(
            id=0, family_id=family_id, title=title, start_time=start, end_time=end,
            person_id=person_id, category=Category(category), **kwargs,
        )

    return _make
