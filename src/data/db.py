"""
Family Scheduler — SQLite storage.

Families, users, events, reminder rules and the notification log persist in a
single SQLite file. Each store class owns one concern but shares the schema,
so stores can be pointed at the same path.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from src.core.reminder_rules import (
    DEFAULT_REMINDER_RULES,
    ReminderOffset,
    offset_to_dict,
    parse_offsets,
)
from src.data.models import (
    CalendarEvent,
    Category,
    ChatLink,
    EventSource,
    Family,
    FamilyMember,
    PushSubscription,
    Priority,
    ReminderRule,
    User,
)
from src.ports.store_port import StoreError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS families (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    email       TEXT NOT NULL UNIQUE,
    name        TEXT NOT NULL,
    family_id   INTEGER,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS family_members (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    family_id     INTEGER NOT NULL,
    display_name  TEXT    NOT NULL,
    role          TEXT    NOT NULL DEFAULT 'kid',
    user_id       INTEGER
);

CREATE TABLE IF NOT EXISTS chat_links (
    chat_id   TEXT PRIMARY KEY,
    user_id   INTEGER NOT NULL,
    username  TEXT
);

CREATE TABLE IF NOT EXISTS push_subscriptions (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     INTEGER NOT NULL,
    endpoint    TEXT    NOT NULL UNIQUE,
    p256dh      TEXT    NOT NULL,
    auth        TEXT    NOT NULL,
    user_agent  TEXT,
    created_at  TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS events (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    family_id          INTEGER NOT NULL,
    title              TEXT    NOT NULL,
    start_time         TEXT    NOT NULL,
    end_time           TEXT    NOT NULL,
    all_day            INTEGER NOT NULL DEFAULT 0,
    rrule              TEXT,
    person_id          INTEGER,
    category           TEXT    NOT NULL DEFAULT 'other',
    priority           TEXT    NOT NULL DEFAULT 'medium',
    notes              TEXT,
    created_from       TEXT    NOT NULL DEFAULT 'manual',
    source_message_id  TEXT,
    conflict_flag      INTEGER NOT NULL DEFAULT 0,
    created_at         TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_start ON events (start_time);
CREATE INDEX IF NOT EXISTS idx_events_person ON events (family_id, person_id);

CREATE TABLE IF NOT EXISTS reminder_rules (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    family_id  INTEGER NOT NULL,
    category   TEXT    NOT NULL,
    offsets    TEXT    NOT NULL DEFAULT '[]',
    UNIQUE (family_id, category)
);

CREATE TABLE IF NOT EXISTS notification_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id    INTEGER NOT NULL,
    offset_key  TEXT    NOT NULL,
    channel     TEXT    NOT NULL DEFAULT 'email',
    user_id     INTEGER NOT NULL,
    sent_at     TEXT    NOT NULL,
    UNIQUE (event_id, offset_key, user_id)
);
"""


def _iso(value: datetime) -> str:
    # Fixed width so lexical order matches time order in SQL comparisons
    return value.isoformat(timespec="seconds")


def _now_iso() -> str:
    return _iso(datetime.now())


class _SQLiteStore:
    """Shared connection handling and schema bootstrap."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("%s initialized at %s", type(self).__name__, self._db_path)

    def _query(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        try:
            with self._connect() as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Query failed: {exc}") from exc

    def _execute(self, sql: str, params: tuple | list = ()) -> sqlite3.Cursor:
        """Run a write. Uniqueness violations surface as sqlite3.IntegrityError."""
        try:
            with self._connect() as conn:
                return conn.execute(sql, params)
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            raise StoreError(f"Write failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventDB(_SQLiteStore):
    """SQLite-backed storage for calendar events."""

    _SELECT = """
        SELECT e.*, m.display_name AS person_name
        FROM events e
        LEFT JOIN family_members m ON m.id = e.person_id
    """

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> CalendarEvent:
        return CalendarEvent(
            id=row["id"],
            family_id=row["family_id"],
            title=row["title"],
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=datetime.fromisoformat(row["end_time"]),
            person_id=row["person_id"],
            all_day=bool(row["all_day"]),
            rrule=row["rrule"],
            category=Category(row["category"]),
            priority=Priority(row["priority"]),
            conflict_flag=bool(row["conflict_flag"]),
            created_from=EventSource(row["created_from"]),
            source_message_id=row["source_message_id"],
            notes=row["notes"],
            person_name=row["person_name"],
        )

    def add_event(self, event: CalendarEvent) -> CalendarEvent:
        """Insert an event. The `id` of the argument is ignored."""
        cursor = self._execute(
            """
            INSERT INTO events
                (family_id, title, start_time, end_time, all_day, rrule,
                 person_id, category, priority, notes, created_from,
                 source_message_id, conflict_flag, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.family_id, event.title,
                _iso(event.start_time), _iso(event.end_time),
                int(event.all_day), event.rrule, event.person_id,
                Category(event.category).value, Priority(event.priority).value,
                event.notes, EventSource(event.created_from).value,
                event.source_message_id, int(event.conflict_flag), _now_iso(),
            ),
        )
        event_id = cursor.lastrowid
        logger.info("Event added: #%d '%s' at %s", event_id, event.title, _iso(event.start_time))
        stored = self.get_event(event_id)
        if stored is None:
            raise StoreError(f"Event {event_id} vanished after insert")
        return stored

    def get_event(self, event_id: int) -> CalendarEvent | None:
        rows = self._query(self._SELECT + " WHERE e.id = ?", (event_id,))
        return self._row_to_event(rows[0]) if rows else None

    def find_overlapping(
        self,
        family_id: int,
        person_id: int,
        start: datetime,
        end: datetime,
        exclude_event_id: int | None = None,
    ) -> list[CalendarEvent]:
        """Events for the person whose [start, end) overlaps the given range."""
        query = self._SELECT + """
            WHERE e.family_id = ? AND e.person_id = ?
              AND e.start_time < ? AND e.end_time > ?
        """
        params: list[Any] = [family_id, person_id, _iso(end), _iso(start)]
        if exclude_event_id is not None:
            query += " AND e.id != ?"
            params.append(exclude_event_id)
        query += " ORDER BY e.start_time"
        return [self._row_to_event(r) for r in self._query(query, params)]

    def set_conflict_flag(self, event_id: int, has_conflict: bool) -> None:
        self._execute(
            "UPDATE events SET conflict_flag = ? WHERE id = ?",
            (int(has_conflict), event_id),
        )
        logger.debug("Event #%d conflict_flag=%s", event_id, has_conflict)

    def list_events_starting_between(
        self,
        start: datetime,
        end: datetime,
        family_id: int | None = None,
        category: str | None = None,
    ) -> list[CalendarEvent]:
        """Events with start_time in [start, end], ordered by start."""
        query = self._SELECT + " WHERE e.start_time >= ? AND e.start_time <= ?"
        params: list[Any] = [_iso(start), _iso(end)]
        if family_id is not None:
            query += " AND e.family_id = ?"
            params.append(family_id)
        if category is not None:
            query += " AND e.category = ?"
            params.append(Category(category).value)
        query += " ORDER BY e.start_time"
        return [self._row_to_event(r) for r in self._query(query, params)]

    def find_by_source_message(
        self, source: str, source_message_id: str
    ) -> CalendarEvent | None:
        """Event previously captured from this inbound message, if any."""
        rows = self._query(
            self._SELECT + " WHERE e.created_from = ? AND e.source_message_id = ? LIMIT 1",
            (EventSource(source).value, source_message_id),
        )
        return self._row_to_event(rows[0]) if rows else None


# ---------------------------------------------------------------------------
# Reminder rules
# ---------------------------------------------------------------------------


class ReminderRuleDB(_SQLiteStore):
    """SQLite-backed storage for per-family reminder rules."""

    @staticmethod
    def _row_to_rule(row: sqlite3.Row) -> ReminderRule:
        return ReminderRule(
            id=row["id"],
            family_id=row["family_id"],
            category=Category(row["category"]),
            offsets=parse_offsets(json.loads(row["offsets"])),
        )

    def upsert_rule(
        self, family_id: int, category: str, offsets: list[ReminderOffset]
    ) -> ReminderRule:
        """Create or replace the rule for (family, category)."""
        category = Category(category).value
        payload = json.dumps([offset_to_dict(o) for o in offsets])
        self._execute(
            """
            INSERT INTO reminder_rules (family_id, category, offsets)
            VALUES (?, ?, ?)
            ON CONFLICT (family_id, category) DO UPDATE SET offsets = excluded.offsets
            """,
            (family_id, category, payload),
        )
        logger.info("Reminder rule set: family %d / %s -> %d offsets", family_id, category, len(offsets))
        rows = self._query(
            "SELECT * FROM reminder_rules WHERE family_id = ? AND category = ?",
            (family_id, category),
        )
        return self._row_to_rule(rows[0])

    def seed_defaults(self, family_id: int) -> list[ReminderRule]:
        """Install the default rules for a new family."""
        return [
            self.upsert_rule(family_id, category, offsets)
            for category, offsets in DEFAULT_REMINDER_RULES.items()
        ]

    def list_rules(self, family_id: int | None = None) -> list[ReminderRule]:
        query = "SELECT * FROM reminder_rules"
        params: list[Any] = []
        if family_id is not None:
            query += " WHERE family_id = ?"
            params.append(family_id)
        query += " ORDER BY family_id, category"
        return [self._row_to_rule(r) for r in self._query(query, params)]


# ---------------------------------------------------------------------------
# Notification log
# ---------------------------------------------------------------------------


class NotificationLogDB(_SQLiteStore):
    """Processed reminder triples. UNIQUE(event_id, offset_key, user_id) is the dedup key."""

    def has_entry(self, event_id: int, offset_key: str, user_id: int) -> bool:
        rows = self._query(
            """
            SELECT 1 FROM notification_log
            WHERE event_id = ? AND offset_key = ? AND user_id = ?
            LIMIT 1
            """,
            (event_id, offset_key, user_id),
        )
        return bool(rows)

    def record(
        self, event_id: int, offset_key: str, user_id: int, channel: str = "email"
    ) -> bool:
        """Insert the triple. Returns False if another run already recorded it."""
        try:
            self._execute(
                """
                INSERT INTO notification_log (event_id, offset_key, channel, user_id, sent_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (event_id, offset_key, channel, user_id, _now_iso()),
            )
        except sqlite3.IntegrityError:
            logger.debug(
                "Notification already logged: event %d / %s / user %d",
                event_id, offset_key, user_id,
            )
            return False
        return True

    def count(self) -> int:
        rows = self._query("SELECT COUNT(*) AS n FROM notification_log")
        return rows[0]["n"]


# ---------------------------------------------------------------------------
# Families, users, members and notification endpoints
# ---------------------------------------------------------------------------


class UserDB(_SQLiteStore):
    """SQLite-backed storage for families and the people in them."""

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            family_id=row["family_id"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_member(row: sqlite3.Row) -> FamilyMember:
        return FamilyMember(
            id=row["id"],
            family_id=row["family_id"],
            display_name=row["display_name"],
            role=row["role"],
            user_id=row["user_id"],
        )

    def add_family(self, name: str) -> Family:
        now = _now_iso()
        cursor = self._execute(
            "INSERT INTO families (name, created_at) VALUES (?, ?)", (name, now),
        )
        family = Family(id=cursor.lastrowid, name=name, created_at=now)
        logger.info("Family created: #%d '%s'", family.id, name)
        return family

    def add_user(self, email: str, name: str, family_id: int | None = None) -> User:
        """Register a user. Raises sqlite3.IntegrityError on a duplicate email."""
        now = _now_iso()
        cursor = self._execute(
            "INSERT INTO users (email, name, family_id, created_at) VALUES (?, ?, ?, ?)",
            (email.strip(), name, family_id, now),
        )
        user = User(id=cursor.lastrowid, email=email.strip(), name=name,
                    family_id=family_id, created_at=now)
        logger.info("User registered: #%d '%s'", user.id, name)
        return user

    def get_user(self, user_id: int) -> User | None:
        rows = self._query("SELECT * FROM users WHERE id = ?", (user_id,))
        return self._row_to_user(rows[0]) if rows else None

    def set_family(self, user_id: int, family_id: int) -> None:
        self._execute("UPDATE users SET family_id = ? WHERE id = ?", (family_id, user_id))
        logger.info("User %d joined family %d", user_id, family_id)

    def list_family_users(self, family_id: int) -> list[User]:
        rows = self._query(
            "SELECT * FROM users WHERE family_id = ? ORDER BY id", (family_id,),
        )
        return [self._row_to_user(r) for r in rows]

    def list_users_with_family(self) -> list[User]:
        rows = self._query("SELECT * FROM users WHERE family_id IS NOT NULL ORDER BY id")
        return [self._row_to_user(r) for r in rows]

    # -- members -----------------------------------------------------------

    def add_member(
        self,
        family_id: int,
        display_name: str,
        role: str = "kid",
        user_id: int | None = None,
    ) -> FamilyMember:
        cursor = self._execute(
            "INSERT INTO family_members (family_id, display_name, role, user_id) VALUES (?, ?, ?, ?)",
            (family_id, display_name.strip(), role, user_id),
        )
        member = FamilyMember(id=cursor.lastrowid, family_id=family_id,
                              display_name=display_name.strip(), role=role, user_id=user_id)
        logger.info("Member added: #%d '%s' to family %d", member.id, member.display_name, family_id)
        return member

    def list_members(self, family_id: int) -> list[FamilyMember]:
        rows = self._query(
            "SELECT * FROM family_members WHERE family_id = ? ORDER BY id", (family_id,),
        )
        return [self._row_to_member(r) for r in rows]

    # -- chat links ----------------------------------------------------------

    def link_chat(self, user_id: int, chat_id: str, username: str | None = None) -> ChatLink:
        """Link a chat to a user. A chat belongs to at most one user."""
        self._execute(
            """
            INSERT INTO chat_links (chat_id, user_id, username) VALUES (?, ?, ?)
            ON CONFLICT (chat_id) DO UPDATE SET user_id = excluded.user_id,
                                                username = excluded.username
            """,
            (str(chat_id), user_id, username),
        )
        logger.info("Chat %s linked to user %d", chat_id, user_id)
        return ChatLink(user_id=user_id, chat_id=str(chat_id), username=username)

    def get_chat_link(self, user_id: int) -> ChatLink | None:
        rows = self._query(
            "SELECT * FROM chat_links WHERE user_id = ? LIMIT 1", (user_id,),
        )
        if not rows:
            return None
        return ChatLink(user_id=rows[0]["user_id"], chat_id=rows[0]["chat_id"],
                        username=rows[0]["username"])

    def get_user_by_chat(self, chat_id: str) -> User | None:
        rows = self._query(
            """
            SELECT u.* FROM users u
            JOIN chat_links c ON c.user_id = u.id
            WHERE c.chat_id = ?
            """,
            (str(chat_id),),
        )
        return self._row_to_user(rows[0]) if rows else None

    # -- push subscriptions --------------------------------------------------

    def add_push_subscription(
        self,
        user_id: int,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: str | None = None,
    ) -> PushSubscription:
        """Upsert a subscription; the endpoint is unique."""
        self._execute(
            """
            INSERT INTO push_subscriptions (user_id, endpoint, p256dh, auth, user_agent, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (endpoint) DO UPDATE SET user_id = excluded.user_id,
                                                 p256dh = excluded.p256dh,
                                                 auth = excluded.auth,
                                                 user_agent = excluded.user_agent
            """,
            (user_id, endpoint, p256dh, auth, user_agent, _now_iso()),
        )
        return PushSubscription(user_id=user_id, endpoint=endpoint, p256dh=p256dh,
                                auth=auth, user_agent=user_agent)

    def list_push_subscriptions(self, user_id: int) -> list[PushSubscription]:
        rows = self._query(
            "SELECT * FROM push_subscriptions WHERE user_id = ? ORDER BY id", (user_id,),
        )
        return [
            PushSubscription(
                id=r["id"], user_id=r["user_id"], endpoint=r["endpoint"],
                p256dh=r["p256dh"], auth=r["auth"], user_agent=r["user_agent"],
            )
            for r in rows
        ]
