"""SQLite storage for time-relevant memories and the processed-message ledger."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta
from pathlib import Path

from .models import (
    Event,
    LedgerRecord,
    ProcessingType,
    Reminder,
    Todo,
    to_iso,
    utcnow,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    date          TEXT NOT NULL,
    description   TEXT NOT NULL,
    participants  TEXT,
    context       TEXT,
    created_at    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_date ON events(date);

CREATE TABLE IF NOT EXISTS todos (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    task        TEXT NOT NULL,
    due_date    TEXT,
    priority    TEXT NOT NULL DEFAULT 'normal',
    completed   INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS reminders (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    trigger_time  TEXT NOT NULL,
    message       TEXT NOT NULL,
    recurring     TEXT,
    completed     INTEGER NOT NULL DEFAULT 0,
    created_at    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_reminders_trigger ON reminders(trigger_time);

CREATE TABLE IF NOT EXISTS processed_messages (
    message_id       TEXT PRIMARY KEY,
    processing_type  TEXT NOT NULL,
    stored_in        TEXT,
    processed_at     TEXT NOT NULL
);
"""


class RelationalStore:
    """Persistent storage for events, todos, reminders and the ledger.

    Timestamps are stored as UTC ISO-8601 strings so that range queries
    can compare them lexically.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the tables if they don't exist."""
        conn = self._get_connection()
        conn.executescript(_SCHEMA)
        conn.commit()

    # --- events ---

    def create_event(
        self,
        date: datetime | str,
        description: str,
        participants: str | None = None,
        context: str | None = None,
    ) -> Event:
        """Record an event. Events are append-only and never deduplicated.

        Args:
            date: When the event happened.
            description: What happened.
            participants: Who was involved.
            context: The message the event was extracted from.

        Returns:
            The stored event.
        """
        conn = self._get_connection()
        created_at = to_iso(utcnow())
        cursor = conn.execute(
            """
            INSERT INTO events (date, description, participants, context, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (to_iso(date), description, participants, context, created_at),
        )
        conn.commit()
        return Event(
            id=int(cursor.lastrowid),
            date=to_iso(date),
            description=description,
            participants=participants,
            context=context,
            created_at=created_at,
        )

    def list_recent_events(self, days: int = 7) -> list[Event]:
        """Get events from the last ``days`` days, newest first."""
        cutoff = to_iso(utcnow() - timedelta(days=days))
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT * FROM events WHERE date >= ? ORDER BY date DESC, id DESC",
            (cutoff,),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def search_events(self, query: str, limit: int = 10) -> list[Event]:
        """Find events whose description or context contains ``query``.

        Store-level API; no tool or command calls it yet.
        """
        pattern = f"%{query}%"
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT * FROM events
            WHERE description LIKE ? OR context LIKE ?
            ORDER BY date DESC, id DESC
            LIMIT ?
            """,
            (pattern, pattern, limit),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    # --- todos ---

    def add_todo(
        self,
        task: str,
        due_date: datetime | str | None = None,
        priority: str = "normal",
    ) -> Todo:
        """Add a pending todo."""
        conn = self._get_connection()
        created_at = to_iso(utcnow())
        due = to_iso(due_date) if due_date is not None else None
        cursor = conn.execute(
            "INSERT INTO todos (task, due_date, priority, created_at) VALUES (?, ?, ?, ?)",
            (task, due, priority, created_at),
        )
        conn.commit()
        return Todo(
            id=int(cursor.lastrowid),
            task=task,
            due_date=due,
            priority=priority,
            completed=False,
            created_at=created_at,
        )

    def get_todos(self, include_completed: bool = False) -> list[Todo]:
        """List todos, pending first and newest first."""
        conn = self._get_connection()
        sql = "SELECT * FROM todos"
        if not include_completed:
            sql += " WHERE completed = 0"
        sql += " ORDER BY completed ASC, created_at DESC, id DESC"
        return [self._row_to_todo(row) for row in conn.execute(sql).fetchall()]

    def find_todo(self, description: str) -> Todo | None:
        """Find the first pending todo whose task contains ``description``."""
        needle = description.lower()
        for todo in self.get_todos():
            if needle in todo.task.lower():
                return todo
        return None

    def complete_todo(self, todo_id: int) -> bool:
        """Mark a todo as completed. Returns False if it doesn't exist."""
        conn = self._get_connection()
        cursor = conn.execute("UPDATE todos SET completed = 1 WHERE id = ?", (todo_id,))
        conn.commit()
        return cursor.rowcount > 0

    def delete_todo(self, todo_id: int) -> bool:
        """Delete a todo. Returns False if it doesn't exist."""
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM todos WHERE id = ?", (todo_id,))
        conn.commit()
        return cursor.rowcount > 0

    # --- reminders ---

    def add_reminder(
        self,
        trigger_time: datetime | str,
        message: str,
        recurring: str | None = None,
    ) -> Reminder:
        """Schedule a reminder.

        Reminders are store-level API only: nothing fires them, and no
        tool or command exposes them yet.
        """
        conn = self._get_connection()
        created_at = to_iso(utcnow())
        trigger = to_iso(trigger_time)
        cursor = conn.execute(
            """
            INSERT INTO reminders (trigger_time, message, recurring, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (trigger, message, recurring, created_at),
        )
        conn.commit()
        return Reminder(
            id=int(cursor.lastrowid),
            trigger_time=trigger,
            message=message,
            recurring=recurring,
            completed=False,
            created_at=created_at,
        )

    def get_upcoming_reminders(self, hours: int = 24) -> list[Reminder]:
        """Pending reminders due within the next ``hours`` hours, soonest first.

        Store-level API, see ``add_reminder``.
        """
        now = utcnow()
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT * FROM reminders
            WHERE trigger_time >= ? AND trigger_time <= ? AND completed = 0
            ORDER BY trigger_time ASC
            """,
            (to_iso(now), to_iso(now + timedelta(hours=hours))),
        )
        return [self._row_to_reminder(row) for row in cursor.fetchall()]

    def complete_reminder(self, reminder_id: int) -> bool:
        """Mark a reminder as completed. Store-level API, see ``add_reminder``."""
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE reminders SET completed = 1 WHERE id = ?", (reminder_id,)
        )
        conn.commit()
        return cursor.rowcount > 0

    # --- processed-message ledger ---

    def ledger_has_record(self, message_id: str) -> bool:
        """Check whether a message has already been incorporated into memory."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT 1 FROM processed_messages WHERE message_id = ?", (message_id,)
        )
        return cursor.fetchone() is not None

    def ledger_get(self, message_id: str) -> LedgerRecord | None:
        """Get the ledger record for a message, if any."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT * FROM processed_messages WHERE message_id = ?", (message_id,)
        ).fetchone()
        if row is None:
            return None
        return LedgerRecord(
            message_id=row["message_id"],
            processing_type=ProcessingType(row["processing_type"]),
            stored_in=row["stored_in"],
            processed_at=row["processed_at"],
        )

    def ledger_upsert(
        self,
        message_id: str,
        processing_type: ProcessingType,
        stored_in: str | None = None,
        replace: bool = True,
    ) -> bool:
        """Record that a message has been processed.

        There is at most one record per message id. An existing record
        keeps its ``processed_at``; with ``replace=False`` it is left
        untouched entirely.

        Args:
            message_id: The transport message id.
            processing_type: Which path processed it.
            stored_in: Category stored, or 'consolidated'.
            replace: Whether to overwrite an existing record.

        Returns:
            True if a record was inserted or updated.
        """
        conn = self._get_connection()
        if replace:
            conflict = (
                "DO UPDATE SET processing_type = excluded.processing_type, "
                "stored_in = excluded.stored_in"
            )
        else:
            conflict = "DO NOTHING"
        cursor = conn.execute(
            f"""
            INSERT INTO processed_messages (message_id, processing_type, stored_in, processed_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(message_id) {conflict}
            """,
            (message_id, processing_type.value, stored_in, to_iso(utcnow())),
        )
        conn.commit()
        return cursor.rowcount > 0

    def ledger_count(self) -> int:
        """Number of messages recorded in the ledger."""
        conn = self._get_connection()
        return int(conn.execute("SELECT COUNT(*) FROM processed_messages").fetchone()[0])

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            date=row["date"],
            description=row["description"],
            participants=row["participants"],
            context=row["context"],
            created_at=row["created_at"],
        )

    def _row_to_todo(self, row: sqlite3.Row) -> Todo:
        return Todo(
            id=row["id"],
            task=row["task"],
            due_date=row["due_date"],
            priority=row["priority"],
            completed=bool(row["completed"]),
            created_at=row["created_at"],
        )

    def _row_to_reminder(self, row: sqlite3.Row) -> Reminder:
        return Reminder(
            id=row["id"],
            trigger_time=row["trigger_time"],
            message=row["message"],
            recurring=row["recurring"],
            completed=bool(row["completed"]),
            created_at=row["created_at"],
        )
