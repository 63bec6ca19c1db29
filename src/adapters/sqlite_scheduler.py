"""SQLite-backed timer registry implementing the core SchedulerPort.

Timers are rows; the watch loop in app.py polls `due_timers` and records
each firing with `mark_run`.
"""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from core.models import TimerInfo


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class SQLiteScheduler:
    """Periodic timers persisted in the same database as the watches."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        with self._connect() as conn:
            # Fields:
            # - timer_id: opaque id handed to watches (PRIMARY KEY)
            # - handler_name: function the timer fires
            # - every_hours: cadence fixed at creation
            # - created_at / last_run_at: UTC ISO timestamps
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS timers (
                    timer_id TEXT PRIMARY KEY,
                    handler_name TEXT NOT NULL,
                    every_hours INTEGER NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    last_run_at TIMESTAMP
                )
                """
            )

    def ensure_timer(self, handler_name: str, every_hours: int) -> str:
        """Create a timer for `handler_name` and return its id."""

        timer_id = uuid.uuid4().hex
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO timers (timer_id, handler_name, every_hours, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (timer_id, handler_name, every_hours, now.isoformat()),
            )
        return timer_id

    def list_timers(self) -> List[TimerInfo]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT timer_id, handler_name, every_hours, last_run_at FROM timers ORDER BY created_at"
            ).fetchall()
        return [
            TimerInfo(
                timer_id=row["timer_id"],
                handler_name=row["handler_name"],
                every_hours=int(row["every_hours"]),
                last_run_at=_parse_ts(row["last_run_at"]),
            )
            for row in rows
        ]

    def delete_timer(self, timer_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM timers WHERE timer_id = ?", (timer_id,))

    def due_timers(self, now: datetime) -> List[TimerInfo]:
        """Return timers that never ran or whose interval has elapsed."""

        due: List[TimerInfo] = []
        for timer in self.list_timers():
            if timer.last_run_at is None:
                due.append(timer)
            elif now - timer.last_run_at >= timedelta(hours=timer.every_hours):
                due.append(timer)
        return due

    def mark_run(self, timer_id: str, when: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE timers SET last_run_at = ? WHERE timer_id = ?",
                (when.astimezone(timezone.utc).isoformat(), timer_id),
            )
