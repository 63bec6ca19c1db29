"""SQLite storage adapter.

Implements the core PropertyStorePort and CachePort using a simple SQLite
database.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Optional


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the property store and cache contracts."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - properties: opaque key/value namespace holding watch records
        - cache: dedup markers with an absolute expiry
        """

        with self._connect() as conn:
            # properties mirrors a script-properties style store: every value is
            # an opaque string and keys carry their own prefixes.
            # Fields:
            # - key: property name (PRIMARY KEY)
            # - value: stored string (JSON for watch records)
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS properties (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            # cache stores dedup markers. Rows past expires_at read as absent and
            # are purged by cleanup_cache().
            # Fields:
            # - key: dedupe key (PRIMARY KEY)
            # - value: JSON marker with status and marked_at
            # - expires_at: UTC ISO timestamp
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at TIMESTAMP NOT NULL
                )
                """
            )

    def get_property(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM properties WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_property(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO properties (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )

    def delete_property(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM properties WHERE key = ?", (key,))

    def list_properties(self, prefix: str) -> dict[str, str]:
        """Return all properties whose key starts with `prefix`."""

        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key, value FROM properties WHERE key LIKE ? ESCAPE '\\'",
                (f"{escaped}%",),
            ).fetchall()
        return {row["key"]: row["value"] for row in rows}

    def get(self, key: str) -> Optional[str]:
        """Return a cached value, or None when absent or expired."""

        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM cache WHERE key = ? AND expires_at > ?",
                (key, now.isoformat(timespec="microseconds")),
            ).fetchone()
        return row["value"] if row else None

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO cache (key, value, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    expires_at = excluded.expires_at
                """,
                (key, value, expires_at.isoformat(timespec="microseconds")),
            )

    def cleanup_cache(self) -> int:
        """Delete expired cache rows and return the number removed."""

        now = datetime.now(timezone.utc).isoformat(timespec="microseconds")
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM cache WHERE expires_at <= ?", (now,))
            return cur.rowcount
