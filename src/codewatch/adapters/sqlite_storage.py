"""SQLite storage adapter.

Implements the core CodeStoragePort using a single long-lived SQLite
connection.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, time, timezone
from typing import List, Optional, Sequence

from codewatch.core.models import CodeCandidate, CodeRecord, CodeStats

LOGGER = logging.getLogger(__name__)


def _to_iso(value: datetime) -> str:
    # Fixed UTC offset and precision keep ISO strings ordered lexicographically.
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _start_of_local_day(now: Optional[datetime]) -> datetime:
    local_now = (now or datetime.now(timezone.utc)).astimezone()
    # Resolve the offset at midnight itself; it differs on DST changeover days.
    return datetime.combine(local_now.date(), time.min).astimezone()


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the CodeStoragePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage is not initialized. Call init_db() first.")
        return self._conn

    def init_db(self) -> None:
        """Open the connection and create tables if they do not exist.

        Tables:
        - codes: append-only history of discovered codes and their usage
        """

        if self._conn is None:
            LOGGER.info("Opening code store at %s", self._db_path)
            self._conn = sqlite3.connect(self._db_path)
            self._conn.row_factory = sqlite3.Row

        with self._conn as conn:
            # Fields:
            # - id: auto-increment primary key
            # - code: normalized code, unique across the table
            # - date_found: ISO-8601 UTC timestamp of first observation
            # - is_used: 0/1, only ever flips from 0 to 1
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS codes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code TEXT NOT NULL UNIQUE,
                    date_found TEXT NOT NULL,
                    is_used INTEGER DEFAULT 0
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_code ON codes(code)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_is_used ON codes(is_used)")

    def close(self) -> None:
        """Close the connection; safe to call more than once."""

        if self._conn is not None:
            self._conn.close()
            self._conn = None
            LOGGER.info("Code store connection closed")

    def insert_if_new(self, candidates: Sequence[CodeCandidate]) -> List[CodeRecord]:
        """Insert candidates whose code is not stored yet and return those rows.

        The check and the insert are one statement, and the UNIQUE constraint
        backs it up for writers on other connections.
        """

        conn = self._connection()
        inserted: List[CodeRecord] = []
        for candidate in candidates:
            try:
                with conn:
                    cur = conn.execute(
                        """
                        INSERT INTO codes (code, date_found, is_used)
                        VALUES (?, ?, ?)
                        ON CONFLICT(code) DO NOTHING
                        """,
                        (candidate.code, _to_iso(candidate.discovered_at), int(candidate.used)),
                    )
            except sqlite3.IntegrityError:
                # Lost a race with another writer: the code already exists.
                continue
            except sqlite3.Error:
                LOGGER.exception("Error saving code %s", candidate.code)
                continue

            if cur.rowcount == 0:
                continue
            inserted.append(
                CodeRecord(
                    id=int(cur.lastrowid),
                    code=candidate.code,
                    discovered_at=candidate.discovered_at,
                    used=candidate.used,
                )
            )
        return inserted

    def get(self, code: str) -> Optional[CodeRecord]:
        """Return the stored record for a code, if any."""

        row = self._connection().execute(
            "SELECT id, code, date_found, is_used FROM codes WHERE code = ?",
            (code,),
        ).fetchone()
        return self._record(row) if row else None

    def list_unused(self) -> List[CodeRecord]:
        """Return unused codes, newest first."""

        rows = self._connection().execute(
            """
            SELECT id, code, date_found, is_used
            FROM codes
            WHERE is_used = 0
            ORDER BY date_found DESC, id DESC
            """
        ).fetchall()
        return [self._record(row) for row in rows]

    def mark_used(self, code: str) -> bool:
        """Flip is_used to 1 and report whether a row actually changed."""

        with self._connection() as conn:
            cur = conn.execute(
                "UPDATE codes SET is_used = 1 WHERE code = ? AND is_used = 0",
                (code,),
            )
        return cur.rowcount > 0

    def stats(self, now: Optional[datetime] = None) -> CodeStats:
        """Return total/unused/used counts and codes discovered today (local time)."""

        day_start = _to_iso(_start_of_local_day(now))
        row = self._connection().execute(
            """
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(CASE WHEN is_used = 0 THEN 1 ELSE 0 END), 0) AS unused,
                COALESCE(SUM(CASE WHEN is_used = 1 THEN 1 ELSE 0 END), 0) AS used,
                COALESCE(SUM(CASE WHEN date_found >= ? THEN 1 ELSE 0 END), 0) AS today
            FROM codes
            """,
            (day_start,),
        ).fetchone()
        return CodeStats(
            total=int(row["total"]),
            unused=int(row["unused"]),
            used=int(row["used"]),
            discovered_today=int(row["today"]),
        )

    @staticmethod
    def _record(row: sqlite3.Row) -> CodeRecord:
        return CodeRecord(
            id=int(row["id"]),
            code=row["code"],
            discovered_at=_from_iso(row["date_found"]),
            used=bool(row["is_used"]),
        )
