"""
Usage repository - per-user, per-period metered counters.
"""

import math

from .connection import DatabaseConnection
from .converters import row_to_usage
from .models import DBUsage

USAGE_COLUMNS = frozenset({
    "analyses_count",
    "chat_messages_count",
    "share_links_count",
    "exports_count",
    "bookmarks_count",
})


class UsageRepository:
    """Repository for usage_tracking counters."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def get(self, user_id: int, period: str) -> DBUsage | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM usage_tracking WHERE user_id = ? AND period = ?",
                (user_id, period)
            ).fetchone()
            return row_to_usage(row) if row else None

    def increment_if_below(self, user_id: int, period: str, field: str, limit: float) -> tuple[bool, int]:
        """
        Increment ``field`` only while it is below ``limit``, in one statement.

        The row is created on first use inside the same transaction, so
        concurrent callers serialize on SQLite's write lock and at most
        ``limit`` increments ever succeed.

        Returns:
            (incremented, count after the call)
        """
        if field not in USAGE_COLUMNS:
            raise ValueError(f"Unknown usage field: {field}")

        with self._db.conn() as conn:
            conn.execute(
                """INSERT INTO usage_tracking (user_id, period) VALUES (?, ?)
                   ON CONFLICT(user_id, period) DO NOTHING""",
                (user_id, period)
            )
            if math.isinf(limit):
                cursor = conn.execute(
                    f"UPDATE usage_tracking SET {field} = {field} + 1 WHERE user_id = ? AND period = ?",
                    (user_id, period)
                )
            else:
                cursor = conn.execute(
                    f"""UPDATE usage_tracking SET {field} = {field} + 1
                        WHERE user_id = ? AND period = ? AND {field} < ?""",
                    (user_id, period, int(limit))
                )
            incremented = cursor.rowcount == 1
            row = conn.execute(
                f"SELECT {field} FROM usage_tracking WHERE user_id = ? AND period = ?",
                (user_id, period)
            ).fetchone()
            return incremented, row[0]

    def set_count(self, user_id: int, period: str, field: str, value: int):
        """Set a counter directly (administrative adjustments and tests)."""
        if field not in USAGE_COLUMNS:
            raise ValueError(f"Unknown usage field: {field}")
        with self._db.conn() as conn:
            conn.execute(
                f"""INSERT INTO usage_tracking (user_id, period, {field}) VALUES (?, ?, ?)
                    ON CONFLICT(user_id, period) DO UPDATE SET {field} = excluded.{field}""",
                (user_id, period, value)
            )
