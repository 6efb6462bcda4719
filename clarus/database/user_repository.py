"""
Repository for user operations.
"""

from datetime import datetime

from .connection import DatabaseConnection
from .converters import row_to_user, format_timestamp, utc_now
from .models import DBUser


class UserRepository:
    """Repository for user CRUD operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def create(
        self,
        email: str,
        name: str | None = None,
        tier: str = "free",
        day_pass_expires_at: datetime | None = None,
    ) -> int:
        """Create a user. Returns user ID."""
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO users (email, name, tier, day_pass_expires_at, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (email, name, tier, format_timestamp(day_pass_expires_at), format_timestamp(utc_now()))
            )
            return cursor.lastrowid

    def get(self, user_id: int) -> DBUser | None:
        """Get user by ID."""
        with self._db.conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return row_to_user(row) if row else None

