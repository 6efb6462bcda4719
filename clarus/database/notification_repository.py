"""
Notification repository - in-app notifications for new feed items.
"""

import json

from .connection import DatabaseConnection
from .converters import row_to_notification, format_timestamp, utc_now
from .models import DBNotification


class NotificationRepository:
    """Repository for notification operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def add(self, user_id: int, title: str, body: str, payload: dict | None = None) -> int:
        """Add a notification. Returns notification ID."""
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO notifications (user_id, title, body, payload, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (user_id, title, body, json.dumps(payload) if payload is not None else None,
                 format_timestamp(utc_now()))
            )
            return cursor.lastrowid

    def list_for_user(self, user_id: int, limit: int = 50) -> list[DBNotification]:
        with self._db.conn() as conn:
            rows = conn.execute(
                "SELECT * FROM notifications WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                (user_id, limit)
            ).fetchall()
            return [row_to_notification(row) for row in rows]
