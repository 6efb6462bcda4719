"""
Subscription repository - feed subscriptions and their discovered items.
"""

from datetime import datetime

from .connection import DatabaseConnection
from .converters import row_to_subscription, row_to_feed_item, format_timestamp, utc_now
from .models import DBSubscription, DBFeedItem


class SubscriptionRepository:
    """Repository for podcast and YouTube feed subscriptions."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def add(
        self,
        user_id: int,
        feed_type: str,
        feed_url: str,
        name: str,
        check_frequency_hours: int = 24,
        auth_header_encrypted: str | None = None,
    ) -> int:
        """Add a subscription. Returns subscription ID."""
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO feed_subscriptions
                       (user_id, feed_type, feed_url, name, check_frequency_hours,
                        feed_auth_header_encrypted, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (user_id, feed_type, feed_url, name, check_frequency_hours,
                 auth_header_encrypted, format_timestamp(utc_now()))
            )
            return cursor.lastrowid

    def get(self, subscription_id: int) -> DBSubscription | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM feed_subscriptions WHERE id = ?", (subscription_id,)
            ).fetchone()
            return row_to_subscription(row) if row else None

    def list_for_user(self, user_id: int, feed_type: str | None = None) -> list[DBSubscription]:
        with self._db.conn() as conn:
            if feed_type:
                rows = conn.execute(
                    "SELECT * FROM feed_subscriptions WHERE user_id = ? AND feed_type = ? ORDER BY name",
                    (user_id, feed_type)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM feed_subscriptions WHERE user_id = ? ORDER BY name",
                    (user_id,)
                ).fetchall()
            return [row_to_subscription(row) for row in rows]

    def delete(self, subscription_id: int, user_id: int) -> bool:
        with self._db.conn() as conn:
            cursor = conn.execute(
                "DELETE FROM feed_subscriptions WHERE id = ? AND user_id = ?",
                (subscription_id, user_id)
            )
            return cursor.rowcount == 1

    def get_due(self, feed_type: str, now: datetime, limit: int = 200) -> list[DBSubscription]:
        """Active subscriptions never checked, or checked at least their cadence ago."""
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT * FROM feed_subscriptions
                   WHERE feed_type = ? AND is_active = 1
                     AND (last_checked_at IS NULL
                          OR (julianday(?) - julianday(last_checked_at)) * 24.0
                             >= COALESCE(check_frequency_hours, 24))
                   ORDER BY last_checked_at IS NOT NULL, last_checked_at
                   LIMIT ?""",
                (feed_type, format_timestamp(now), limit)
            ).fetchall()
            return [row_to_subscription(row) for row in rows]

    def record_success(
        self,
        subscription_id: int,
        checked_at: datetime,
        last_item_date: datetime | None = None,
    ):
        """Reset the failure counter and advance the watermark if given."""
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE feed_subscriptions
                   SET last_checked_at = ?,
                       last_item_date = COALESCE(?, last_item_date),
                       consecutive_failures = 0,
                       last_error = NULL
                   WHERE id = ?""",
                (format_timestamp(checked_at), format_timestamp(last_item_date), subscription_id)
            )

    def record_failure(
        self,
        subscription_id: int,
        error: str,
        checked_at: datetime,
        max_failures: int,
    ) -> DBSubscription | None:
        """
        Increment the failure counter; deactivate once it reaches max_failures.

        Returns:
            The subscription after the update
        """
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE feed_subscriptions
                   SET consecutive_failures = consecutive_failures + 1,
                       last_error = ?,
                       last_checked_at = ?,
                       is_active = CASE
                           WHEN consecutive_failures + 1 >= ? THEN 0
                           ELSE is_active
                       END
                   WHERE id = ?""",
                (error, format_timestamp(checked_at), max_failures, subscription_id)
            )
            row = conn.execute(
                "SELECT * FROM feed_subscriptions WHERE id = ?", (subscription_id,)
            ).fetchone()
            return row_to_subscription(row) if row else None

    def reactivate(self, subscription_id: int, user_id: int) -> bool:
        with self._db.conn() as conn:
            cursor = conn.execute(
                """UPDATE feed_subscriptions
                   SET is_active = 1, consecutive_failures = 0, last_error = NULL
                   WHERE id = ? AND user_id = ?""",
                (subscription_id, user_id)
            )
            return cursor.rowcount == 1


class FeedItemRepository:
    """Repository for items discovered in subscribed feeds."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def insert_new(self, subscription_id: int, user_id: int, items: list[dict]) -> list[DBFeedItem]:
        """
        Insert items, skipping any URL already stored for the subscription.

        Returns:
            Only the rows this call actually inserted
        """
        inserted: list[DBFeedItem] = []
        now = format_timestamp(utc_now())
        with self._db.conn() as conn:
            for item in items:
                cursor = conn.execute(
                    """INSERT INTO feed_items
                           (subscription_id, user_id, item_url, title, description, published_at,
                            duration_seconds, thumbnail_url, video_id, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(subscription_id, item_url) DO NOTHING""",
                    (
                        subscription_id,
                        user_id,
                        item["item_url"],
                        item["title"],
                        item.get("description"),
                        format_timestamp(item.get("published_at")),
                        item.get("duration_seconds"),
                        item.get("thumbnail_url"),
                        item.get("video_id"),
                        now,
                    )
                )
                if cursor.rowcount == 1:
                    row = conn.execute(
                        "SELECT * FROM feed_items WHERE id = ?", (cursor.lastrowid,)
                    ).fetchone()
                    inserted.append(row_to_feed_item(row))
        return inserted

    def list_for_subscription(self, subscription_id: int, limit: int = 50) -> list[DBFeedItem]:
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT * FROM feed_items WHERE subscription_id = ?
                   ORDER BY published_at DESC, id DESC LIMIT ?""",
                (subscription_id, limit)
            ).fetchall()
            return [row_to_feed_item(row) for row in rows]

    def mark_notified(self, item_ids: list[int]):
        if not item_ids:
            return
        placeholders = ",".join("?" * len(item_ids))
        with self._db.conn() as conn:
            conn.execute(
                f"UPDATE feed_items SET is_notified = 1 WHERE id IN ({placeholders})",
                item_ids
            )
