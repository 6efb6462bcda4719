"""
Notification service - Batches new feed items into one notice per user.

A poll run can discover many items for the same user across several
subscriptions. Items are collected per user and a single summary
notification is written for each user at the end of the run.
"""

import logging
from dataclasses import dataclass, field

from .database.models import DBFeedItem, DBSubscription

logger = logging.getLogger(__name__)

# Titles listed in the notification body before collapsing into "and N more"
MAX_LISTED_ITEMS = 5


@dataclass
class PendingNotice:
    """New items collected for one user during a poll run."""
    user_id: int
    items: list[tuple[DBSubscription, DBFeedItem]] = field(default_factory=list)

    @property
    def subscription_names(self) -> list[str]:
        names: list[str] = []
        for subscription, _ in self.items:
            if subscription.name not in names:
                names.append(subscription.name)
        return names


def format_duration(seconds: int | None) -> str | None:
    """Format seconds as "1h 5m" or "42m"."""
    if not seconds:
        return None
    hours, remainder = divmod(int(seconds), 3600)
    minutes = remainder // 60
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


class NotificationBatcher:
    """
    Collects new feed items per user and flushes one notification each.

    Usage:
        batcher = NotificationBatcher(db)
        batcher.add(subscription, inserted_items)
        ...
        notified = batcher.flush(feed_type)
    """

    def __init__(self, db):
        self._db = db
        self._pending: dict[int, PendingNotice] = {}

    def add(self, subscription: DBSubscription, items: list[DBFeedItem]):
        if not items:
            return
        notice = self._pending.setdefault(subscription.user_id, PendingNotice(subscription.user_id))
        notice.items.extend((subscription, item) for item in items)

    @property
    def pending_users(self) -> int:
        return len(self._pending)

    def build_message(self, notice: PendingNotice, feed_type: str) -> tuple[str, str, dict]:
        """Title, body and payload for one user's notice."""
        noun = "episode" if feed_type == "podcast" else "video"
        count = len(notice.items)
        sources = notice.subscription_names

        title = f"{count} new {noun}{'' if count == 1 else 's'}"
        if len(sources) == 1:
            title += f" from {sources[0]}"
        else:
            title += f" from {len(sources)} subscriptions"

        lines = []
        for subscription, item in notice.items[:MAX_LISTED_ITEMS]:
            line = f"{subscription.name}: {item.title}"
            duration = format_duration(item.duration_seconds)
            if duration:
                line += f" ({duration})"
            lines.append(line)
        if count > MAX_LISTED_ITEMS:
            lines.append(f"and {count - MAX_LISTED_ITEMS} more")

        payload = {
            "feed_type": feed_type,
            "item_ids": [item.id for _, item in notice.items],
            "subscriptions": {
                name: sum(1 for s, _ in notice.items if s.name == name) for name in sources
            },
        }
        return title, "\n".join(lines), payload

    def flush(self, feed_type: str) -> int:
        """
        Write one notification per user and mark the included items notified.

        A failure for one user is logged and does not stop the others.

        Returns:
            Number of users notified
        """
        notified = 0
        for user_id, notice in self._pending.items():
            title, body, payload = self.build_message(notice, feed_type)
            try:
                self._db.notifications.add(user_id, title, body, payload)
                self._db.feed_items.mark_notified(payload["item_ids"])
            except Exception as e:
                logger.error(f"Failed to notify user {user_id}: {e}", exc_info=True)
                continue
            notified += 1
        self._pending.clear()
        return notified
