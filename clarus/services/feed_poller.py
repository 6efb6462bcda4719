"""
Feed poller: scheduled checks of podcast and YouTube subscriptions.

One run per feed type:
- select due subscriptions (never checked, or checked a full cadence ago)
- fetch and parse every feed concurrently; one failure never aborts siblings
- insert items newer than the subscription watermark, ignoring duplicates
- advance the watermark, or count the failure and deactivate at the threshold
- send one batched notification per user
- podcast runs also reconcile stuck transcriptions
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from ..database import Database, DBSubscription
from ..database.converters import utc_now
from ..feed_encryption import FeedEncryptionError, decrypt_feed_credential
from ..feeds import FeedEntry, FeedParser, classify_feed_error
from ..notification_service import NotificationBatcher

if TYPE_CHECKING:
    from ..transcription import TranscriptionService

logger = logging.getLogger(__name__)

FEED_TYPES = ("podcast", "youtube")

MAX_CONSECUTIVE_FAILURES = 7
MAX_SUBSCRIPTIONS_PER_RUN = 200


@dataclass
class PollReport:
    """Counts for one poll run."""
    feed_type: str
    checked: int = 0
    new_items: int = 0
    users_notified: int = 0
    failed: int = 0
    deactivated: int = 0
    recovery: dict | None = None
    errors: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "success": True,
            "feed_type": self.feed_type,
            "checked": self.checked,
            "new_items": self.new_items,
            "users_notified": self.users_notified,
            "failed": self.failed,
            "deactivated": self.deactivated,
        }
        if self.recovery is not None:
            data["recovery"] = self.recovery
        return data


def select_new_entries(
    entries: list[FeedEntry],
    watermark: datetime | None,
    feed_type: str,
) -> list[FeedEntry]:
    """
    Entries newer than the watermark.

    With no watermark every entry is new. Undated podcast episodes are kept
    (the duplicate constraint filters repeats); undated videos are not.
    """
    if watermark is None:
        return list(entries)
    selected = []
    for entry in entries:
        if entry.published is None:
            if feed_type == "podcast":
                selected.append(entry)
            continue
        if entry.published > watermark:
            selected.append(entry)
    return selected


class FeedPoller:
    """Polls due subscriptions of one feed type per run."""

    def __init__(
        self,
        db: Database,
        feed_parser: FeedParser,
        transcription: "TranscriptionService | None" = None,
        encryption_key: str | None = None,
        max_failures: int = MAX_CONSECUTIVE_FAILURES,
        clock=utc_now,
    ):
        self.db = db
        self.feed_parser = feed_parser
        self.transcription = transcription
        self.encryption_key = encryption_key
        self.max_failures = max_failures
        self.clock = clock

    def _auth_header(self, subscription: DBSubscription) -> str | None:
        if not subscription.feed_auth_header_encrypted:
            return None
        try:
            return decrypt_feed_credential(subscription.feed_auth_header_encrypted, self.encryption_key)
        except FeedEncryptionError as e:
            # Public feeds behind a stale credential still work without it
            logger.error(f"Failed to decrypt credentials for subscription {subscription.id}: {e}")
            return None

    async def check_subscription(
        self,
        subscription: DBSubscription,
        now: datetime,
        batcher: NotificationBatcher,
        report: PollReport,
    ):
        """Fetch one feed and record its outcome. Never raises for feed errors."""
        try:
            feed = await self.feed_parser.fetch(
                subscription.feed_url,
                subscription.feed_type,
                self._auth_header(subscription),
            )
        except Exception as e:
            self._record_failure(subscription, e, now, report)
            return

        report.checked += 1
        candidates = select_new_entries(feed.entries, subscription.last_item_date, subscription.feed_type)
        if not candidates:
            self.db.subscriptions.record_success(subscription.id, now)
            return

        inserted = self.db.feed_items.insert_new(
            subscription.id,
            subscription.user_id,
            [entry.to_row() for entry in candidates],
        )
        dated = [item.published_at for item in inserted if item.published_at is not None]
        self.db.subscriptions.record_success(subscription.id, now, max(dated) if dated else None)

        if inserted:
            report.new_items += len(inserted)
            batcher.add(subscription, inserted)
            logger.info(f"Subscription {subscription.id} ({subscription.name}): {len(inserted)} new items")

    def _record_failure(self, subscription: DBSubscription, exc: BaseException, now: datetime, report: PollReport):
        message = classify_feed_error(exc)
        updated = self.db.subscriptions.record_failure(subscription.id, message, now, self.max_failures)
        failures = updated.consecutive_failures if updated else subscription.consecutive_failures + 1
        report.failed += 1
        report.errors[subscription.id] = message
        logger.warning(
            f"Feed check failed for subscription {subscription.id} ({subscription.name}), "
            f"failure #{failures}: {message} ({type(exc).__name__}: {exc})"
        )
        if updated and not updated.is_active:
            report.deactivated += 1
            logger.warning(
                f"Auto-deactivated subscription {subscription.id} ({subscription.name}) "
                f"after {failures} consecutive failures"
            )

    async def poll(self, feed_type: str, now: datetime | None = None) -> PollReport:
        """
        Run one poll over due subscriptions of ``feed_type``.

        Raises:
            ValueError: If feed_type is unknown
        """
        if feed_type not in FEED_TYPES:
            raise ValueError(f"Unknown feed type: {feed_type}")

        now = now or self.clock()
        report = PollReport(feed_type)
        batcher = NotificationBatcher(self.db)

        due = self.db.subscriptions.get_due(feed_type, now, limit=MAX_SUBSCRIPTIONS_PER_RUN)
        if due:
            results = await asyncio.gather(
                *(self.check_subscription(sub, now, batcher, report) for sub in due),
                return_exceptions=True,
            )
            for subscription, result in zip(due, results):
                if isinstance(result, BaseException):
                    logger.error(
                        f"Unexpected error checking subscription {subscription.id}: {result}",
                        exc_info=result,
                    )
                    report.failed += 1

            report.users_notified = batcher.flush(feed_type)

        if feed_type == "podcast" and self.transcription is not None:
            recovery = await self.transcription.recover_stuck(now)
            report.recovery = recovery.to_dict()

        logger.info(f"Poll ({feed_type}): {report.to_dict()}")
        return report
