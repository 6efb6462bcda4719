"""
Subscription service: business logic for podcast and YouTube feed subscriptions.

Handles subscribing (with feed validation and credential encryption),
listing, unsubscribing and reactivation.
"""

import logging
import sqlite3

from fastapi import HTTPException

from ..database import Database, DBSubscription
from ..exceptions import require_subscription
from ..feed_encryption import FeedEncryptionError, encrypt_feed_credential
from ..feeds import FeedParser, classify_feed_error
from ..url_validator import validate_url
from .feed_poller import FEED_TYPES

logger = logging.getLogger(__name__)

MAX_SUBSCRIPTIONS_PER_USER = 100


class SubscriptionService:
    """Service for feed subscription business logic."""

    def __init__(
        self,
        db: Database,
        feed_parser: FeedParser | None = None,
        encryption_key: str | None = None,
        resolve_dns: bool = True,
    ):
        self.db = db
        self.feed_parser = feed_parser
        self.encryption_key = encryption_key
        self.resolve_dns = resolve_dns

    def list_subscriptions(self, user_id: int, feed_type: str | None = None) -> list[DBSubscription]:
        return self.db.subscriptions.list_for_user(user_id, feed_type)

    async def subscribe(
        self,
        user_id: int,
        feed_type: str,
        feed_url: str,
        name: str | None = None,
        auth_header: str | None = None,
        check_frequency_hours: int = 24,
    ) -> DBSubscription:
        """
        Subscribe to a feed after checking it parses.

        Raises:
            HTTPException: 400 for an unknown type, an unreachable or invalid
                feed, or a duplicate; 500 if credentials cannot be encrypted
        """
        if feed_type not in FEED_TYPES:
            raise HTTPException(status_code=400, detail=f"Unknown feed type: {feed_type}")
        if not self.feed_parser:
            raise HTTPException(status_code=500, detail="Feed parser not initialized")
        if len(self.db.subscriptions.list_for_user(user_id)) >= MAX_SUBSCRIPTIONS_PER_USER:
            raise HTTPException(status_code=400, detail=f"Maximum {MAX_SUBSCRIPTIONS_PER_USER} subscriptions")

        feed_url = await validate_url(feed_url, resolve_dns=self.resolve_dns)

        # Validate the feed by fetching it
        try:
            feed = await self.feed_parser.fetch(feed_url, feed_type, auth_header)
        except Exception as e:
            raise HTTPException(status_code=400, detail=f"Invalid feed URL: {classify_feed_error(e)}")

        encrypted = None
        if auth_header:
            try:
                encrypted = encrypt_feed_credential(auth_header, self.encryption_key)
            except FeedEncryptionError as e:
                logger.error(f"Cannot store feed credentials: {e}")
                raise HTTPException(status_code=500, detail="Private feeds are not configured")

        try:
            subscription_id = self.db.subscriptions.add(
                user_id,
                feed_type,
                feed_url,
                name or feed.title,
                check_frequency_hours=check_frequency_hours,
                auth_header_encrypted=encrypted,
            )
        except sqlite3.IntegrityError:
            raise HTTPException(status_code=400, detail="Already subscribed to this feed")

        logger.info(f"User {user_id} subscribed to {feed_type} feed {subscription_id}")
        return require_subscription(self.db.subscriptions.get(subscription_id))

    def unsubscribe(self, subscription_id: int, user_id: int) -> None:
        """
        Raises:
            HTTPException: If the subscription is not found for this user
        """
        if not self.db.subscriptions.delete(subscription_id, user_id):
            raise HTTPException(status_code=404, detail="Subscription not found")

    def reactivate(self, subscription_id: int, user_id: int) -> DBSubscription:
        """Re-enable a subscription deactivated after repeated failures."""
        if not self.db.subscriptions.reactivate(subscription_id, user_id):
            raise HTTPException(status_code=404, detail="Subscription not found")
        return require_subscription(self.db.subscriptions.get(subscription_id))
