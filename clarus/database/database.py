"""
Database facade - provides unified access to all repositories.
"""

from pathlib import Path

from .connection import DatabaseConnection
from .user_repository import UserRepository
from .content_repository import ContentRepository
from .summary_repository import SummaryRepository
from .subscription_repository import SubscriptionRepository, FeedItemRepository
from .usage_repository import UsageRepository
from .api_usage_repository import ApiUsageRepository
from .notification_repository import NotificationRepository


class Database:
    """
    Unified database access facade.

    Repositories are exposed as attributes (``db.content``, ``db.summaries``...).
    """

    def __init__(self, db_path: Path):
        self._connection = DatabaseConnection(db_path)

        # Initialize repositories
        self.users = UserRepository(self._connection)
        self.content = ContentRepository(self._connection)
        self.summaries = SummaryRepository(self._connection)
        self.subscriptions = SubscriptionRepository(self._connection)
        self.feed_items = FeedItemRepository(self._connection)
        self.usage = UsageRepository(self._connection)
        self.api_usage = ApiUsageRepository(self._connection)
        self.notifications = NotificationRepository(self._connection)
