"""
Database module - SQLite persistence for content, analyses, feeds and usage.

Uses repository pattern for better separation of concerns.
"""

from .connection import DatabaseConnection
from .models import (
    DBUser,
    DBContent,
    DBSummary,
    DBSubscription,
    DBFeedItem,
    DBUsage,
    DBApiUsage,
    DBNotification,
    SECTION_ORDER,
    SECTION_STATUSES,
    FAILURE_PREFIX,
)
from .content_repository import ContentRepository
from .summary_repository import SummaryRepository, progress_status
from .subscription_repository import SubscriptionRepository, FeedItemRepository
from .usage_repository import UsageRepository
from .database import Database

__all__ = [
    "Database",
    "DatabaseConnection",
    "DBUser",
    "DBContent",
    "DBSummary",
    "DBSubscription",
    "DBFeedItem",
    "DBUsage",
    "DBApiUsage",
    "DBNotification",
    "SECTION_ORDER",
    "SECTION_STATUSES",
    "FAILURE_PREFIX",
    "ContentRepository",
    "SummaryRepository",
    "SubscriptionRepository",
    "FeedItemRepository",
    "UsageRepository",
    "progress_status",
]
