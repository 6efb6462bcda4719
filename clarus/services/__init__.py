"""
Service layer for business logic.

Services encapsulate business logic, keeping routes as thin HTTP adapters.
Each service receives its dependencies via constructor injection.

Usage in routes:
    from ..services import SubscriptionServiceDep

    @router.get("/subscriptions")
    async def list_subscriptions(
        service: SubscriptionServiceDep,
        user_id: Annotated[int, Depends(get_current_user)]
    ):
        return service.list_subscriptions(user_id)
"""

from typing import Annotated

from fastapi import Depends

from ..config import (
    config,
    state,
    get_db,
    get_content_service,
    get_feed_poller,
    get_translation_service,
)
from ..database import Database

from .content_service import ContentService, ProcessResult
from .feed_poller import FeedPoller, PollReport, select_new_entries
from .subscription_service import SubscriptionService
from .translation_service import TranslationOutcome, TranslationService

__all__ = [
    # Services
    "ContentService",
    "FeedPoller",
    "SubscriptionService",
    "TranslationService",
    # Results
    "PollReport",
    "ProcessResult",
    "TranslationOutcome",
    "select_new_entries",
    # Dependency factories
    "get_subscription_service",
    # Type aliases for dependency injection
    "ContentServiceDep",
    "FeedPollerDep",
    "SubscriptionServiceDep",
    "TranslationServiceDep",
]


def get_subscription_service(db: Annotated[Database, Depends(get_db)]) -> SubscriptionService:
    """Dependency to get SubscriptionService instance."""
    return SubscriptionService(
        db=db,
        feed_parser=state.feed_parser,
        encryption_key=config.FEED_ENCRYPTION_KEY or None,
    )


ContentServiceDep = Annotated[ContentService, Depends(get_content_service)]
FeedPollerDep = Annotated[FeedPoller, Depends(get_feed_poller)]
SubscriptionServiceDep = Annotated[SubscriptionService, Depends(get_subscription_service)]
TranslationServiceDep = Annotated[TranslationService, Depends(get_translation_service)]
