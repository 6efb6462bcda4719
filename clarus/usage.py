"""
Usage quota gate.

check_and_increment is the last step before a metered action runs: callers
perform ownership and feature checks first, so a rejected request never
consumes quota.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from .tier_limits import normalize_tier, get_limit, current_period

if TYPE_CHECKING:
    from .database import Database

logger = logging.getLogger(__name__)


@dataclass
class UsageCheck:
    allowed: bool
    limit: float
    tier: str
    count: int = 0


class UsageGate:
    """Atomic per-user, per-period quota enforcement."""

    def __init__(self, db: "Database"):
        self.db = db

    def get_tier(self, user_id: int, now: datetime | None = None) -> str:
        user = self.db.users.get(user_id)
        if user is None:
            return normalize_tier(None)
        return normalize_tier(user.tier, user.day_pass_expires_at, now)

    def check_and_increment(
        self,
        user_id: int,
        field: str,
        now: datetime | None = None,
    ) -> UsageCheck:
        """
        Consume one unit of ``field`` if the user's tier allows it.

        Safe under concurrency: the limit comparison and the increment are a
        single conditional UPDATE.
        """
        tier = self.get_tier(user_id, now)
        limit = get_limit(tier, field)
        if limit <= 0:
            return UsageCheck(allowed=False, limit=limit, tier=tier)

        allowed, count = self.db.usage.increment_if_below(
            user_id, current_period(now), field, limit
        )
        if not allowed:
            logger.info(f"Usage limit reached for user {user_id}: {field} ({count}/{limit}, tier={tier})")
        return UsageCheck(allowed=allowed, limit=limit, tier=tier, count=count)
