"""
Subscription tier limits and feature flags.

Limits are a pure function of the effective tier. The effective tier comes
from the stored tier plus the day-pass expiry: an expired day pass silently
downgrades to free.
"""

import math
from datetime import datetime, timezone

FREE = "free"
STARTER = "starter"
PRO = "pro"
DAY_PASS = "day_pass"

UNLIMITED = math.inf

# Metered counters on the usage_tracking table
USAGE_FIELDS = (
    "analyses_count",
    "chat_messages_count",
    "share_links_count",
    "exports_count",
    "bookmarks_count",
)

# Monthly limits per tier
TIER_LIMITS: dict[str, dict[str, float]] = {
    FREE: {
        "analyses_count": 5,
        "chat_messages_count": 10,
        "share_links_count": 0,
        "exports_count": 0,
        "bookmarks_count": 5,
    },
    STARTER: {
        "analyses_count": 50,
        "chat_messages_count": UNLIMITED,
        "share_links_count": 10,
        "exports_count": 50,
        "bookmarks_count": 50,
    },
    PRO: {field: UNLIMITED for field in USAGE_FIELDS},
    DAY_PASS: {
        "analyses_count": 15,
        "chat_messages_count": UNLIMITED,
        "share_links_count": 5,
        "exports_count": 10,
        "bookmarks_count": 15,
    },
}

# Non-metered feature gates
TIER_FEATURES: dict[str, dict[str, bool]] = {
    FREE: {"multi_language_analysis": False, "share_links": False, "exports": False},
    STARTER: {"multi_language_analysis": True, "share_links": True, "exports": True},
    PRO: {"multi_language_analysis": True, "share_links": True, "exports": True},
    DAY_PASS: {"multi_language_analysis": True, "share_links": True, "exports": True},
}


def _parse_timestamp(value: str | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_tier(
    raw_tier: str | None,
    day_pass_expires_at: str | datetime | None = None,
    now: datetime | None = None,
) -> str:
    """Return the effective tier for a stored tier value."""
    if raw_tier in (STARTER, PRO):
        return raw_tier
    if raw_tier == DAY_PASS:
        expires = _parse_timestamp(day_pass_expires_at)
        now = now or datetime.now(timezone.utc)
        if expires is not None and expires > now:
            return DAY_PASS
    return FREE


def get_limit(tier: str, field: str) -> float:
    """Get the limit for a usage field; raises KeyError for unknown fields."""
    if field not in USAGE_FIELDS:
        raise KeyError(f"Unknown usage field: {field}")
    return TIER_LIMITS.get(tier, TIER_LIMITS[FREE])[field]


def has_feature(tier: str, feature: str) -> bool:
    return TIER_FEATURES.get(tier, TIER_FEATURES[FREE]).get(feature, False)


def current_period(now: datetime | None = None) -> str:
    """Billing period string (YYYY-MM, UTC)."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m")
