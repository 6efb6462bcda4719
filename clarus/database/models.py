"""
Database models - dataclasses for database entities.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Main analysis sections, in status-progression order
SECTION_ORDER = (
    "brief_overview",
    "triage",
    "truth_check",
    "action_items",
    "mid_length_summary",
    "detailed_summary",
)

# Status reached once every section up to and including the key is present
SECTION_STATUSES = {
    "brief_overview": "overview_complete",
    "triage": "triage_complete",
    "truth_check": "truth_check_complete",
    "action_items": "action_items_complete",
    "mid_length_summary": "short_summary_complete",
    "detailed_summary": "complete",
}

# Sections persisted as JSON documents rather than plain text
JSON_SECTIONS = frozenset({"triage", "truth_check", "action_items"})

FAILURE_PREFIX = "PROCESSING_FAILED::"


@dataclass
class DBUser:
    id: int
    email: str
    name: str | None
    tier: str
    day_pass_expires_at: str | None
    created_at: datetime


@dataclass
class DBContent:
    id: int
    user_id: int
    url: str
    type: str
    title: str | None
    full_text: str | None
    processing_status: str
    date_added: datetime
    author: str | None = None
    description: str | None = None
    thumbnail_url: str | None = None
    duration: int | None = None
    tags: list[str] = field(default_factory=list)
    detected_tone: str | None = None
    analysis_language: str = "en"
    podcast_transcript_id: str | None = None
    transcript_submitted_at: datetime | None = None
    speaker_count: int | None = None

    @property
    def has_failed(self) -> bool:
        return bool(self.full_text) and self.full_text.startswith(FAILURE_PREFIX)

    @property
    def has_text(self) -> bool:
        return bool(self.full_text) and not self.has_failed


@dataclass
class DBSummary:
    id: int
    content_id: int
    user_id: int | None
    language: str
    processing_status: str
    model_name: str | None
    brief_overview: str | None = None
    triage: dict | None = None
    truth_check: dict | None = None
    action_items: list | None = None
    mid_length_summary: str | None = None
    detailed_summary: str | None = None
    failed_sections: list[str] = field(default_factory=list)
    updated_at: datetime | None = None

    def sections(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in SECTION_ORDER}


@dataclass
class DBSubscription:
    id: int
    user_id: int
    feed_type: str
    feed_url: str
    name: str
    check_frequency_hours: int
    last_checked_at: datetime | None
    last_item_date: datetime | None
    consecutive_failures: int
    last_error: str | None
    is_active: bool
    feed_auth_header_encrypted: str | None = None


@dataclass
class DBFeedItem:
    id: int
    subscription_id: int
    user_id: int
    item_url: str
    title: str
    published_at: datetime | None
    description: str | None = None
    duration_seconds: int | None = None
    thumbnail_url: str | None = None
    video_id: str | None = None
    is_notified: bool = False


@dataclass
class DBUsage:
    user_id: int
    period: str
    analyses_count: int = 0
    chat_messages_count: int = 0
    share_links_count: int = 0
    exports_count: int = 0
    bookmarks_count: int = 0


@dataclass
class DBApiUsage:
    id: int
    api_name: str
    operation: str
    status: str
    model_name: str | None
    tokens_input: int
    tokens_output: int
    response_time_ms: int | None
    content_id: int | None = None
    user_id: int | None = None
    error_message: str | None = None


@dataclass
class DBNotification:
    id: int
    user_id: int
    title: str
    body: str
    payload: dict | None
    is_read: bool
    created_at: datetime
