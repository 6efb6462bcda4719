"""
Pydantic models for API request/response validation.
"""

from pydantic import BaseModel, Field

from .database import DBContent, DBSubscription, DBSummary
from .extractors import parse_failure_sentinel


# ─────────────────────────────────────────────────────────────
# Content Schemas
# ─────────────────────────────────────────────────────────────

class CreateContentRequest(BaseModel):
    """Request to submit a URL for analysis."""
    url: str = Field(..., max_length=2048)
    title: str | None = None
    language: str = "en"


class ProcessContentRequest(BaseModel):
    """Request to (re)process a content item."""
    language: str = "en"
    force: bool = False


class ContentResponse(BaseModel):
    """Content item metadata; the full text is never returned."""
    id: int
    url: str
    type: str
    title: str | None
    author: str | None = None
    description: str | None = None
    thumbnail_url: str | None = None
    duration: int | None = None
    tags: list[str] = []
    detected_tone: str | None = None
    analysis_language: str
    processing_status: str
    has_text: bool
    failure_stage: str | None = None
    failure_reason: str | None = None
    speaker_count: int | None = None
    date_added: str

    @classmethod
    def from_db(cls, content: DBContent) -> "ContentResponse":
        failure = parse_failure_sentinel(content.full_text)
        return cls(
            id=content.id,
            url=content.url,
            type=content.type,
            title=content.title,
            author=content.author,
            description=content.description,
            thumbnail_url=content.thumbnail_url,
            duration=content.duration,
            tags=content.tags,
            detected_tone=content.detected_tone,
            analysis_language=content.analysis_language,
            processing_status=content.processing_status,
            has_text=content.has_text,
            failure_stage=failure[0] if failure else None,
            failure_reason=failure[1] if failure else None,
            speaker_count=content.speaker_count,
            date_added=content.date_added.isoformat(),
        )


class ProcessResponse(BaseModel):
    """Outcome of a processing request."""
    content_id: int
    status: str
    language: str
    cached: bool = False
    transcript_id: str | None = None
    failed_sections: list[str] = []
    paywall_warning: str | None = None


class SummaryResponse(BaseModel):
    """A (possibly partial) analysis in one language."""
    content_id: int
    language: str
    processing_status: str
    brief_overview: str | None = None
    triage: dict | None = None
    truth_check: dict | None = None
    action_items: list | None = None
    mid_length_summary: str | None = None
    detailed_summary: str | None = None
    failed_sections: list[str] = []
    model_name: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_db(cls, summary: DBSummary) -> "SummaryResponse":
        return cls(
            content_id=summary.content_id,
            language=summary.language,
            processing_status=summary.processing_status,
            brief_overview=summary.brief_overview,
            triage=summary.triage,
            truth_check=summary.truth_check,
            action_items=summary.action_items,
            mid_length_summary=summary.mid_length_summary,
            detailed_summary=summary.detailed_summary,
            failed_sections=summary.failed_sections,
            model_name=summary.model_name,
            updated_at=summary.updated_at.isoformat() if summary.updated_at else None,
        )


# ─────────────────────────────────────────────────────────────
# Translation Schemas
# ─────────────────────────────────────────────────────────────

class TranslateRequest(BaseModel):
    """Request to translate an existing analysis."""
    language: str


class TranslationInProgressResponse(BaseModel):
    """Returned with 202 while a translation for the pair is running."""
    content_id: int
    language: str
    processing_status: str = "translating"
    retry_after_seconds: int = 5


# ─────────────────────────────────────────────────────────────
# Subscription Schemas
# ─────────────────────────────────────────────────────────────

class SubscribeRequest(BaseModel):
    """Request to subscribe to a podcast or YouTube feed."""
    feed_type: str = Field(..., pattern="^(podcast|youtube)$")
    feed_url: str = Field(..., max_length=2048)
    name: str | None = None
    auth_header: str | None = None
    check_frequency_hours: int = Field(default=24, ge=1, le=168)


class SubscriptionResponse(BaseModel):
    """A feed subscription; stored credentials are never returned."""
    id: int
    feed_type: str
    feed_url: str
    name: str
    check_frequency_hours: int
    last_checked_at: str | None
    last_item_date: str | None
    consecutive_failures: int
    last_error: str | None
    is_active: bool
    is_private: bool

    @classmethod
    def from_db(cls, subscription: DBSubscription) -> "SubscriptionResponse":
        return cls(
            id=subscription.id,
            feed_type=subscription.feed_type,
            feed_url=subscription.feed_url,
            name=subscription.name,
            check_frequency_hours=subscription.check_frequency_hours,
            last_checked_at=subscription.last_checked_at.isoformat() if subscription.last_checked_at else None,
            last_item_date=subscription.last_item_date.isoformat() if subscription.last_item_date else None,
            consecutive_failures=subscription.consecutive_failures,
            last_error=subscription.last_error,
            is_active=subscription.is_active,
            is_private=bool(subscription.feed_auth_header_encrypted),
        )


# ─────────────────────────────────────────────────────────────
# Webhook Schemas
# ─────────────────────────────────────────────────────────────

class WebhookAck(BaseModel):
    """Acknowledgement returned to the transcription provider."""
    received: bool = True
    outcome: str
