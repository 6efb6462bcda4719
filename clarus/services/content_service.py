"""
Content service: submission and end-to-end processing of content items.

Handles URL validation and classification, extraction (or transcription
submission for podcasts), quota enforcement, reuse of other users' recent
analyses of the same URL, content screening and the hand-off to the
analysis orchestrator.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from fastapi import HTTPException

from ..content_screening import BLOCKED_MESSAGE, screen_content
from ..database import Database, DBContent, DBSummary
from ..database.converters import utc_now
from ..exceptions import (
    ErrorKind,
    ProcessContentError,
    classify_error,
    require_content,
    user_friendly_error,
)
from ..extractors import (
    STAGE_LABELS,
    ContentType,
    ExtractionDispatcher,
    ExtractionError,
    FailureReason,
    detect_paywall_truncation,
    failure_sentinel,
)
from ..languages import DEFAULT_LANGUAGE, is_valid_language
from ..tier_limits import has_feature
from ..url_validator import validate_url

if TYPE_CHECKING:
    from ..analysis import AnalysisOrchestrator
    from ..transcription import TranscriptionService
    from ..usage import UsageGate

logger = logging.getLogger(__name__)

_KIND_BY_REASON = {
    FailureReason.NETWORK: ErrorKind.TRANSIENT,
    FailureReason.TIMEOUT: ErrorKind.TRANSIENT,
    FailureReason.BLOCKED: ErrorKind.PROVIDER_REJECTED,
    FailureReason.EMPTY: ErrorKind.PERMANENT_INPUT,
    FailureReason.UNSUPPORTED: ErrorKind.PERMANENT_INPUT,
}

# Days another user's analysis of the same URL stays reusable
CACHE_STALENESS_DAYS = {
    ContentType.ARTICLE.value: 3,
    ContentType.SOCIAL_POST.value: 3,
    ContentType.VIDEO.value: 14,
    ContentType.PODCAST.value: 14,
}
DEFAULT_CACHE_STALENESS_DAYS = 7

SCREENING_STAGE = "SCREENING"
CONTENT_POLICY_VIOLATION = "CONTENT_POLICY_VIOLATION"


@dataclass
class ProcessResult:
    content_id: int
    status: str
    language: str = DEFAULT_LANGUAGE
    cached: bool = False
    transcript_id: str | None = None
    failed_sections: list[str] = field(default_factory=list)
    paywall_warning: str | None = None


@dataclass
class CacheHit:
    """Another user's item for the same URL; summary is set for a full hit."""
    source: DBContent
    summary: DBSummary | None = None


class ContentService:
    """Service for content processing business logic."""

    def __init__(
        self,
        db: Database,
        dispatcher: ExtractionDispatcher,
        orchestrator: "AnalysisOrchestrator | None" = None,
        transcription: "TranscriptionService | None" = None,
        usage_gate: "UsageGate | None" = None,
        resolve_dns: bool = True,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.orchestrator = orchestrator
        self.transcription = transcription
        self.usage_gate = usage_gate
        self.resolve_dns = resolve_dns

    # ─────────────────────────────────────────────────────────────
    # Submission
    # ─────────────────────────────────────────────────────────────

    async def create(self, user_id: int, url: str, title: str | None = None) -> DBContent:
        """Validate and classify a URL, then store a pending content item."""
        url = await validate_url(url, resolve_dns=self.resolve_dns)
        content_type = self.dispatcher.classify(url)
        content_id = self.db.content.create(user_id, url, content_type.value, title)
        logger.info(f"Created content {content_id} ({content_type.value}) for user {user_id}")
        return self.db.content.get(content_id)

    def get_owned(self, content_id: int, user_id: int | None) -> DBContent:
        """Content item owned by ``user_id`` (any owner when None), else 404."""
        content = require_content(self.db.content.get(content_id))
        if user_id is not None and content.user_id != user_id:
            # Not revealing that the item exists
            raise HTTPException(status_code=404, detail="Content not found")
        return content

    # ─────────────────────────────────────────────────────────────
    # Processing
    # ─────────────────────────────────────────────────────────────

    def _check_preconditions(self, content: DBContent, user_id: int | None, language: str):
        """Feature gating then quota; quota is charged last."""
        if user_id is None or self.usage_gate is None:
            return
        tier = self.usage_gate.get_tier(user_id)
        if language != DEFAULT_LANGUAGE and not has_feature(tier, "multi_language_analysis"):
            raise ProcessContentError(
                "Analysis in other languages requires a paid plan",
                ErrorKind.QUOTA_EXCEEDED,
                upgrade_required=True,
                tier=tier,
            )
        check = self.usage_gate.check_and_increment(user_id, "analyses_count")
        if not check.allowed:
            raise ProcessContentError(
                f"Monthly analysis limit reached ({int(check.limit)} on the {check.tier} plan)",
                ErrorKind.QUOTA_EXCEEDED,
                upgrade_required=True,
                tier=check.tier,
            )

    def _record_extraction_failure(self, content: DBContent, language: str, error: ExtractionError):
        stage = STAGE_LABELS[ContentType(content.type)]
        self.db.content.set_full_text(content.id, failure_sentinel(stage, error.reason.value))
        self.db.content.update(content.id, processing_status="error")
        message = user_friendly_error(content.type, classify_error(error.message))
        self.db.summaries.mark_error(content.id, content.user_id, language, message)
        logger.warning(f"Extraction failed for content {content.id}: {error.reason.value}: {error.message}")
        return message

    async def extract(self, content: DBContent, language: str = DEFAULT_LANGUAGE) -> DBContent:
        """
        Extract text for a non-podcast item and store it with its metadata.

        Raises:
            ProcessContentError: After the failure sentinel has been written
        """
        self.db.content.update(content.id, processing_status="extracting")
        try:
            result = await self.dispatcher.extract(content.url, content.type, content.id)
        except ExtractionError as e:
            message = self._record_extraction_failure(content, language, e)
            raise ProcessContentError(message, _KIND_BY_REASON[e.reason]) from e

        self.db.content.set_full_text(content.id, result.full_text)
        metadata = {
            "title": content.title or result.title,
            "author": result.author,
            "description": result.description,
            "thumbnail_url": result.thumbnail_url,
            "duration": result.duration,
        }
        self.db.content.update(content.id, **{k: v for k, v in metadata.items() if v is not None})
        return self.db.content.get(content.id)

    # ─────────────────────────────────────────────────────────────
    # Shared analysis cache
    # ─────────────────────────────────────────────────────────────

    def find_cached_analysis(self, content: DBContent, language: str) -> CacheHit | None:
        """
        Most recent reusable item another user submitted for the same URL.

        A candidate with a complete summary in ``language`` is a full hit;
        otherwise the newest candidate supplies its text only.
        """
        days = CACHE_STALENESS_DAYS.get(content.type, DEFAULT_CACHE_STALENESS_DAYS)
        candidates = self.db.content.find_cache_candidates(
            content.url, content.user_id, utc_now() - timedelta(days=days)
        )
        if not candidates:
            return None
        for candidate in candidates:
            summary = self.db.summaries.get(candidate.id, language)
            if summary and summary.processing_status == "complete":
                return CacheHit(candidate, summary)
        return CacheHit(candidates[0])

    def apply_cache_hit(self, content: DBContent, hit: CacheHit, language: str) -> DBContent:
        """Copy text and metadata (and the summary on a full hit) onto ``content``."""
        source = hit.source
        metadata = {
            "title": content.title or source.title,
            "author": source.author,
            "description": source.description,
            "thumbnail_url": source.thumbnail_url,
            "duration": source.duration,
            "detected_tone": source.detected_tone,
        }
        self.db.content.set_full_text(content.id, source.full_text)
        self.db.content.update(content.id, **{k: v for k, v in metadata.items() if v is not None})

        if hit.summary is not None:
            self.db.content.set_tags(content.id, source.tags)
            self.db.summaries.start_analysis(content.id, content.user_id, language, hit.summary.model_name)
            self.db.summaries.save_translation(content.id, language, hit.summary.sections(), hit.summary.model_name)
            self.db.content.update(content.id, analysis_language=language, processing_status="complete")
            logger.info(f"Content {content.id} served from cached analysis of content {source.id}")
        else:
            logger.info(f"Content {content.id} reusing text of content {source.id}")
        return self.db.content.get(content.id)

    # ─────────────────────────────────────────────────────────────
    # Screening
    # ─────────────────────────────────────────────────────────────

    def screen(self, content: DBContent, language: str):
        """
        Block items that fail content screening before any AI call.

        Raises:
            ProcessContentError: After the item is marked refused
        """
        result = screen_content(content.url, content.full_text)
        if not result.blocked:
            return
        self.db.content.set_full_text(content.id, failure_sentinel(SCREENING_STAGE, CONTENT_POLICY_VIOLATION))
        self.db.content.update(content.id, processing_status="refused")
        self.db.summaries.mark_error(content.id, content.user_id, language, BLOCKED_MESSAGE, status="refused")
        raise ProcessContentError(BLOCKED_MESSAGE, ErrorKind.PERMANENT_INPUT)

    async def process(
        self,
        content_id: int,
        user_id: int | None = None,
        language: str = DEFAULT_LANGUAGE,
        force: bool = False,
    ) -> ProcessResult:
        """
        Extract (or submit for transcription) and analyze a content item.

        Args:
            content_id: Content item ID
            user_id: Calling user; None for internal triggers, which skip
                ownership and quota checks
            language: Analysis language code
            force: Re-run even when a completed analysis exists

        Raises:
            ProcessContentError: On invalid input, quota, or extraction failure
        """
        if not is_valid_language(language):
            raise ProcessContentError(f"Unsupported language: {language}", ErrorKind.PERMANENT_INPUT)

        content = self.get_owned(content_id, user_id)

        existing = self.db.summaries.get(content.id, language)
        if existing and existing.processing_status == "complete" and not force:
            return ProcessResult(content.id, "complete", language, cached=True)
        if content.processing_status == "transcribing" and content.full_text is None:
            return ProcessResult(content.id, "transcribing", language,
                                 transcript_id=content.podcast_transcript_id)

        self._check_preconditions(content, user_id, language)

        # A previous failure is retried from scratch
        if content.has_failed:
            self.db.content.set_full_text(content.id, None)
            content = self.db.content.get(content.id)

        if not content.has_text:
            hit = self.find_cached_analysis(content, language)
            if hit is not None:
                content = self.apply_cache_hit(content, hit, language)
                if hit.summary is not None:
                    warning = detect_paywall_truncation(content.url, content.full_text, content.type)
                    return ProcessResult(content.id, "complete", language, cached=True, paywall_warning=warning)

        if not content.has_text:
            if content.type == ContentType.PODCAST.value:
                return await self._submit_transcription(content, language)
            content = await self.extract(content, language)

        self.screen(content, language)
        paywall_warning = detect_paywall_truncation(content.url, content.full_text, content.type)

        if self.orchestrator is None:
            raise ProcessContentError("AI analysis is not configured", ErrorKind.INTERNAL)
        result = await self.orchestrator.analyze(content.id, language, user_id)
        return ProcessResult(
            content.id,
            result.status,
            language,
            failed_sections=result.failed_sections,
            paywall_warning=paywall_warning,
        )

    async def _submit_transcription(self, content: DBContent, language: str) -> ProcessResult:
        if self.transcription is None:
            error = ExtractionError(FailureReason.UNSUPPORTED, "Podcast transcription is not configured")
            raise ProcessContentError(self._record_extraction_failure(content, language, error),
                                      ErrorKind.PERMANENT_INPUT)
        self.db.content.update(content.id, analysis_language=language)
        try:
            transcript_id = await self.transcription.submit(content)
        except ExtractionError as e:
            message = self._record_extraction_failure(content, language, e)
            raise ProcessContentError(message, _KIND_BY_REASON[e.reason]) from e
        return ProcessResult(content.id, "transcribing", language, transcript_id=transcript_id)

    async def analyze_transcribed(self, content_id: int):
        """Callback for the transcription service once a transcript is saved."""
        content = self.db.content.get(content_id)
        if content is None or self.orchestrator is None:
            return None
        language = content.analysis_language or DEFAULT_LANGUAGE
        try:
            self.screen(content, language)
        except ProcessContentError:
            logger.warning(f"Transcript of content {content.id} blocked by content screening")
            return None
        return await self.orchestrator.analyze(content.id, language)

    async def process_in_background(self, content_id: int, user_id: int | None, language: str):
        """BackgroundTasks entry point; errors are already recorded on the item."""
        try:
            await self.process(content_id, user_id, language)
        except ProcessContentError as e:
            logger.info(f"Background processing of content {content_id} stopped: {e.message}")
        except Exception as e:
            logger.error(f"Background processing of content {content_id} failed: {e}", exc_info=True)
            self.db.content.update(content_id, processing_status="error")
