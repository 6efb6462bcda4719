"""
Two-phase transcription workflow.

    submitted ─► awaiting_webhook ─► completed | failed
                        │
                        └─(grace window elapsed)─► recovery_polling ─► recovered | permanently_failed

The webhook is not the only path to a terminal state: reconcile() polls the
provider for one stuck item and recover_stuck() runs it over a bounded batch
on a schedule. Every transcript write is conditional on full_text still
being empty, so a late webhook and a recovery poll can race safely and the
analysis callback fires at most once per transcript.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from ..database import Database, DBContent
from ..database.converters import utc_now
from ..extractors.base import ExtractionError, FailureReason, failure_sentinel
from .assemblyai import (
    STATUS_COMPLETED,
    STATUS_ERROR,
    AssemblyAIClient,
    TranscriptJob,
    format_transcript,
)

if TYPE_CHECKING:
    from ..api_usage import ApiUsageLogger

logger = logging.getLogger(__name__)

STAGE = "TRANSCRIPTION"

RECOVERY_GRACE = timedelta(minutes=20)
RECOVERY_TIMEOUT = timedelta(hours=2)
RECOVERY_SCAN_LIMIT = 10
RECOVERY_BATCH_SIZE = 5

TIMEOUT_SENTINEL = failure_sentinel(STAGE, "TRANSCRIPTION_TIMEOUT")
EMPTY_SENTINEL = failure_sentinel(STAGE, "Empty transcript")

TIMEOUT_MESSAGE = (
    "Transcription timed out. The audio may have been too large or the "
    "service was unavailable. Please try again."
)


class TranscriptionState(str, Enum):
    SUBMITTED = "submitted"
    AWAITING_WEBHOOK = "awaiting_webhook"
    RECOVERY_POLLING = "recovery_polling"
    COMPLETED = "completed"
    FAILED = "failed"


class WebhookOutcome(str, Enum):
    SAVED = "saved"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class ReconcileOutcome(str, Enum):
    RECOVERED = "recovered"
    FAILED = "failed"
    PENDING = "pending"
    SKIPPED = "skipped"


@dataclass
class RecoveryReport:
    recovered: int = 0
    failed: int = 0
    pending: int = 0
    deferred: int = 0

    def to_dict(self) -> dict:
        return {
            "recovered": self.recovered,
            "failed": self.failed,
            "pending": self.pending,
            "deferred": self.deferred,
        }


def failure_message(detail: str | None) -> str:
    return f"Transcription failed: {detail or 'Unknown error'}. Please try again."


def state_of(content: DBContent, now: datetime | None = None) -> TranscriptionState:
    """Derive the transcription state of a podcast item from its stored fields."""
    if content.has_failed:
        return TranscriptionState.FAILED
    if content.has_text:
        return TranscriptionState.COMPLETED
    if not content.podcast_transcript_id or content.transcript_submitted_at is None:
        return TranscriptionState.SUBMITTED
    now = now or utc_now()
    if now - content.transcript_submitted_at > RECOVERY_GRACE:
        return TranscriptionState.RECOVERY_POLLING
    return TranscriptionState.AWAITING_WEBHOOK


class TranscriptionService:
    """
    Owns submission, webhook handling and recovery for podcast transcripts.

    Args:
        db: Database facade
        client: AssemblyAI client, None when no API key is configured
        on_transcribed: Awaited with the content id after a transcript is
            saved; typically starts AI analysis
        webhook_url: Callback URL passed to AssemblyAI on submit
        usage_logger: Cost accounting sink
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        db: Database,
        client: AssemblyAIClient | None,
        on_transcribed: Callable[[int], Awaitable[Any]] | None = None,
        webhook_url: str | None = None,
        usage_logger: "ApiUsageLogger | None" = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.client = client
        self.on_transcribed = on_transcribed
        self.webhook_url = webhook_url
        self.usage_logger = usage_logger
        self.clock = clock

    # ─────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────

    async def submit(self, content: DBContent) -> str:
        """
        Submit a podcast's audio and move it to awaiting_webhook.

        Raises:
            ExtractionError: If no client is configured or submission fails
        """
        if self.client is None:
            raise ExtractionError(
                FailureReason.UNSUPPORTED,
                "Podcast transcription is not configured",
            )
        transcript_id = await self.client.submit(content.url, self.webhook_url)
        self.db.content.mark_transcription_submitted(content.id, transcript_id, self.clock())
        if self.usage_logger:
            self.usage_logger.log(
                api_name="assemblyai",
                operation="submit",
                status="success",
                content_id=content.id,
                user_id=content.user_id,
            )
        return transcript_id

    # ─────────────────────────────────────────────────────────────
    # Terminal writes (shared by webhook and recovery)
    # ─────────────────────────────────────────────────────────────

    def _fail(self, content: DBContent, sentinel: str, message: str) -> bool:
        if not self.db.content.set_full_text_if_empty(content.id, sentinel):
            return False
        self.db.content.update(content.id, processing_status="error")
        self.db.summaries.mark_error(content.id, content.user_id, content.analysis_language, message)
        logger.warning(f"Transcription for content {content.id} failed: {sentinel}")
        return True

    async def _complete(self, content: DBContent, job: TranscriptJob) -> bool:
        """Save a finished transcript. Returns True if this call wrote it."""
        formatted = format_transcript(job)
        if not formatted.full_text:
            self._fail(content, EMPTY_SENTINEL, failure_message("Empty transcript"))
            return False

        saved = self.db.content.set_full_text_if_empty(
            content.id,
            formatted.full_text,
            duration=formatted.duration_seconds,
            speaker_count=formatted.speaker_count,
        )
        if not saved:
            logger.info(f"Transcript for content {content.id} already saved; skipping")
            return False

        logger.info(
            f"Transcript ready for content {content.id}: {formatted.duration_seconds}s, "
            f"{formatted.speaker_count} speakers, {len(formatted.full_text)} chars"
        )
        if self.usage_logger:
            # Billed per second of audio
            self.usage_logger.log(
                api_name="assemblyai",
                operation="transcribe",
                status="success",
                tokens_input=formatted.duration_seconds,
                content_id=content.id,
                user_id=content.user_id,
            )
        await self._trigger_analysis(content.id)
        return True

    async def _trigger_analysis(self, content_id: int):
        if self.on_transcribed is None:
            return
        try:
            await self.on_transcribed(content_id)
        except Exception as e:
            # The transcript is saved; analysis can be retried on its own
            logger.error(f"Analysis after transcription failed for content {content_id}: {e}")

    # ─────────────────────────────────────────────────────────────
    # Webhook path
    # ─────────────────────────────────────────────────────────────

    async def handle_webhook(self, content: DBContent, job: TranscriptJob) -> WebhookOutcome:
        """
        Apply a webhook delivery to its content item. Idempotent.

        AssemblyAI webhooks normally carry only id and status; utterances are
        fetched from the API when the body does not include them.
        """
        if content.full_text:
            logger.info(f"Duplicate webhook for content {content.id}; already resolved")
            return WebhookOutcome.DUPLICATE

        if job.status == STATUS_ERROR:
            wrote = self._fail(content, failure_sentinel(STAGE, job.error or "Unknown error"),
                               failure_message(job.error))
            return WebhookOutcome.FAILED if wrote else WebhookOutcome.DUPLICATE

        if job.status != STATUS_COMPLETED:
            logger.info(f"Ignoring webhook for content {content.id} with status {job.status!r}")
            return WebhookOutcome.IGNORED

        if not job.utterances and self.client is not None:
            job = await self.client.get_transcript(job.id)

        saved = await self._complete(content, job)
        if not saved:
            refreshed = self.db.content.get(content.id)
            if refreshed and refreshed.has_failed and refreshed.full_text == EMPTY_SENTINEL:
                return WebhookOutcome.FAILED
            return WebhookOutcome.DUPLICATE
        return WebhookOutcome.SAVED

    # ─────────────────────────────────────────────────────────────
    # Recovery path
    # ─────────────────────────────────────────────────────────────

    async def reconcile(self, content: DBContent, now: datetime | None = None) -> ReconcileOutcome:
        """
        Resolve one stuck transcription by polling the provider.

        Past the timeout, or without credentials, the item is failed
        permanently without a poll.
        """
        now = now or self.clock()
        if content.full_text or not content.podcast_transcript_id:
            return ReconcileOutcome.SKIPPED

        submitted_at = content.transcript_submitted_at or now
        age = now - submitted_at

        if age >= RECOVERY_TIMEOUT or self.client is None:
            self._fail(content, TIMEOUT_SENTINEL, TIMEOUT_MESSAGE)
            return ReconcileOutcome.FAILED

        job = await self.client.get_transcript(content.podcast_transcript_id)
        if job.status == STATUS_COMPLETED:
            saved = await self._complete(content, job)
            if saved:
                logger.info(f"Recovered transcript for content {content.id} (webhook lost)")
                return ReconcileOutcome.RECOVERED
            refreshed = self.db.content.get(content.id)
            return ReconcileOutcome.FAILED if refreshed and refreshed.has_failed else ReconcileOutcome.SKIPPED
        if job.status == STATUS_ERROR:
            self._fail(content, failure_sentinel(STAGE, job.error or "Unknown error"),
                       failure_message(job.error))
            return ReconcileOutcome.FAILED
        return ReconcileOutcome.PENDING

    async def recover_stuck(self, now: datetime | None = None) -> RecoveryReport:
        """
        Reconcile stuck transcriptions past the grace window.

        At most RECOVERY_BATCH_SIZE items are processed per run, concurrently;
        the rest are deferred to the next run.
        """
        now = now or self.clock()
        stuck = self.db.content.find_stuck_transcriptions(now - RECOVERY_GRACE, limit=RECOVERY_SCAN_LIMIT)
        batch = stuck[:RECOVERY_BATCH_SIZE]
        report = RecoveryReport(deferred=len(stuck) - len(batch))
        if report.deferred:
            logger.info(f"Transcription recovery deferring {report.deferred} items to the next run")

        results = await asyncio.gather(
            *(self.reconcile(content, now) for content in batch),
            return_exceptions=True,
        )
        for content, result in zip(batch, results):
            if isinstance(result, BaseException):
                logger.error(f"Transcription recovery failed for content {content.id}: {result}")
                report.pending += 1
            elif result == ReconcileOutcome.RECOVERED:
                report.recovered += 1
            elif result == ReconcileOutcome.FAILED:
                report.failed += 1
            elif result == ReconcileOutcome.PENDING:
                report.pending += 1

        if batch:
            logger.info(f"Transcription recovery: {report.to_dict()}")
        return report
