"""
Tests for podcast transcription: submission, webhooks and stuck-job recovery.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from clarus.extractors import ExtractionError, parse_failure_sentinel
from clarus.transcription import (
    RECOVERY_BATCH_SIZE,
    ReconcileOutcome,
    TranscriptionService,
    TranscriptionState,
    TranscriptJob,
    WebhookOutcome,
    format_transcript,
    state_of,
)
from clarus.transcription.state_machine import TIMEOUT_MESSAGE, TIMEOUT_SENTINEL

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

UTTERANCES = [
    {"speaker": "A", "start": 0, "text": "Welcome to the show."},
    {"speaker": "B", "start": 65_000, "text": "Thanks for having me."},
    {"speaker": "A", "start": 3_725_000, "text": "That's all for today."},
]


def _completed(transcript_id: str = "tr_1", utterances=None) -> TranscriptJob:
    return TranscriptJob(
        id=transcript_id,
        status="completed",
        utterances=UTTERANCES if utterances is None else utterances,
        audio_duration=3730.4,
    )


def _client(job: TranscriptJob | None = None) -> MagicMock:
    client = MagicMock()
    client.submit = AsyncMock(return_value="tr_1")
    client.get_transcript = AsyncMock(return_value=job or _completed())
    return client


@pytest.fixture
def podcast(test_db, user_id):
    """A podcast item submitted for transcription at T0."""
    cid = test_db.content.create(user_id, "https://cdn.example.com/ep1.mp3", "podcast")
    test_db.content.mark_transcription_submitted(cid, "tr_1", T0)
    return test_db.content.get(cid)


class TestFormatTranscript:
    """Tests for utterance rendering."""

    def test_speaker_paragraphs_with_timestamps(self):
        """Each utterance becomes a timestamped speaker paragraph."""
        formatted = format_transcript(_completed())
        paragraphs = formatted.full_text.split("\n\n")
        assert paragraphs[0] == "[0:00] Speaker A: Welcome to the show."
        assert paragraphs[1] == "[1:05] Speaker B: Thanks for having me."
        assert paragraphs[2] == "[1:02:05] Speaker A: That's all for today."
        assert formatted.speaker_count == 2
        assert formatted.duration_seconds == 3730

    def test_blank_utterances_skipped(self):
        formatted = format_transcript(_completed(utterances=[{"speaker": "A", "start": 0, "text": "  "}]))
        assert formatted.full_text == ""
        assert formatted.speaker_count == 0

    def test_job_from_webhook_payload(self):
        """Webhook bodies use transcript_id; API bodies use id."""
        assert TranscriptJob.from_payload({"transcript_id": "abc", "status": "COMPLETED"}).id == "abc"
        job = TranscriptJob.from_payload({"id": "xyz", "status": "error", "error": "bad audio"})
        assert job.id == "xyz"
        assert job.is_finished
        assert job.error == "bad audio"


class TestTranscriptionState:
    """Tests for the derived state of a podcast item."""

    def test_awaiting_then_recovery_polling(self, podcast):
        assert state_of(podcast, T0 + timedelta(minutes=5)) == TranscriptionState.AWAITING_WEBHOOK
        assert state_of(podcast, T0 + timedelta(minutes=25)) == TranscriptionState.RECOVERY_POLLING

    def test_terminal_states(self, test_db, podcast):
        test_db.content.set_full_text(podcast.id, "[0:00] Speaker A: Hi")
        assert state_of(test_db.content.get(podcast.id), T0) == TranscriptionState.COMPLETED
        test_db.content.set_full_text(podcast.id, TIMEOUT_SENTINEL)
        assert state_of(test_db.content.get(podcast.id), T0) == TranscriptionState.FAILED


class TestSubmit:
    """Tests for transcription submission."""

    @pytest.mark.asyncio
    async def test_submit_records_job(self, test_db, user_id):
        """Submitting stores the transcript id and moves to transcribing."""
        cid = test_db.content.create(user_id, "https://cdn.example.com/ep9.mp3", "podcast")
        client = _client()
        service = TranscriptionService(test_db, client, webhook_url="https://app/webhooks/assemblyai?token=t",
                                       clock=lambda: T0)

        transcript_id = await service.submit(test_db.content.get(cid))

        assert transcript_id == "tr_1"
        client.submit.assert_awaited_once_with(
            "https://cdn.example.com/ep9.mp3", "https://app/webhooks/assemblyai?token=t"
        )
        content = test_db.content.get_by_transcript_id("tr_1")
        assert content.id == cid
        assert content.processing_status == "transcribing"
        assert content.transcript_submitted_at == T0

    @pytest.mark.asyncio
    async def test_submit_without_client(self, test_db, podcast):
        """Submission without credentials is an extraction error."""
        with pytest.raises(ExtractionError):
            await TranscriptionService(test_db, None).submit(podcast)


class TestWebhook:
    """Tests for webhook handling."""

    @pytest.mark.asyncio
    async def test_completed_webhook_saves_and_triggers_analysis(self, test_db, podcast):
        """A completed delivery saves the transcript and starts analysis once."""
        on_transcribed = AsyncMock()
        service = TranscriptionService(test_db, _client(), on_transcribed=on_transcribed)

        outcome = await service.handle_webhook(podcast, _completed())

        assert outcome == WebhookOutcome.SAVED
        content = test_db.content.get(podcast.id)
        assert content.full_text.startswith("[0:00] Speaker A:")
        assert content.speaker_count == 2
        assert content.duration == 3730
        on_transcribed.assert_awaited_once_with(podcast.id)

    @pytest.mark.asyncio
    async def test_duplicate_webhook_is_idempotent(self, test_db, podcast):
        """A second delivery changes nothing and does not re-trigger analysis."""
        on_transcribed = AsyncMock()
        service = TranscriptionService(test_db, _client(), on_transcribed=on_transcribed)

        await service.handle_webhook(podcast, _completed())
        saved_text = test_db.content.get(podcast.id).full_text
        outcome = await service.handle_webhook(test_db.content.get(podcast.id), _completed())

        assert outcome == WebhookOutcome.DUPLICATE
        assert test_db.content.get(podcast.id).full_text == saved_text
        assert on_transcribed.await_count == 1

    @pytest.mark.asyncio
    async def test_webhook_without_utterances_fetches_transcript(self, test_db, podcast):
        """Status-only webhooks fetch the transcript from the API."""
        client = _client()
        service = TranscriptionService(test_db, client)

        outcome = await service.handle_webhook(podcast, TranscriptJob(id="tr_1", status="completed"))

        assert outcome == WebhookOutcome.SAVED
        client.get_transcript.assert_awaited_once_with("tr_1")

    @pytest.mark.asyncio
    async def test_error_webhook_writes_sentinel(self, test_db, podcast):
        """Provider errors become a failure sentinel and an error summary."""
        on_transcribed = AsyncMock()
        service = TranscriptionService(test_db, _client(), on_transcribed=on_transcribed)

        outcome = await service.handle_webhook(
            podcast, TranscriptJob(id="tr_1", status="error", error="Audio download failed")
        )

        assert outcome == WebhookOutcome.FAILED
        content = test_db.content.get(podcast.id)
        assert parse_failure_sentinel(content.full_text) == ("TRANSCRIPTION", "Audio download failed")
        assert content.processing_status == "error"
        summary = test_db.summaries.get(podcast.id, "en")
        assert summary.processing_status == "error"
        assert "Audio download failed" in summary.brief_overview
        on_transcribed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_transcript_fails(self, test_db, podcast):
        """A completed job with no speech is a failure, not a save."""
        service = TranscriptionService(test_db, _client())

        outcome = await service.handle_webhook(podcast, _completed(utterances=[{"speaker": "A", "text": ""}]))

        assert outcome == WebhookOutcome.FAILED
        assert test_db.content.get(podcast.id).has_failed

    @pytest.mark.asyncio
    async def test_non_terminal_status_ignored(self, test_db, podcast):
        """Queued or processing notifications leave the item untouched."""
        service = TranscriptionService(test_db, _client())

        outcome = await service.handle_webhook(podcast, TranscriptJob(id="tr_1", status="processing"))

        assert outcome == WebhookOutcome.IGNORED
        assert test_db.content.get(podcast.id).full_text is None

    @pytest.mark.asyncio
    async def test_analysis_failure_does_not_undo_transcript(self, test_db, podcast):
        """Errors in the analysis callback are logged; the transcript stays saved."""
        service = TranscriptionService(test_db, _client(), on_transcribed=AsyncMock(side_effect=RuntimeError("x")))

        outcome = await service.handle_webhook(podcast, _completed())

        assert outcome == WebhookOutcome.SAVED
        assert test_db.content.get(podcast.id).has_text


class TestRecovery:
    """Tests for recovery of transcriptions whose webhook never arrived."""

    @pytest.mark.asyncio
    async def test_lost_webhook_recovered_by_poll(self, test_db, podcast):
        """At 25 minutes the poll finds the finished job and analysis runs once."""
        on_transcribed = AsyncMock()
        client = _client()
        service = TranscriptionService(test_db, client, on_transcribed=on_transcribed)

        report = await service.recover_stuck(now=T0 + timedelta(minutes=25))

        assert report.recovered == 1
        client.get_transcript.assert_awaited_once_with("tr_1")
        assert test_db.content.get(podcast.id).has_text
        on_transcribed.assert_awaited_once_with(podcast.id)

        # The webhook eventually arrives and is treated as a duplicate
        outcome = await service.handle_webhook(test_db.content.get(podcast.id), _completed())
        assert outcome == WebhookOutcome.DUPLICATE
        assert on_transcribed.await_count == 1

    @pytest.mark.asyncio
    async def test_within_grace_window_not_polled(self, test_db, podcast):
        """Items younger than the grace window are left to the webhook."""
        client = _client()
        report = await TranscriptionService(test_db, client).recover_stuck(now=T0 + timedelta(minutes=10))

        assert report.recovered == 0
        client.get_transcript.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_still_processing_is_pending(self, test_db, podcast):
        """Jobs still running at the provider stay pending."""
        client = _client(TranscriptJob(id="tr_1", status="processing"))
        report = await TranscriptionService(test_db, client).recover_stuck(now=T0 + timedelta(minutes=30))

        assert report.pending == 1
        assert test_db.content.get(podcast.id).full_text is None

    @pytest.mark.asyncio
    async def test_timeout_fails_permanently(self, test_db, podcast):
        """Past two hours the item fails without polling."""
        client = _client()
        service = TranscriptionService(test_db, client)

        outcome = await service.reconcile(podcast, now=T0 + timedelta(hours=2, minutes=1))

        assert outcome == ReconcileOutcome.FAILED
        client.get_transcript.assert_not_awaited()
        assert test_db.content.get(podcast.id).full_text == TIMEOUT_SENTINEL
        assert test_db.summaries.get(podcast.id, "en").brief_overview == TIMEOUT_MESSAGE

    @pytest.mark.asyncio
    async def test_no_client_fails(self, test_db, podcast):
        """Without credentials a stuck item cannot be polled and fails."""
        outcome = await TranscriptionService(test_db, None).reconcile(podcast, now=T0 + timedelta(minutes=30))
        assert outcome == ReconcileOutcome.FAILED

    @pytest.mark.asyncio
    async def test_poll_errors_count_as_pending(self, test_db, podcast):
        """A failing status poll is retried on the next run."""
        client = _client()
        client.get_transcript = AsyncMock(side_effect=RuntimeError("network down"))

        report = await TranscriptionService(test_db, client).recover_stuck(now=T0 + timedelta(minutes=30))

        assert report.pending == 1
        assert test_db.content.get(podcast.id).full_text is None

    @pytest.mark.asyncio
    async def test_batch_is_bounded(self, test_db, user_id):
        """At most a batch of items is reconciled per run; the rest are deferred."""
        for n in range(RECOVERY_BATCH_SIZE + 2):
            cid = test_db.content.create(user_id, f"https://cdn.example.com/{n}.mp3", "podcast")
            test_db.content.mark_transcription_submitted(cid, f"tr_{n}", T0)
        client = _client(TranscriptJob(id="", status="processing"))

        report = await TranscriptionService(test_db, client).recover_stuck(now=T0 + timedelta(minutes=30))

        assert client.get_transcript.await_count == RECOVERY_BATCH_SIZE
        assert report.pending == RECOVERY_BATCH_SIZE
        assert report.deferred == 2

    @pytest.mark.asyncio
    async def test_webhook_and_poll_race(self, test_db, podcast):
        """A webhook and a recovery poll racing save once and analyze once."""
        on_transcribed = AsyncMock()
        service = TranscriptionService(test_db, _client(), on_transcribed=on_transcribed)

        webhook, poll = await asyncio.gather(
            service.handle_webhook(podcast, _completed()),
            service.reconcile(podcast, now=T0 + timedelta(minutes=30)),
        )

        assert {webhook, poll} <= {WebhookOutcome.SAVED, WebhookOutcome.DUPLICATE,
                                   ReconcileOutcome.RECOVERED, ReconcileOutcome.SKIPPED}
        assert on_transcribed.await_count == 1
