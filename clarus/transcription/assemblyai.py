"""
AssemblyAI client for speaker-diarized podcast transcription.

Submission is asynchronous: AssemblyAI posts to our webhook when the job
finishes. The same transcript can also be polled by id, which the recovery
path uses when a webhook never arrives.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from ..extractors.base import (
    ExtractionError,
    FailureReason,
    raise_for_status,
    read_json,
    with_retries,
)
from ..extractors.youtube import format_offset

logger = logging.getLogger(__name__)

ASSEMBLYAI_BASE_URL = "https://api.assemblyai.com/v2"

REQUEST_TIMEOUT = 30

# Job statuses reported by AssemblyAI
STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"


@dataclass
class TranscriptJob:
    """A transcript as reported by the webhook or the status endpoint."""
    id: str
    status: str
    utterances: list[dict] = field(default_factory=list)
    audio_duration: float | None = None
    error: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TranscriptJob":
        """Build from a webhook body ({transcript_id, ...}) or an API body ({id, ...})."""
        return cls(
            id=str(payload.get("transcript_id") or payload.get("id") or ""),
            status=(payload.get("status") or "").lower(),
            utterances=payload.get("utterances") or [],
            audio_duration=payload.get("audio_duration"),
            error=payload.get("error"),
        )

    @property
    def is_finished(self) -> bool:
        return self.status in (STATUS_COMPLETED, STATUS_ERROR)


@dataclass
class FormattedTranscript:
    full_text: str
    duration_seconds: int
    speaker_count: int


def format_transcript(job: TranscriptJob) -> FormattedTranscript:
    """
    Render utterances as ``[M:SS] Speaker X: text`` paragraphs.

    Timestamps switch to H:MM:SS past the first hour.
    """
    speakers: set[str] = set()
    lines = []
    for utterance in job.utterances:
        text = (utterance.get("text") or "").strip()
        if not text:
            continue
        speaker = str(utterance.get("speaker") or "?")
        speakers.add(speaker)
        lines.append(f"[{format_offset(utterance.get('start') or 0)}] Speaker {speaker}: {text}")

    return FormattedTranscript(
        full_text="\n\n".join(lines),
        duration_seconds=round(job.audio_duration or 0),
        speaker_count=len(speakers),
    )


class AssemblyAIClient:
    """Thin async client for the transcript endpoints."""

    def __init__(self, api_key: str, retry_wait=None):
        self.api_key = api_key
        self.retry_wait = retry_wait

    async def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        headers = {"Authorization": self.api_key, "Content-Type": "application/json"}
        async with aiohttp.ClientSession(headers=headers) as session:
            async with session.request(
                method,
                f"{ASSEMBLYAI_BASE_URL}{path}",
                json=payload,
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
            ) as resp:
                raise_for_status(resp.status, "AssemblyAI")
                return await read_json(resp, "AssemblyAI")

    async def submit(self, audio_url: str, webhook_url: str | None = None) -> str:
        """
        Submit an audio URL for transcription.

        Returns:
            The AssemblyAI transcript id
        """
        payload = {
            "audio_url": audio_url,
            "speaker_labels": True,
            "language_detection": True,
        }
        if webhook_url:
            payload["webhook_url"] = webhook_url

        data = await with_retries(
            lambda: self._request("POST", "/transcript", payload),
            service="AssemblyAI submit",
            wait=self.retry_wait,
        )
        transcript_id = (data or {}).get("id")
        if not transcript_id:
            raise ExtractionError(FailureReason.BLOCKED, "AssemblyAI returned no transcript id")
        logger.info(f"Submitted transcription {transcript_id} for {audio_url}")
        return transcript_id

    async def get_transcript(self, transcript_id: str) -> TranscriptJob:
        """Poll the status endpoint for a transcript."""
        data = await with_retries(
            lambda: self._request("GET", f"/transcript/{transcript_id}"),
            service="AssemblyAI status",
            wait=self.retry_wait,
        )
        job = TranscriptJob.from_payload(data or {})
        job.id = job.id or transcript_id
        return job
