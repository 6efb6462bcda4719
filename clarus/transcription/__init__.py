"""
Podcast transcription: AssemblyAI submission, webhook handling and recovery.
"""

from .assemblyai import AssemblyAIClient, FormattedTranscript, TranscriptJob, format_transcript
from .state_machine import (
    RECOVERY_BATCH_SIZE,
    RECOVERY_GRACE,
    RECOVERY_TIMEOUT,
    ReconcileOutcome,
    RecoveryReport,
    TranscriptionService,
    TranscriptionState,
    WebhookOutcome,
    state_of,
)

__all__ = [
    "AssemblyAIClient",
    "FormattedTranscript",
    "RECOVERY_BATCH_SIZE",
    "RECOVERY_GRACE",
    "RECOVERY_TIMEOUT",
    "ReconcileOutcome",
    "RecoveryReport",
    "TranscriptJob",
    "TranscriptionService",
    "TranscriptionState",
    "WebhookOutcome",
    "format_transcript",
    "state_of",
]
