"""
Inbound webhooks from the transcription provider.
"""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request

from ..auth import verify_webhook_token
from ..config import get_db, get_transcription_service
from ..database import Database
from ..extractors import ContentType
from ..schemas import WebhookAck
from ..transcription import TranscriptJob, TranscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/webhooks",
    tags=["webhooks"],
    dependencies=[Depends(verify_webhook_token)]
)


@router.post("/assemblyai")
async def assemblyai_webhook(
    request: Request,
    db: Annotated[Database, Depends(get_db)],
    transcription: Annotated[TranscriptionService, Depends(get_transcription_service)],
) -> WebhookAck:
    """
    Transcript completion callback. Safe to deliver more than once.

    Body: ``{transcript_id, status: completed|error, utterances?, audio_duration?}``
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    job = TranscriptJob.from_payload(payload)
    if not job.id:
        raise HTTPException(status_code=400, detail="Missing transcript_id")

    content = db.content.get_by_transcript_id(job.id)
    if content is None:
        logger.warning(f"Webhook for unknown transcript {job.id}")
        raise HTTPException(status_code=404, detail="Unknown transcript")
    if content.type != ContentType.PODCAST.value:
        raise HTTPException(status_code=400, detail="Content is not a podcast")

    outcome = await transcription.handle_webhook(content, job)
    logger.info(f"Webhook for transcript {job.id} (content {content.id}): {outcome.value}")
    return WebhookAck(outcome=outcome.value)
