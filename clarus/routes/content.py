"""
Content routes: submit URLs, process, poll analysis results, translate.
"""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import JSONResponse

from ..auth import get_current_user, verify_api_key
from ..exceptions import ErrorKind, ProcessContentError, require_summary
from ..languages import DEFAULT_LANGUAGE, is_valid_language
from ..rate_limit import rate_limit
from ..schemas import (
    ContentResponse,
    CreateContentRequest,
    ProcessContentRequest,
    ProcessResponse,
    SummaryResponse,
    TranslateRequest,
    TranslationInProgressResponse,
)
from ..services import ContentServiceDep, TranslationServiceDep

router = APIRouter(
    prefix="/content",
    tags=["content"],
    dependencies=[Depends(verify_api_key)]
)

TRANSLATE_REQUESTS_PER_MINUTE = 20


def _check_language(language: str):
    if not is_valid_language(language):
        raise ProcessContentError(f"Unsupported language: {language}", ErrorKind.PERMANENT_INPUT)


# ─────────────────────────────────────────────────────────────
# Submission
# ─────────────────────────────────────────────────────────────

@router.post("", status_code=202)
async def create_content(
    request: CreateContentRequest,
    background_tasks: BackgroundTasks,
    service: ContentServiceDep,
    user_id: Annotated[int, Depends(get_current_user)],
) -> ContentResponse:
    """Submit a URL; extraction and analysis run in the background."""
    _check_language(request.language)
    content = await service.create(user_id, request.url, request.title)
    background_tasks.add_task(service.process_in_background, content.id, user_id, request.language)
    return ContentResponse.from_db(content)


@router.get("/{content_id}")
async def get_content(
    content_id: int,
    service: ContentServiceDep,
    user_id: Annotated[int, Depends(get_current_user)],
) -> ContentResponse:
    """Content item metadata and processing status."""
    return ContentResponse.from_db(service.get_owned(content_id, user_id))


# ─────────────────────────────────────────────────────────────
# Processing
# ─────────────────────────────────────────────────────────────

@router.post("/{content_id}/process")
async def process_content(
    content_id: int,
    request: ProcessContentRequest,
    service: ContentServiceDep,
    user_id: Annotated[int, Depends(get_current_user)],
) -> ProcessResponse:
    """Extract and analyze synchronously; podcasts return once submitted."""
    result = await service.process(content_id, user_id, request.language, force=request.force)
    return ProcessResponse(
        content_id=result.content_id,
        status=result.status,
        language=result.language,
        cached=result.cached,
        transcript_id=result.transcript_id,
        failed_sections=result.failed_sections,
        paywall_warning=result.paywall_warning,
    )


@router.get("/{content_id}/summary")
async def get_summary(
    content_id: int,
    service: ContentServiceDep,
    user_id: Annotated[int, Depends(get_current_user)],
    language: str = Query(default=DEFAULT_LANGUAGE),
) -> SummaryResponse:
    """Analysis in one language; sections appear as they complete."""
    _check_language(language)
    content = service.get_owned(content_id, user_id)
    summary = require_summary(service.db.summaries.get(content.id, language))
    return SummaryResponse.from_db(summary)


# ─────────────────────────────────────────────────────────────
# Translation
# ─────────────────────────────────────────────────────────────

@router.post(
    "/{content_id}/translate",
    responses={202: {"model": TranslationInProgressResponse}},
    dependencies=[Depends(rate_limit("translate", TRANSLATE_REQUESTS_PER_MINUTE))],
)
async def translate_content(
    content_id: int,
    request: TranslateRequest,
    service: TranslationServiceDep,
    user_id: Annotated[int, Depends(get_current_user)],
):
    """Translate a completed analysis; 202 while a translation is in flight."""
    outcome = await service.translate(content_id, request.language, user_id)
    if outcome.in_progress:
        body = TranslationInProgressResponse(content_id=content_id, language=request.language)
        return JSONResponse(status_code=202, content=body.model_dump(), headers={"Retry-After": "5"})
    return SummaryResponse.from_db(outcome.summary)
