"""
Clarus API Server

FastAPI application providing endpoints for:
- Content submission, processing and analysis polling
- Translation of completed analyses
- Podcast and YouTube feed subscriptions
- Transcription webhooks
- Scheduled feed polling (cron)
"""

import logging
from contextlib import asynccontextmanager
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api_usage import ApiUsageLogger
from .analysis import AnalysisOrchestrator, TavilyClient
from .config import config, state
from .database import Database
from .exceptions import PipelineError
from .extractors import ArticleExtractor, ExtractionDispatcher, SocialPostExtractor, YouTubeExtractor
from .feeds import FeedParser
from .providers import build_models, get_provider_from_env
from .rate_limit import FixedWindowRateLimiter, InMemoryRateStore, setup_rate_limiting
from .routes import (
    content_router,
    crons_router,
    misc_router,
    subscriptions_router,
    webhooks_router,
)
from .scheduler import FeedScheduler
from .services import ContentService, FeedPoller, TranslationService
from .transcription import AssemblyAIClient, TranscriptionService
from .usage import UsageGate

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _webhook_url() -> str | None:
    if not config.ASSEMBLYAI_WEBHOOK_TOKEN:
        return None
    base = config.APP_URL.rstrip("/")
    return f"{base}/webhooks/assemblyai?token={quote(config.ASSEMBLYAI_WEBHOOK_TOKEN)}"


def init_state(db: Database):
    """Build the service graph around a database."""
    state.db = db
    usage_logger = ApiUsageLogger(db)
    state.usage_gate = UsageGate(db)
    state.rate_limiter = FixedWindowRateLimiter(InMemoryRateStore())
    state.feed_parser = FeedParser()

    # Extraction providers
    article = ArticleExtractor(config.FIRECRAWL_API_KEY, usage_logger=usage_logger) \
        if config.FIRECRAWL_API_KEY else None
    video = YouTubeExtractor(config.SUPADATA_API_KEY, usage_logger=usage_logger) \
        if config.SUPADATA_API_KEY else None
    social = SocialPostExtractor(scraper=article, usage_logger=usage_logger)
    state.dispatcher = ExtractionDispatcher(video=video, article=article, social=social)

    # Initialize LLM provider (OpenRouter preferred, OpenAI fallback)
    state.provider = get_provider_from_env(
        openrouter_key=config.OPENROUTER_API_KEY or None,
        openai_key=config.OPENAI_API_KEY or None,
        preferred_provider=config.LLM_PROVIDER or None,
        app_url=config.APP_URL,
    )
    if state.provider:
        search = TavilyClient(config.TAVILY_API_KEY, usage_logger) if config.TAVILY_API_KEY else None
        state.orchestrator = AnalysisOrchestrator(
            db,
            state.provider,
            build_models(config.ANALYSIS_MODELS),
            build_models(config.FAST_MODELS),
            search=search,
            usage_logger=usage_logger,
        )
        state.translation_service = TranslationService(
            db,
            state.provider,
            build_models(config.TRANSLATION_MODELS),
            usage_gate=state.usage_gate,
            usage_logger=usage_logger,
        )
        logger.info(f"LLM provider initialized: {state.provider.name}")
    else:
        logger.warning(
            "No LLM API key configured. Set OPENROUTER_API_KEY or OPENAI_API_KEY. "
            "AI analysis and translation disabled."
        )

    client = AssemblyAIClient(config.ASSEMBLYAI_API_KEY) if config.ASSEMBLYAI_API_KEY else None
    state.transcription = TranscriptionService(
        db,
        client,
        webhook_url=_webhook_url(),
        usage_logger=usage_logger,
    )
    state.content_service = ContentService(
        db,
        state.dispatcher,
        orchestrator=state.orchestrator,
        transcription=state.transcription,
        usage_gate=state.usage_gate,
    )
    state.transcription.on_transcribed = state.content_service.analyze_transcribed

    state.feed_poller = FeedPoller(
        db,
        state.feed_parser,
        transcription=state.transcription,
        encryption_key=config.FEED_ENCRYPTION_KEY or None,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup application resources."""
    # Startup - skip if already initialized (e.g., by tests)
    if state.db is None:
        init_state(Database(config.DB_PATH))

        if config.ENABLE_SCHEDULER and state.feed_poller:
            state.scheduler = FeedScheduler(state.feed_poller, config.SCHEDULER_INTERVAL_MINUTES)
            await state.scheduler.start()

    yield

    # Shutdown
    if state.scheduler:
        await state.scheduler.stop()
        state.scheduler = None


app = FastAPI(
    title="Clarus API",
    version="1.0.0",
    lifespan=lifespan
)

setup_rate_limiting(app)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Render pipeline errors as JSON with their taxonomy kind."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(misc_router)
app.include_router(content_router)
app.include_router(subscriptions_router)
app.include_router(webhooks_router)
app.include_router(crons_router)


def main():
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("clarus.server:app", host="0.0.0.0", port=config.PORT)


if __name__ == "__main__":
    main()
