"""
Configuration and application state management.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from fastapi import HTTPException

if TYPE_CHECKING:
    from .database import Database
    from .feeds import FeedParser
    from .providers import LLMProvider
    from .extractors import ExtractionDispatcher
    from .transcription import TranscriptionService
    from .analysis import AnalysisOrchestrator
    from .services import ContentService, TranslationService, FeedPoller
    from .usage import UsageGate
    from .rate_limit import FixedWindowRateLimiter
    from .scheduler import FeedScheduler

# Load environment variables
load_dotenv()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_list(value: str | None, default: list[str]) -> list[str]:
    """Parse a comma-separated environment variable into a list."""
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    """Application configuration from environment."""
    # AI provider configuration
    # OpenRouter is preferred; a plain OpenAI key works as a fallback
    OPENROUTER_API_KEY: str = os.getenv("OPENROUTER_API_KEY", "")
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "")

    # Ordered model fallback lists (first entry is the primary model)
    ANALYSIS_MODELS: list[str] = _parse_list(
        os.getenv("ANALYSIS_MODELS"),
        ["google/gemini-2.5-flash", "anthropic/claude-3.5-haiku", "openai/gpt-4o-mini"],
    )
    FAST_MODELS: list[str] = _parse_list(
        os.getenv("FAST_MODELS"),
        ["google/gemini-2.5-flash-lite", "openai/gpt-4o-mini"],
    )
    TRANSLATION_MODELS: list[str] = _parse_list(
        os.getenv("TRANSLATION_MODELS"),
        ["google/gemini-2.5-flash-lite", "google/gemini-2.5-flash"],
    )

    # Extraction and enrichment providers
    SUPADATA_API_KEY: str = os.getenv("SUPADATA_API_KEY", "")
    FIRECRAWL_API_KEY: str = os.getenv("FIRECRAWL_API_KEY", "")
    TAVILY_API_KEY: str = os.getenv("TAVILY_API_KEY", "")
    ASSEMBLYAI_API_KEY: str = os.getenv("ASSEMBLYAI_API_KEY", "")
    ASSEMBLYAI_WEBHOOK_TOKEN: str = os.getenv("ASSEMBLYAI_WEBHOOK_TOKEN", "")

    # Public base URL used to build webhook callbacks
    APP_URL: str = os.getenv("APP_URL", "http://localhost:5005")

    # Secrets
    AUTH_API_KEY: str = os.getenv("AUTH_API_KEY", "")
    CRON_SECRET: str = os.getenv("CRON_SECRET", "")
    FEED_ENCRYPTION_KEY: str = os.getenv("FEED_ENCRYPTION_KEY", "")

    DB_PATH: Path = Path(os.getenv("DB_PATH", "./data/clarus.db"))
    PORT: int = int(os.getenv("PORT", "5005"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Global per-IP limit applied by slowapi (0 disables)
    RATE_LIMIT_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))

    # In-process feed polling for deployments without an external cron
    ENABLE_SCHEDULER: bool = _parse_bool(os.getenv("ENABLE_SCHEDULER"), default=False)
    SCHEDULER_INTERVAL_MINUTES: int = int(os.getenv("SCHEDULER_INTERVAL_MINUTES", "60"))


config = Config()


class AppState:
    """Shared application state."""
    db: "Database | None" = None
    provider: "LLMProvider | None" = None  # LLM provider instance
    feed_parser: "FeedParser | None" = None
    dispatcher: "ExtractionDispatcher | None" = None
    transcription: "TranscriptionService | None" = None
    orchestrator: "AnalysisOrchestrator | None" = None
    content_service: "ContentService | None" = None
    translation_service: "TranslationService | None" = None
    feed_poller: "FeedPoller | None" = None
    usage_gate: "UsageGate | None" = None
    rate_limiter: "FixedWindowRateLimiter | None" = None
    scheduler: "FeedScheduler | None" = None


state = AppState()


def get_db() -> "Database":
    """Dependency to get database instance."""
    if not state.db:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return state.db


def get_content_service() -> "ContentService":
    """Dependency to get the content processing service."""
    if not state.content_service:
        raise HTTPException(status_code=500, detail="Content service not initialized")
    return state.content_service


def get_translation_service() -> "TranslationService":
    """Dependency to get the translation service."""
    if not state.translation_service:
        raise HTTPException(status_code=500, detail="Translation service not initialized")
    return state.translation_service


def get_transcription_service() -> "TranscriptionService":
    """Dependency to get the transcription service."""
    if not state.transcription:
        raise HTTPException(status_code=500, detail="Transcription service not initialized")
    return state.transcription


def get_feed_poller() -> "FeedPoller":
    """Dependency to get the feed poller."""
    if not state.feed_poller:
        raise HTTPException(status_code=500, detail="Feed poller not initialized")
    return state.feed_poller
