"""
Base classes for content extractors.

Every extractor turns a URL into full text plus optional metadata, or
raises ExtractionError carrying a typed FailureReason. Failures are stored
on the content item as ``PROCESSING_FAILED::<STAGE>::<REASON>`` sentinels.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar, TYPE_CHECKING
from urllib.parse import urlparse

import aiohttp
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

if TYPE_CHECKING:
    from ..api_usage import ApiUsageLogger

logger = logging.getLogger(__name__)

T = TypeVar("T")

FAILURE_PREFIX = "PROCESSING_FAILED::"


class ContentType(str, Enum):
    VIDEO = "youtube"
    ARTICLE = "article"
    SOCIAL_POST = "x_post"
    PODCAST = "podcast"


class FailureReason(str, Enum):
    NETWORK = "NETWORK"
    BLOCKED = "BLOCKED"
    EMPTY = "EMPTY"
    TIMEOUT = "TIMEOUT"
    UNSUPPORTED = "UNSUPPORTED"


# Stage label used in sentinels, per content type
STAGE_LABELS = {
    ContentType.VIDEO: "YOUTUBE",
    ContentType.ARTICLE: "ARTICLE",
    ContentType.SOCIAL_POST: "X_POST",
    ContentType.PODCAST: "TRANSCRIPTION",
}


class ExtractionError(Exception):
    """Typed extraction failure."""

    def __init__(self, reason: FailureReason, message: str, retryable: bool | None = None):
        super().__init__(message)
        self.reason = reason
        self.message = message
        if retryable is None:
            retryable = reason in (FailureReason.NETWORK, FailureReason.TIMEOUT)
        self.retryable = retryable


@dataclass
class ExtractionResult:
    """Successful extraction."""
    full_text: str
    title: str | None = None
    author: str | None = None
    description: str | None = None
    thumbnail_url: str | None = None
    duration: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ─────────────────────────────────────────────────────────────
# Sentinel helpers
# ─────────────────────────────────────────────────────────────

def failure_sentinel(stage: str, reason: str) -> str:
    """Build a ``PROCESSING_FAILED::<STAGE>::<REASON>`` marker."""
    return f"{FAILURE_PREFIX}{stage}::{reason}"


def is_failure_sentinel(text: str | None) -> bool:
    return bool(text) and text.startswith(FAILURE_PREFIX)


def parse_failure_sentinel(text: str | None) -> tuple[str, str] | None:
    """Return (stage, reason) for a sentinel, else None."""
    if not is_failure_sentinel(text):
        return None
    stage, _, reason = text[len(FAILURE_PREFIX):].partition("::")
    return stage, reason


# ─────────────────────────────────────────────────────────────
# HTTP helpers
# ─────────────────────────────────────────────────────────────

def raise_for_status(status: int, service: str) -> None:
    """Map an HTTP status to an ExtractionError (4xx blocked, 5xx retryable)."""
    if status < 400:
        return
    if status == 429:
        raise ExtractionError(FailureReason.NETWORK, f"{service} rate limited (429)", retryable=True)
    if status < 500:
        raise ExtractionError(FailureReason.BLOCKED, f"{service} rejected the request ({status})")
    raise ExtractionError(FailureReason.NETWORK, f"{service} server error ({status})")


async def read_json(resp: aiohttp.ClientResponse, service: str) -> Any:
    """Read a JSON body; a non-JSON body means the request was blocked."""
    content_type = resp.headers.get("Content-Type", "")
    if "json" not in content_type.lower():
        raise ExtractionError(
            FailureReason.BLOCKED,
            f"{service} returned non-JSON response ({content_type or 'no content type'})",
        )
    try:
        return await resp.json(content_type=None)
    except ValueError as e:
        raise ExtractionError(FailureReason.BLOCKED, f"{service} returned malformed JSON") from e


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ExtractionError) and exc.retryable


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    service: str,
    attempts: int = 3,
    wait=None,
) -> T:
    """
    Run ``operation`` with bounded retries on retryable ExtractionErrors.

    Network and timeout errors from aiohttp are converted first so they are
    retried too. Non-retryable failures propagate immediately.
    """
    async def guarded() -> T:
        try:
            return await operation()
        except asyncio.TimeoutError as e:
            raise ExtractionError(FailureReason.TIMEOUT, f"{service} timed out") from e
        except aiohttp.ClientError as e:
            raise ExtractionError(FailureReason.NETWORK, f"{service} request failed: {e}") from e

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait if wait is not None else wait_incrementing(start=1, increment=1, max=5),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.info(f"Retrying {service} (attempt {attempt.retry_state.attempt_number}/{attempts})")
            return await guarded()
    raise ExtractionError(FailureReason.NETWORK, f"{service} failed")  # pragma: no cover


class Extractor(ABC):
    """Base class for type-specific extractors."""

    CONTENT_TYPE: ContentType

    # Hosts this extractor handles
    DOMAINS: list[str] = []

    @classmethod
    def can_handle(cls, url: str) -> bool:
        """Check if this extractor can handle the given URL."""
        host = (urlparse(url).hostname or "").lower()
        return any(host == domain or host.endswith("." + domain) for domain in cls.DOMAINS)

    def __init__(self, usage_logger: "ApiUsageLogger | None" = None, retry_wait=None):
        self.usage_logger = usage_logger
        self.retry_wait = retry_wait

    def _log_usage(self, api_name: str, operation: str, status: str, started: float,
                   content_id: int | None = None, error: str | None = None):
        if self.usage_logger is None:
            return
        self.usage_logger.log(
            api_name=api_name,
            operation=operation,
            status=status,
            response_time_ms=int((time.monotonic() - started) * 1000),
            content_id=content_id,
            error_message=error,
        )

    @abstractmethod
    async def extract(self, url: str, content_id: int | None = None) -> ExtractionResult:
        """Extract full text and metadata; raises ExtractionError."""
        pass
