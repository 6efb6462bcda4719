"""
Error taxonomy and HTTP exception utilities.

Provides:
- ErrorKind: the pipeline error taxonomy with its HTTP status mapping
- PipelineError / ProcessContentError: exceptions surfaced to API callers
- classify_error / user_friendly_error: safe, user-facing failure messages
- require_* helpers to reduce boilerplate for common 404 errors
"""

import re
from enum import Enum
from typing import TypeVar

from fastapi import HTTPException

T = TypeVar("T")


class ErrorKind(str, Enum):
    """How a failure should be treated by callers."""
    TRANSIENT = "transient"                  # network, 5xx, timeout: retry with backoff
    PERMANENT_INPUT = "permanent_input"      # malformed URL, unsupported type, empty text
    PROVIDER_REJECTED = "provider_rejected"  # 4xx from a third party
    QUOTA_EXCEEDED = "quota_exceeded"        # tier or usage gate
    INTERNAL = "internal"                    # unexpected exception

    @property
    def status_code(self) -> int:
        return _STATUS_BY_KIND[self]


_STATUS_BY_KIND = {
    ErrorKind.TRANSIENT: 503,
    ErrorKind.PERMANENT_INPUT: 422,
    ErrorKind.PROVIDER_REJECTED: 422,
    ErrorKind.QUOTA_EXCEEDED: 403,
    ErrorKind.INTERNAL: 500,
}


class PipelineError(Exception):
    """Base error raised by the processing pipeline."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.INTERNAL):
        super().__init__(message)
        self.message = message
        self.kind = kind

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind.value}


class ProcessContentError(PipelineError):
    """Error raised while processing a content item, optionally with an upgrade hint."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.INTERNAL,
        upgrade_required: bool = False,
        tier: str | None = None,
    ):
        super().__init__(message, kind)
        self.upgrade_required = upgrade_required
        self.tier = tier

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.upgrade_required:
            data["upgrade_required"] = True
            data["tier"] = self.tier
        return data


# ─────────────────────────────────────────────────────────────
# User-facing error classification
# ─────────────────────────────────────────────────────────────

class ErrorCategory(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    TIMEOUT = "TIMEOUT"
    CONTENT_UNAVAILABLE = "CONTENT_UNAVAILABLE"
    SCRAPE_FAILED = "SCRAPE_FAILED"
    TRANSCRIPT_FAILED = "TRANSCRIPT_FAILED"
    METADATA_FAILED = "METADATA_FAILED"
    TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
    AI_ANALYSIS_FAILED = "AI_ANALYSIS_FAILED"
    UNKNOWN = "UNKNOWN"


# Checked in order; first match wins
_CATEGORY_PATTERNS: list[tuple[ErrorCategory, re.Pattern]] = [
    (ErrorCategory.RATE_LIMITED, re.compile(r"429|rate.?limit|too many", re.I)),
    (ErrorCategory.TIMEOUT, re.compile(r"timed?.?out|timeout|aborted", re.I)),
    (ErrorCategory.CONTENT_UNAVAILABLE, re.compile(r"unavailable|not found|404|private|restricted", re.I)),
    (ErrorCategory.SCRAPE_FAILED, re.compile(r"scrap|firecrawl|crawl", re.I)),
    (ErrorCategory.TRANSCRIPT_FAILED, re.compile(r"\btranscript\b|supadata|captions?", re.I)),
    (ErrorCategory.METADATA_FAILED, re.compile(r"metadata", re.I)),
    (ErrorCategory.TRANSCRIPTION_FAILED, re.compile(r"transcription|assemblyai|audio", re.I)),
    (ErrorCategory.AI_ANALYSIS_FAILED, re.compile(r"\bai\b|model|openrouter|completion|analysis", re.I)),
]

_TYPE_LABELS = {
    "youtube": "video",
    "article": "article",
    "podcast": "podcast",
    "x_post": "post",
}

_CATEGORY_MESSAGES = {
    ErrorCategory.RATE_LIMITED: "Our {label} service is busy right now. Please try again in a few minutes.",
    ErrorCategory.TIMEOUT: "Processing this {label} took too long. Please try again.",
    ErrorCategory.CONTENT_UNAVAILABLE: "This {label} is unavailable. It may be private, restricted, or removed.",
    ErrorCategory.SCRAPE_FAILED: "We couldn't read this {label}. The site may be blocking automated access.",
    ErrorCategory.TRANSCRIPT_FAILED: "We couldn't get a transcript for this {label}. It may not have captions.",
    ErrorCategory.METADATA_FAILED: "We couldn't load details for this {label}. Please check the link.",
    ErrorCategory.TRANSCRIPTION_FAILED: "We couldn't transcribe this {label}. Please try again.",
    ErrorCategory.AI_ANALYSIS_FAILED: "Analysis of this {label} failed. Please try again.",
    ErrorCategory.UNKNOWN: "Something went wrong while processing this {label}. Please try again.",
}


def classify_error(message: str | None) -> ErrorCategory:
    """Map a raw error message to a coarse category."""
    if not message:
        return ErrorCategory.UNKNOWN
    for category, pattern in _CATEGORY_PATTERNS:
        if pattern.search(message):
            return category
    return ErrorCategory.UNKNOWN


def user_friendly_error(content_type: str | None, category: ErrorCategory | str) -> str:
    """Render a message safe to show users; never includes provider details."""
    try:
        category = ErrorCategory(category)
    except ValueError:
        category = ErrorCategory.UNKNOWN
    label = _TYPE_LABELS.get(content_type or "", "content")
    return _CATEGORY_MESSAGES[category].format(label=label)


# ─────────────────────────────────────────────────────────────
# 404 helpers
# ─────────────────────────────────────────────────────────────

def require_resource(resource: T | None, detail: str = "Resource not found") -> T:
    """
    Raise 404 if resource is None, otherwise return the resource.

    Usage:
        content = require_resource(db.content.get(id), "Content not found")
    """
    if resource is None:
        raise HTTPException(status_code=404, detail=detail)
    return resource


def require_content(content: T | None) -> T:
    """Raise 404 if content item is None."""
    return require_resource(content, "Content not found")


def require_summary(summary: T | None) -> T:
    """Raise 404 if summary is None."""
    return require_resource(summary, "Summary not found")


def require_subscription(subscription: T | None) -> T:
    """Raise 404 if feed subscription is None."""
    return require_resource(subscription, "Subscription not found")
