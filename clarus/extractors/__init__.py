"""
Content extractors: YouTube transcripts, article scraping, X posts,
plus paywall heuristics for scraped articles.
"""

from .article import ArticleExtractor
from .base import (
    FAILURE_PREFIX,
    STAGE_LABELS,
    ContentType,
    ExtractionError,
    ExtractionResult,
    Extractor,
    FailureReason,
    failure_sentinel,
    is_failure_sentinel,
    parse_failure_sentinel,
    with_retries,
)
from .dispatcher import ExtractionDispatcher, classify_url, is_podcast_url
from .paywall import detect_paywall_truncation, is_paywalled_domain
from .social import SocialPostExtractor
from .youtube import YouTubeExtractor, extract_video_id

__all__ = [
    "ArticleExtractor",
    "ContentType",
    "ExtractionDispatcher",
    "ExtractionError",
    "ExtractionResult",
    "Extractor",
    "FAILURE_PREFIX",
    "FailureReason",
    "STAGE_LABELS",
    "SocialPostExtractor",
    "YouTubeExtractor",
    "classify_url",
    "detect_paywall_truncation",
    "extract_video_id",
    "failure_sentinel",
    "is_failure_sentinel",
    "is_paywalled_domain",
    "is_podcast_url",
    "parse_failure_sentinel",
    "with_retries",
]
