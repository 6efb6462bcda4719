"""
URL classification and extractor dispatch.

Classification rules are ordered: video hosts first, then social-post
hosts, then the podcast/audio heuristic, and everything else is an article.
Podcasts are not extracted synchronously; they go through the
transcription service.
"""

import logging
from urllib.parse import urlparse

from .base import (
    ContentType,
    ExtractionError,
    ExtractionResult,
    Extractor,
    FailureReason,
)
from .social import SocialPostExtractor
from .youtube import YouTubeExtractor, extract_video_id

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".mp3", ".m4a", ".wav", ".aac", ".ogg", ".opus", ".flac")

PODCAST_HOSTS = [
    "anchor.fm",
    "buzzsprout.com",
    "megaphone.fm",
    "libsyn.com",
    "simplecast.com",
    "transistor.fm",
    "podtrac.com",
    "omny.fm",
    "audioboom.com",
    "captivate.fm",
    "podbean.com",
    "spreaker.com",
]


def _host_matches(host: str, domains: list[str]) -> bool:
    return any(host == d or host.endswith("." + d) for d in domains)


def is_podcast_url(url: str) -> bool:
    """Audio file extension or a known podcast hosting domain."""
    parsed = urlparse(url)
    path = parsed.path.lower()
    if path.endswith(AUDIO_EXTENSIONS):
        return True
    return _host_matches((parsed.hostname or "").lower(), PODCAST_HOSTS)


def classify_url(url: str) -> ContentType:
    """Classify a URL into exactly one content type."""
    if YouTubeExtractor.can_handle(url) and extract_video_id(url):
        return ContentType.VIDEO
    if SocialPostExtractor.can_handle(url):
        return ContentType.SOCIAL_POST
    if is_podcast_url(url):
        return ContentType.PODCAST
    return ContentType.ARTICLE


class ExtractionDispatcher:
    """
    Routes a URL to its type-specific extractor.

    Extractors are optional; a type whose provider key is not configured
    fails with UNSUPPORTED instead of attempting the call.
    """

    def __init__(
        self,
        video: Extractor | None = None,
        article: Extractor | None = None,
        social: Extractor | None = None,
    ):
        self._extractors: dict[ContentType, Extractor | None] = {
            ContentType.VIDEO: video,
            ContentType.ARTICLE: article,
            ContentType.SOCIAL_POST: social,
        }

    def classify(self, url: str) -> ContentType:
        return classify_url(url)

    async def extract(
        self,
        url: str,
        content_type: ContentType | str | None = None,
        content_id: int | None = None,
    ) -> ExtractionResult:
        """
        Extract ``url`` with the extractor for its type.

        Raises:
            ExtractionError: On any extraction failure, including podcasts
                (which are transcribed, not extracted) and unconfigured types
        """
        content_type = ContentType(content_type) if content_type else self.classify(url)

        if content_type == ContentType.PODCAST:
            raise ExtractionError(
                FailureReason.UNSUPPORTED,
                "Podcast audio is transcribed asynchronously",
            )

        extractor = self._extractors.get(content_type)
        if extractor is None:
            raise ExtractionError(
                FailureReason.UNSUPPORTED,
                f"No extractor configured for {content_type.value}",
            )

        logger.info(f"Extracting {content_type.value} content {content_id or ''}: {url}")
        return await extractor.extract(url, content_id)
