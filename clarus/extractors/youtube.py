"""
YouTube extractor backed by the Supadata API.

Fetches video metadata and the caption transcript. Transcript segments are
grouped into 30-second paragraphs prefixed with ``[M:SS]`` timestamps.
"""

import asyncio
import logging
import re
import time
from urllib.parse import parse_qs, urlparse

import aiohttp

from .base import (
    ContentType,
    ExtractionError,
    ExtractionResult,
    Extractor,
    FailureReason,
    raise_for_status,
    read_json,
    with_retries,
)

logger = logging.getLogger(__name__)

SUPADATA_BASE_URL = "https://api.supadata.ai/v1/youtube"

METADATA_TIMEOUT = 30
TRANSCRIPT_TIMEOUT = 60

TRANSCRIPT_INTERVAL_MS = 30_000

_VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{6,20}$")


def extract_video_id(url: str) -> str | None:
    """Get the video ID from youtu.be, /watch, /shorts, /embed or /live URLs."""
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()

    candidate = None
    if host == "youtu.be":
        candidate = parsed.path.strip("/").split("/")[0]
    elif host.endswith("youtube.com"):
        if parsed.path == "/watch":
            candidate = parse_qs(parsed.query).get("v", [None])[0]
        else:
            for prefix in ("/shorts/", "/embed/", "/live/", "/v/"):
                if parsed.path.startswith(prefix):
                    candidate = parsed.path[len(prefix):].split("/")[0]
                    break

    if candidate and _VIDEO_ID.match(candidate):
        return candidate
    return None


def format_offset(ms: int | float) -> str:
    """Format a millisecond offset as M:SS, or H:MM:SS past an hour."""
    total_seconds = int(ms // 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def group_transcript_segments(segments: list[dict], interval_ms: int = TRANSCRIPT_INTERVAL_MS) -> str:
    """Merge caption segments into timestamped paragraphs per interval."""
    groups: dict[int, list[str]] = {}
    for segment in segments:
        text = (segment.get("text") or "").strip()
        if not text:
            continue
        offset = segment.get("offset") or 0
        bucket = int(offset // interval_ms) * interval_ms
        groups.setdefault(bucket, []).append(text)

    return "\n\n".join(
        f"[{format_offset(bucket)}] {' '.join(texts)}"
        for bucket, texts in sorted(groups.items())
    )


class YouTubeExtractor(Extractor):
    """Transcript and metadata extractor for YouTube videos."""

    CONTENT_TYPE = ContentType.VIDEO
    DOMAINS = ["youtube.com", "youtu.be"]

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    async def _get_json(self, endpoint: str, params: dict, timeout: int, service: str) -> dict:
        async with aiohttp.ClientSession(headers={"x-api-key": self.api_key}) as session:
            async with session.get(
                endpoint,
                params=params,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                raise_for_status(resp.status, service)
                return await read_json(resp, service)

    async def fetch_metadata(self, url: str, content_id: int | None = None) -> dict:
        """Video metadata (title, channel, duration, thumbnail...)."""
        started = time.monotonic()
        try:
            data = await with_retries(
                lambda: self._get_json(f"{SUPADATA_BASE_URL}/video", {"id": url},
                                       METADATA_TIMEOUT, "Supadata metadata"),
                service="Supadata metadata",
                wait=self.retry_wait,
            )
        except ExtractionError as e:
            self._log_usage("supadata", "metadata", "error", started, content_id, e.message)
            raise
        self._log_usage("supadata", "metadata", "success", started, content_id)
        return data or {}

    async def fetch_transcript(self, url: str, content_id: int | None = None) -> str:
        """Caption transcript as timestamped paragraphs."""
        started = time.monotonic()
        try:
            data = await with_retries(
                lambda: self._get_json(f"{SUPADATA_BASE_URL}/transcript", {"url": url},
                                       TRANSCRIPT_TIMEOUT, "Supadata transcript"),
                service="Supadata transcript",
                wait=self.retry_wait,
            )
        except ExtractionError as e:
            self._log_usage("supadata", "transcript", "error", started, content_id, e.message)
            raise
        self._log_usage("supadata", "transcript", "success", started, content_id)

        content = (data or {}).get("content")
        if isinstance(content, list):
            return group_transcript_segments(content)
        return (content or "").strip()

    async def extract(self, url: str, content_id: int | None = None) -> ExtractionResult:
        if not extract_video_id(url):
            raise ExtractionError(FailureReason.UNSUPPORTED, f"Not a recognizable YouTube video URL: {url}")

        metadata, transcript = await asyncio.gather(
            self.fetch_metadata(url, content_id),
            self.fetch_transcript(url, content_id),
            return_exceptions=True,
        )

        if isinstance(transcript, BaseException):
            raise transcript
        if not transcript:
            raise ExtractionError(FailureReason.EMPTY, "Video has no transcript")

        # Metadata is optional; a transcript alone is enough to analyze
        if isinstance(metadata, BaseException):
            logger.warning(f"YouTube metadata unavailable for {url}: {metadata}")
            metadata = {}
        elif not isinstance(metadata, dict):
            logger.warning(f"Unexpected YouTube metadata for {url}: {type(metadata).__name__}")
            metadata = {}

        # Some responses carry the channel name as a bare string
        channel = metadata.get("channel")
        if isinstance(channel, str):
            channel = {"name": channel}
        elif not isinstance(channel, dict):
            channel = {}
        duration = metadata.get("duration")
        return ExtractionResult(
            full_text=transcript,
            title=metadata.get("title"),
            author=channel.get("name"),
            description=metadata.get("description"),
            thumbnail_url=metadata.get("thumbnail"),
            duration=int(duration) if isinstance(duration, (int, float)) else None,
            metadata={
                "channel_id": channel.get("id"),
                "upload_date": metadata.get("uploadDate"),
                "view_count": metadata.get("viewCount"),
                "like_count": metadata.get("likeCount"),
                "transcript_languages": metadata.get("transcriptLanguages"),
            },
        )
