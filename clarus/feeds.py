"""
Feed Parser - Fetch and parse podcast and YouTube feeds.

Handles:
- RSS 2.0 and Atom 1.0 formats (via feedparser)
- Podcast enclosures and itunes:duration
- YouTube channel feeds (yt:videoId)
- Optional Authorization header for private feeds
- Short, user-safe error strings for failed checks
"""

import asyncio
import logging
import re
import socket
from dataclasses import dataclass
from datetime import datetime, timezone

import aiohttp
import feedparser
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

FEED_TIMEOUT = 15
USER_AGENT = "Clarus/1.0 (Podcast Feed Reader)"
ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml;q=0.9, */*;q=0.8"

YOUTUBE_THUMBNAIL = "https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"

MAX_DESCRIPTION_LENGTH = 2000

_DURATION_PART = re.compile(r"^\d+(\.\d+)?$")


class FeedFetchError(Exception):
    """The feed URL answered with a non-2xx status."""

    def __init__(self, status: int):
        self.status = status
        super().__init__(f"Failed to fetch feed: HTTP {status}")


class FeedParseError(Exception):
    """The response body is not an RSS or Atom document."""


@dataclass
class FeedEntry:
    """A single episode or video from a feed."""
    url: str
    title: str
    published: datetime | None
    description: str | None = None
    duration_seconds: int | None = None
    thumbnail_url: str | None = None
    video_id: str | None = None

    def to_row(self) -> dict:
        """Column values for FeedItemRepository.insert_new."""
        return {
            "item_url": self.url,
            "title": self.title,
            "description": self.description,
            "published_at": self.published,
            "duration_seconds": self.duration_seconds,
            "thumbnail_url": self.thumbnail_url,
            "video_id": self.video_id,
        }


@dataclass
class ParsedFeed:
    """A parsed feed and its entries, newest first as published."""
    url: str
    title: str
    description: str | None
    entries: list[FeedEntry]


def parse_duration(value: str | int | None) -> int | None:
    """
    Parse an itunes:duration value into seconds.

    Accepts plain seconds, ``MM:SS`` and ``HH:MM:SS``.
    """
    if value is None:
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None

    parts = text.split(":")
    if not all(_DURATION_PART.match(part) for part in parts):
        return None
    numbers = [int(float(part)) for part in parts]
    if len(numbers) == 1:
        return numbers[0]
    if len(numbers) == 2:
        return numbers[0] * 60 + numbers[1]
    if len(numbers) == 3:
        return numbers[0] * 3600 + numbers[1] * 60 + numbers[2]
    return None


def strip_html(html: str | None) -> str | None:
    """Plain text of an HTML fragment, truncated for storage."""
    if not html:
        return None
    text = BeautifulSoup(html, "html.parser").get_text(" ", strip=True)
    text = re.sub(r"\s+", " ", text).strip()
    return text[:MAX_DESCRIPTION_LENGTH] or None


def classify_feed_error(exc: BaseException) -> str:
    """Reduce a fetch or parse exception to a short message safe to show users."""
    if isinstance(exc, asyncio.TimeoutError):
        return "Feed request timed out"
    if isinstance(exc, FeedFetchError):
        if exc.status in (401, 403):
            return f"Feed requires authorization (HTTP {exc.status})"
        if exc.status == 404:
            return "Feed not found (HTTP 404)"
        return f"Feed returned HTTP {exc.status}"
    if isinstance(exc, FeedParseError):
        return "Response is not a valid RSS or Atom feed"
    if isinstance(exc, aiohttp.ClientConnectorError):
        if isinstance(exc.os_error, socket.gaierror):
            return "Feed host could not be resolved"
        return "Could not connect to feed host"
    if isinstance(exc, aiohttp.ClientError):
        return "Feed request failed"
    return "Feed check failed"


def _entry_published(entry) -> datetime | None:
    for key in ("published_parsed", "updated_parsed"):
        value = entry.get(key)
        if value:
            try:
                return datetime(*value[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue
    return None


def _audio_enclosure(entry) -> str | None:
    enclosures = entry.get("enclosures") or []
    for enclosure in enclosures:
        href = enclosure.get("href")
        if href and (enclosure.get("type") or "").startswith("audio/"):
            return href
    # Some feeds omit the MIME type
    for enclosure in enclosures:
        if enclosure.get("href"):
            return enclosure["href"]
    return None


def _entry_link(entry) -> str:
    link = entry.get("link") or ""
    if not link:
        for candidate in entry.get("links") or []:
            if candidate.get("rel") == "alternate" or candidate.get("type") == "text/html":
                link = candidate.get("href", "")
                break
    return link


def _entry_description(entry) -> str | None:
    if entry.get("content"):
        return strip_html(entry.content[0].get("value"))
    return strip_html(entry.get("summary") or entry.get("description"))


class FeedParser:
    """Fetches and parses subscribed feeds."""

    def __init__(self, timeout: int = FEED_TIMEOUT, user_agent: str | None = None):
        self.timeout = timeout
        self.user_agent = user_agent or USER_AGENT

    async def _get(self, url: str, headers: dict) -> str:
        async with aiohttp.ClientSession() as session:
            async with session.get(
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status >= 400:
                    raise FeedFetchError(resp.status)
                return await resp.text()

    async def fetch(self, url: str, feed_type: str = "podcast", auth_header: str | None = None) -> ParsedFeed:
        """
        Fetch and parse a feed URL.

        Args:
            url: Feed URL
            feed_type: "podcast" or "youtube"
            auth_header: Decrypted Authorization header for private feeds

        Raises:
            FeedFetchError: Non-2xx response
            FeedParseError: Body is not a feed
            asyncio.TimeoutError, aiohttp.ClientError: Transport failures
        """
        headers = {"User-Agent": self.user_agent, "Accept": ACCEPT}
        if auth_header:
            headers["Authorization"] = auth_header

        body = await self._get(url, headers)
        return self.parse(url, body, feed_type)

    def parse(self, url: str, content: str, feed_type: str = "podcast") -> ParsedFeed:
        """Parse feed content using feedparser."""
        parsed = feedparser.parse(content)

        if not parsed.get("version") and not parsed.entries:
            raise FeedParseError("Response is not a valid RSS or Atom feed")

        entries = []
        for entry in parsed.entries:
            item = self._youtube_entry(entry) if feed_type == "youtube" else self._podcast_entry(entry)
            if item is not None:
                entries.append(item)

        return ParsedFeed(
            url=url,
            title=parsed.feed.get("title", "Unknown Feed"),
            description=parsed.feed.get("description") or parsed.feed.get("subtitle"),
            entries=entries,
        )

    def _podcast_entry(self, entry) -> FeedEntry | None:
        url = _audio_enclosure(entry) or _entry_link(entry)
        if not url:
            return None
        image = entry.get("image") or {}
        return FeedEntry(
            url=url,
            title=entry.get("title") or "Untitled Episode",
            published=_entry_published(entry),
            description=_entry_description(entry),
            duration_seconds=parse_duration(entry.get("itunes_duration")),
            thumbnail_url=image.get("href") if isinstance(image, dict) else None,
        )

    def _youtube_entry(self, entry) -> FeedEntry | None:
        video_id = entry.get("yt_videoid")
        url = _entry_link(entry) or (f"https://www.youtube.com/watch?v={video_id}" if video_id else "")
        if not url:
            return None
        return FeedEntry(
            url=url,
            title=entry.get("title") or "Untitled Video",
            published=_entry_published(entry),
            description=strip_html(entry.get("summary")),
            thumbnail_url=YOUTUBE_THUMBNAIL.format(video_id=video_id) if video_id else None,
            video_id=video_id,
        )
