"""
X (Twitter) post extractor.

x.com pages need JavaScript, so posts are read through embed-friendly
mirrors first (fixupx.com for x.com, fxtwitter.com for twitter.com), then
the original URL. The mirrors serve the post text in Open Graph tags.
When no candidate yields text, Firecrawl is tried on the original URL.
"""

import logging
import time
from urllib.parse import urlparse, urlunparse

import aiohttp
from bs4 import BeautifulSoup

from .article import ArticleExtractor
from .base import (
    ContentType,
    ExtractionError,
    ExtractionResult,
    Extractor,
    FailureReason,
    raise_for_status,
    with_retries,
)

logger = logging.getLogger(__name__)

MIN_POST_LENGTH = 20

FETCH_TIMEOUT = 15

MIRRORS = {
    "x.com": "fixupx.com",
    "twitter.com": "fxtwitter.com",
}

# Mirrors only serve Open Graph tags to crawler user agents
USER_AGENT = "Mozilla/5.0 (compatible; Discordbot/2.0; +https://discordapp.com)"


def candidate_urls(url: str) -> list[str]:
    """Mirror URLs to try, in order, followed by the original."""
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower().removeprefix("www.").removeprefix("mobile.")
    candidates = []
    for source, mirror in MIRRORS.items():
        if host == source:
            candidates.append(urlunparse(parsed._replace(netloc=mirror)))
    # Both mirrors accept both URL shapes
    for mirror in MIRRORS.values():
        alt = urlunparse(parsed._replace(netloc=mirror))
        if alt not in candidates:
            candidates.append(alt)
    candidates.append(url)
    return candidates


def parse_post_html(html: str) -> ExtractionResult | None:
    """Read post text, author and image from Open Graph meta tags."""
    soup = BeautifulSoup(html, "html.parser")

    def meta(prop: str) -> str:
        tag = soup.find("meta", property=prop) or soup.find("meta", attrs={"name": prop})
        return (tag.get("content") or "").strip() if tag else ""

    text = meta("og:description") or meta("twitter:description")
    if not text:
        return None

    author = meta("og:title") or meta("twitter:title") or None
    image = meta("og:image") or None
    # Avatars are not post media
    if image and "profile_images" in image:
        image = None

    return ExtractionResult(
        full_text=text,
        title=author,
        author=author,
        thumbnail_url=image,
    )


class SocialPostExtractor(Extractor):
    """Extractor for X/Twitter posts."""

    CONTENT_TYPE = ContentType.SOCIAL_POST
    DOMAINS = ["x.com", "twitter.com"]

    def __init__(self, scraper: ArticleExtractor | None = None, **kwargs):
        super().__init__(**kwargs)
        self.scraper = scraper

    async def _fetch_html(self, url: str) -> str:
        async with aiohttp.ClientSession(headers={"User-Agent": USER_AGENT}) as session:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=FETCH_TIMEOUT)) as resp:
                raise_for_status(resp.status, urlparse(url).netloc)
                return await resp.text()

    async def extract(self, url: str, content_id: int | None = None) -> ExtractionResult:
        last_error: ExtractionError | None = None

        for candidate in candidate_urls(url):
            started = time.monotonic()
            try:
                html = await with_retries(
                    lambda: self._fetch_html(candidate),
                    service=urlparse(candidate).netloc,
                    attempts=2,
                    wait=self.retry_wait,
                )
            except ExtractionError as e:
                logger.info(f"X post fetch via {urlparse(candidate).netloc} failed: {e.message}")
                self._log_usage("x_post", "fetch", "error", started, content_id, e.message)
                last_error = e
                continue

            result = parse_post_html(html)
            if result and len(result.full_text) >= MIN_POST_LENGTH:
                self._log_usage("x_post", "fetch", "success", started, content_id)
                return result

        if self.scraper is not None:
            try:
                result = await self.scraper.scrape(url, content_id)
            except ExtractionError as e:
                last_error = e
            else:
                if len(result.full_text) >= MIN_POST_LENGTH:
                    return result

        if last_error is not None and last_error.reason in (FailureReason.NETWORK, FailureReason.TIMEOUT):
            raise last_error
        raise ExtractionError(FailureReason.EMPTY, "Post text could not be extracted")
