"""
Article extractor backed by the Firecrawl scrape API.
"""

import logging
import time

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

FIRECRAWL_SCRAPE_URL = "https://api.firecrawl.dev/v0/scrape"
FIRECRAWL_TIMEOUT = 30

MIN_ARTICLE_LENGTH = 50


class ArticleExtractor(Extractor):
    """Main-content scraper for generic web pages."""

    CONTENT_TYPE = ContentType.ARTICLE

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    async def _post_scrape(self, url: str) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        payload = {"url": url, "pageOptions": {"onlyMainContent": True}}
        async with aiohttp.ClientSession(headers=headers) as session:
            async with session.post(
                FIRECRAWL_SCRAPE_URL,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=FIRECRAWL_TIMEOUT),
            ) as resp:
                raise_for_status(resp.status, "Firecrawl")
                return await read_json(resp, "Firecrawl")

    async def scrape(self, url: str, content_id: int | None = None) -> ExtractionResult:
        """Scrape one URL; raises ExtractionError."""
        started = time.monotonic()
        try:
            result = await with_retries(
                lambda: self._post_scrape(url),
                service="Firecrawl",
                wait=self.retry_wait,
            )
            if not result.get("success") or not result.get("data"):
                raise ExtractionError(
                    FailureReason.BLOCKED,
                    f"Firecrawl could not extract content: {result.get('error') or 'unknown error'}",
                )
        except ExtractionError as e:
            self._log_usage("firecrawl", "scrape", "error", started, content_id, e.message)
            raise
        self._log_usage("firecrawl", "scrape", "success", started, content_id)

        data = result["data"]
        metadata = data.get("metadata") or {}
        text = (data.get("markdown") or data.get("content") or "").strip()
        return ExtractionResult(
            full_text=text,
            title=metadata.get("title") or None,
            description=metadata.get("description") or None,
            thumbnail_url=metadata.get("ogImage") or None,
        )

    async def extract(self, url: str, content_id: int | None = None) -> ExtractionResult:
        result = await self.scrape(url, content_id)
        if len(result.full_text) < MIN_ARTICLE_LENGTH:
            raise ExtractionError(FailureReason.EMPTY, "Article has no readable content")
        return result
