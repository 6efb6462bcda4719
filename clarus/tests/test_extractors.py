"""
Tests for URL classification and the content extractors.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from tenacity import wait_none

from clarus.extractors import (
    ArticleExtractor,
    ContentType,
    ExtractionDispatcher,
    ExtractionError,
    ExtractionResult,
    FailureReason,
    SocialPostExtractor,
    YouTubeExtractor,
    classify_url,
    extract_video_id,
    failure_sentinel,
    is_podcast_url,
    parse_failure_sentinel,
    with_retries,
)
from clarus.extractors.base import raise_for_status
from clarus.extractors.paywall import (
    PREVIEW_WARNING,
    SHORT_CONTENT_WARNING,
    SUBSCRIPTION_WARNING,
    detect_paywall_truncation,
    is_paywalled_domain,
)
from clarus.extractors.social import candidate_urls, parse_post_html
from clarus.extractors.youtube import format_offset, group_transcript_segments

ARTICLE_TEXT = "Water boils when its vapor pressure equals the surrounding air pressure. " * 3

POST_HTML = """<html><head>
<meta property="og:title" content="Jane Cook (@janecooks)">
<meta property="og:description" content="Salt does not make water boil faster. It raises the boiling point slightly.">
<meta property="og:image" content="https://pbs.twimg.com/media/boil.jpg">
</head><body></body></html>"""


class TestVideoIds:
    """Tests for YouTube URL parsing."""

    @pytest.mark.parametrize("url", [
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://youtube.com/watch?v=dQw4w9WgXcQ&t=42s",
        "https://youtu.be/dQw4w9WgXcQ",
        "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "https://www.youtube.com/live/dQw4w9WgXcQ?feature=share",
        "https://m.youtube.com/watch?v=dQw4w9WgXcQ",
    ])
    def test_video_id_forms(self, url):
        assert extract_video_id(url) == "dQw4w9WgXcQ"

    def test_non_video_urls(self):
        assert extract_video_id("https://www.youtube.com/@kitchenscience") is None
        assert extract_video_id("https://www.youtube.com/watch") is None
        assert extract_video_id("https://example.com/watch?v=dQw4w9WgXcQ") is None

    def test_format_offset(self):
        assert format_offset(0) == "0:00"
        assert format_offset(65_000) == "1:05"
        assert format_offset(3_725_000) == "1:02:05"

    def test_group_transcript_segments(self):
        """Segments are merged into 30-second paragraphs."""
        segments = [
            {"text": "Hello", "offset": 0},
            {"text": "and welcome.", "offset": 29_000},
            {"text": "  ", "offset": 30_500},
            {"text": "Today: boiling.", "offset": 31_000},
        ]
        assert group_transcript_segments(segments) == "[0:00] Hello and welcome.\n\n[0:30] Today: boiling."


class TestClassifyUrl:
    """Tests for content type classification."""

    def test_video(self):
        assert classify_url("https://youtu.be/dQw4w9WgXcQ") == ContentType.VIDEO

    def test_youtube_channel_is_not_video(self):
        assert classify_url("https://www.youtube.com/@kitchenscience") == ContentType.ARTICLE

    def test_social_post(self):
        assert classify_url("https://x.com/janecooks/status/1790000000000000000") == ContentType.SOCIAL_POST
        assert classify_url("https://mobile.twitter.com/janecooks/status/1") == ContentType.SOCIAL_POST

    def test_podcast(self):
        assert classify_url("https://cdn.example.com/episodes/42.MP3") == ContentType.PODCAST
        assert classify_url("https://anchor.fm/kitchen/episodes/boiling") == ContentType.PODCAST
        assert is_podcast_url("https://feeds.megaphone.fm/abc") is True

    def test_article_default(self):
        assert classify_url("https://blog.example.com/why-water-boils") == ContentType.ARTICLE
        assert is_podcast_url("https://notanchor.fm.example.com/x") is False


class TestSentinels:
    """Tests for failure sentinel helpers."""

    def test_build_and_parse(self):
        sentinel = failure_sentinel("YOUTUBE", "EMPTY")
        assert sentinel == "PROCESSING_FAILED::YOUTUBE::EMPTY"
        assert parse_failure_sentinel(sentinel) == ("YOUTUBE", "EMPTY")

    def test_reason_may_contain_separator(self):
        assert parse_failure_sentinel("PROCESSING_FAILED::TRANSCRIPTION::bad::audio") == \
            ("TRANSCRIPTION", "bad::audio")

    def test_ordinary_text(self):
        assert parse_failure_sentinel("A transcript") is None
        assert parse_failure_sentinel(None) is None


class TestRetries:
    """Tests for with_retries and HTTP status mapping."""

    def test_raise_for_status(self):
        raise_for_status(200, "svc")
        with pytest.raises(ExtractionError) as exc_info:
            raise_for_status(404, "svc")
        assert exc_info.value.reason == FailureReason.BLOCKED
        assert exc_info.value.retryable is False
        with pytest.raises(ExtractionError) as exc_info:
            raise_for_status(429, "svc")
        assert exc_info.value.retryable is True
        with pytest.raises(ExtractionError) as exc_info:
            raise_for_status(502, "svc")
        assert exc_info.value.reason == FailureReason.NETWORK

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        operation = AsyncMock(side_effect=[
            ExtractionError(FailureReason.NETWORK, "reset"),
            aiohttp.ClientPayloadError("truncated"),
            "ok",
        ])
        assert await with_retries(operation, "svc", wait=wait_none()) == "ok"
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_permanent_errors_not_retried(self):
        operation = AsyncMock(side_effect=ExtractionError(FailureReason.BLOCKED, "403"))
        with pytest.raises(ExtractionError):
            await with_retries(operation, "svc", wait=wait_none())
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_timeouts_exhaust_attempts(self):
        operation = AsyncMock(side_effect=asyncio.TimeoutError())
        with pytest.raises(ExtractionError) as exc_info:
            await with_retries(operation, "svc", attempts=2, wait=wait_none())
        assert exc_info.value.reason == FailureReason.TIMEOUT
        assert operation.await_count == 2


class TestDispatcher:
    """Tests for ExtractionDispatcher."""

    @pytest.mark.asyncio
    async def test_routes_by_type(self):
        article = MagicMock()
        article.extract = AsyncMock(return_value=ExtractionResult(full_text=ARTICLE_TEXT))
        dispatcher = ExtractionDispatcher(article=article)

        result = await dispatcher.extract("https://blog.example.com/boiling", content_id=3)

        assert result.full_text == ARTICLE_TEXT
        article.extract.assert_awaited_once_with("https://blog.example.com/boiling", 3)

    @pytest.mark.asyncio
    async def test_explicit_type_wins(self):
        social = MagicMock()
        social.extract = AsyncMock(return_value=ExtractionResult(full_text="post"))
        dispatcher = ExtractionDispatcher(social=social)
        await dispatcher.extract("https://example.com/p", "x_post")
        social.extract.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_podcast_not_extracted(self):
        with pytest.raises(ExtractionError) as exc_info:
            await ExtractionDispatcher().extract("https://cdn.example.com/ep.mp3")
        assert exc_info.value.reason == FailureReason.UNSUPPORTED

    @pytest.mark.asyncio
    async def test_unconfigured_type(self):
        with pytest.raises(ExtractionError) as exc_info:
            await ExtractionDispatcher().extract("https://youtu.be/dQw4w9WgXcQ")
        assert exc_info.value.reason == FailureReason.UNSUPPORTED
        assert "youtube" in exc_info.value.message


class TestYouTubeExtractor:
    """Tests for YouTubeExtractor with the Supadata calls patched."""

    METADATA = {
        "title": "Boiling, Explained",
        "channel": {"id": "UC1", "name": "Kitchen Science"},
        "duration": 612,
        "thumbnail": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg",
    }
    TRANSCRIPT = {"content": [{"text": "Hello", "offset": 0}, {"text": "Bubbles form.", "offset": 40_000}]}

    def _extractor(self, metadata, transcript):
        extractor = YouTubeExtractor("key", retry_wait=wait_none())

        async def fake_get(endpoint, params, timeout, service):
            value = metadata if endpoint.endswith("/video") else transcript
            if isinstance(value, Exception):
                raise value
            return value

        extractor._get_json = fake_get
        return extractor

    @pytest.mark.asyncio
    async def test_extracts_transcript_and_metadata(self):
        extractor = self._extractor(self.METADATA, self.TRANSCRIPT)
        result = await extractor.extract("https://youtu.be/dQw4w9WgXcQ")
        assert result.full_text == "[0:00] Hello\n\n[0:30] Bubbles form."
        assert result.title == "Boiling, Explained"
        assert result.author == "Kitchen Science"
        assert result.duration == 612
        assert result.metadata["channel_id"] == "UC1"

    @pytest.mark.asyncio
    async def test_metadata_failure_is_tolerated(self):
        extractor = self._extractor(ExtractionError(FailureReason.BLOCKED, "403"), self.TRANSCRIPT)
        result = await extractor.extract("https://youtu.be/dQw4w9WgXcQ")
        assert result.full_text.startswith("[0:00] Hello")
        assert result.title is None

    @pytest.mark.asyncio
    async def test_channel_as_plain_string(self):
        metadata = {**self.METADATA, "channel": "Kitchen Science"}
        result = await self._extractor(metadata, self.TRANSCRIPT).extract("https://youtu.be/dQw4w9WgXcQ")
        assert result.author == "Kitchen Science"
        assert result.metadata["channel_id"] is None

    @pytest.mark.asyncio
    async def test_malformed_metadata_is_ignored(self):
        result = await self._extractor(["not", "a", "dict"], self.TRANSCRIPT).extract("https://youtu.be/dQw4w9WgXcQ")
        assert result.title is None
        assert result.full_text.startswith("[0:00] Hello")

    @pytest.mark.asyncio
    async def test_missing_transcript_is_empty(self):
        extractor = self._extractor(self.METADATA, {"content": []})
        with pytest.raises(ExtractionError) as exc_info:
            await extractor.extract("https://youtu.be/dQw4w9WgXcQ")
        assert exc_info.value.reason == FailureReason.EMPTY

    @pytest.mark.asyncio
    async def test_transcript_failure_propagates(self):
        extractor = self._extractor(self.METADATA, ExtractionError(FailureReason.BLOCKED, "403"))
        with pytest.raises(ExtractionError) as exc_info:
            await extractor.extract("https://youtu.be/dQw4w9WgXcQ")
        assert exc_info.value.reason == FailureReason.BLOCKED

    @pytest.mark.asyncio
    async def test_plain_text_transcript(self):
        extractor = self._extractor({}, {"content": "  Just text.  "})
        assert (await extractor.extract("https://youtu.be/dQw4w9WgXcQ")).full_text == "Just text."

    @pytest.mark.asyncio
    async def test_unrecognized_url(self):
        with pytest.raises(ExtractionError) as exc_info:
            await YouTubeExtractor("key").extract("https://www.youtube.com/@kitchenscience")
        assert exc_info.value.reason == FailureReason.UNSUPPORTED


class TestSocialPostExtractor:
    """Tests for X post extraction via mirrors."""

    def test_candidate_urls(self):
        assert candidate_urls("https://x.com/janecooks/status/1") == [
            "https://fixupx.com/janecooks/status/1",
            "https://fxtwitter.com/janecooks/status/1",
            "https://x.com/janecooks/status/1",
        ]
        assert candidate_urls("https://twitter.com/janecooks/status/1")[0] == \
            "https://fxtwitter.com/janecooks/status/1"

    def test_parse_post_html(self):
        result = parse_post_html(POST_HTML)
        assert result.full_text.startswith("Salt does not make water boil faster.")
        assert result.author == "Jane Cook (@janecooks)"
        assert result.thumbnail_url == "https://pbs.twimg.com/media/boil.jpg"

    def test_avatar_is_not_media(self):
        html = POST_HTML.replace("media/boil.jpg", "profile_images/1/avatar.jpg")
        assert parse_post_html(html).thumbnail_url is None

    def test_page_without_og_tags(self):
        assert parse_post_html("<html><body>Log in to X</body></html>") is None

    @pytest.mark.asyncio
    async def test_first_mirror(self):
        extractor = SocialPostExtractor(retry_wait=wait_none())
        with patch.object(extractor, "_fetch_html", new=AsyncMock(return_value=POST_HTML)) as fetch:
            result = await extractor.extract("https://x.com/janecooks/status/1")
        assert result.author == "Jane Cook (@janecooks)"
        fetch.assert_awaited_once_with("https://fixupx.com/janecooks/status/1")

    @pytest.mark.asyncio
    async def test_falls_through_to_next_mirror(self):
        extractor = SocialPostExtractor(retry_wait=wait_none())
        fetch = AsyncMock(side_effect=[ExtractionError(FailureReason.BLOCKED, "403"), POST_HTML])
        with patch.object(extractor, "_fetch_html", new=fetch):
            result = await extractor.extract("https://x.com/janecooks/status/1")
        assert result.full_text.startswith("Salt")
        assert fetch.await_args_list[1].args == ("https://fxtwitter.com/janecooks/status/1",)

    @pytest.mark.asyncio
    async def test_scraper_fallback(self):
        """When no mirror yields text, the scraper is tried on the original URL."""
        scraper = MagicMock()
        scraper.scrape = AsyncMock(return_value=ExtractionResult(full_text="A long enough post scraped by Firecrawl."))
        extractor = SocialPostExtractor(scraper=scraper, retry_wait=wait_none())
        with patch.object(extractor, "_fetch_html", new=AsyncMock(return_value="<html></html>")):
            result = await extractor.extract("https://x.com/janecooks/status/1")
        assert result.full_text.startswith("A long enough post")
        scraper.scrape.assert_awaited_once_with("https://x.com/janecooks/status/1", None)

    @pytest.mark.asyncio
    async def test_nothing_found_is_empty(self):
        extractor = SocialPostExtractor(retry_wait=wait_none())
        with patch.object(extractor, "_fetch_html", new=AsyncMock(return_value="<html></html>")):
            with pytest.raises(ExtractionError) as exc_info:
                await extractor.extract("https://x.com/janecooks/status/1")
        assert exc_info.value.reason == FailureReason.EMPTY

    @pytest.mark.asyncio
    async def test_network_failure_reported(self):
        extractor = SocialPostExtractor(retry_wait=wait_none())
        fetch = AsyncMock(side_effect=ExtractionError(FailureReason.NETWORK, "reset"))
        with patch.object(extractor, "_fetch_html", new=fetch):
            with pytest.raises(ExtractionError) as exc_info:
                await extractor.extract("https://x.com/janecooks/status/1")
        assert exc_info.value.reason == FailureReason.NETWORK


class TestArticleExtractor:
    """Tests for ArticleExtractor with the Firecrawl call patched."""

    RESPONSE = {
        "success": True,
        "data": {
            "markdown": ARTICLE_TEXT,
            "metadata": {"title": "Why Water Boils", "description": "Physics", "ogImage": "https://img/x.png"},
        },
    }

    @pytest.mark.asyncio
    async def test_extracts_markdown(self):
        extractor = ArticleExtractor("key", retry_wait=wait_none())
        with patch.object(extractor, "_post_scrape", new=AsyncMock(return_value=self.RESPONSE)):
            result = await extractor.extract("https://blog.example.com/boiling")
        assert result.full_text == ARTICLE_TEXT.strip()
        assert result.title == "Why Water Boils"
        assert result.thumbnail_url == "https://img/x.png"

    @pytest.mark.asyncio
    async def test_short_page_is_empty(self):
        extractor = ArticleExtractor("key", retry_wait=wait_none())
        response = {"success": True, "data": {"markdown": "Subscribe!"}}
        with patch.object(extractor, "_post_scrape", new=AsyncMock(return_value=response)):
            with pytest.raises(ExtractionError) as exc_info:
                await extractor.extract("https://blog.example.com/paywall")
        assert exc_info.value.reason == FailureReason.EMPTY

    @pytest.mark.asyncio
    async def test_unsuccessful_scrape_is_blocked(self):
        extractor = ArticleExtractor("key", retry_wait=wait_none())
        response = {"success": False, "error": "Site blocks crawlers"}
        with patch.object(extractor, "_post_scrape", new=AsyncMock(return_value=response)):
            with pytest.raises(ExtractionError) as exc_info:
                await extractor.extract("https://blog.example.com/boiling")
        assert exc_info.value.reason == FailureReason.BLOCKED
        assert "Site blocks crawlers" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_server_errors_retried(self):
        extractor = ArticleExtractor("key", retry_wait=wait_none())
        scrape = AsyncMock(side_effect=[ExtractionError(FailureReason.NETWORK, "502"), self.RESPONSE])
        with patch.object(extractor, "_post_scrape", new=scrape):
            result = await extractor.extract("https://blog.example.com/boiling")
        assert result.title == "Why Water Boils"
        assert scrape.await_count == 2


class TestPaywallDetection:
    """Tests for the paywall heuristics."""

    def test_known_domains(self):
        assert is_paywalled_domain("https://www.nytimes.com/2026/article.html")
        assert is_paywalled_domain("https://markets.ft.com/data")
        assert not is_paywalled_domain("https://notft.com/story")
        assert not is_paywalled_domain("https://blog.example.com/post")

    def test_preview_from_paywalled_site(self):
        warning = detect_paywall_truncation("https://www.wsj.com/a", "Short teaser. " * 20, "article")
        assert warning == PREVIEW_WARNING

    def test_full_text_from_paywalled_site(self):
        warning = detect_paywall_truncation("https://www.wsj.com/a", ARTICLE_TEXT * 20, "article")
        assert warning == SUBSCRIPTION_WARNING

    def test_short_article_anywhere(self):
        assert detect_paywall_truncation("https://blog.example.com/a", ARTICLE_TEXT, "article") == SHORT_CONTENT_WARNING
        # Short posts are expected
        assert detect_paywall_truncation("https://x.com/a/status/1", "Short post.", "x_post") is None

    def test_long_article_is_fine(self):
        assert detect_paywall_truncation("https://blog.example.com/a", ARTICLE_TEXT * 5, "article") is None

    def test_transcripts_and_empty_text_skipped(self):
        assert detect_paywall_truncation("https://www.bloomberg.com/video", "Hi.", "youtube") is None
        assert detect_paywall_truncation("https://www.bloomberg.com/a", "", "article") is None
