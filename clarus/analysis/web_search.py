"""
Web verification context for fact-checking.

A fast model proposes a few search queries from the source text; each is
run through Tavily once per analysis run (a run-scoped cache is keyed by the
normalised query) and the results are rendered into a single context block
shared by every section that grounds claims.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import aiohttp

from ..extractors.base import ExtractionError, raise_for_status, read_json, with_retries
from ..prompt_sanitizer import build_user_prompt
from ..providers import AllModelsFailedError, CallContext, LLMProvider, ModelDescriptor, attempt_call
from .prompts import KEYWORD_EXTRACTION

if TYPE_CHECKING:
    from ..api_usage import ApiUsageLogger

logger = logging.getLogger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
TAVILY_TIMEOUT = 15
TAVILY_MAX_RESULTS = 3

MAX_QUERIES = 3

CONTEXT_HEADER = "## REAL-TIME WEB VERIFICATION CONTEXT"


@dataclass
class SearchHit:
    title: str
    url: str
    content: str = ""


@dataclass
class WebSearchResult:
    query: str
    answer: str | None = None
    results: list[SearchHit] = field(default_factory=list)


@dataclass
class WebSearchContext:
    searches: list[WebSearchResult]
    formatted: str
    api_calls: int = 0
    cache_hits: int = 0


def normalize_query(query: str) -> str:
    """Lower-case, collapse whitespace and strip trailing punctuation."""
    query = re.sub(r"\s+", " ", query.lower().strip())
    return re.sub(r"[?.!,]+$", "", query)


def dedupe_queries(queries: list[str]) -> list[str]:
    seen: set[str] = set()
    unique = []
    for query in queries:
        key = normalize_query(query)
        if key and key not in seen:
            seen.add(key)
            unique.append(query)
    return unique


def topic_budget(text: str) -> int:
    """Short content needs fewer searches."""
    if len(text) < 500:
        return 1
    if len(text) < 2000:
        return 2
    return MAX_QUERIES


def format_web_context(searches: list[WebSearchResult]) -> str:
    lines = [
        "",
        "",
        "---",
        CONTEXT_HEADER,
        "The following information was retrieved from web searches to help verify claims:",
        "",
    ]
    for search in searches:
        lines.append(f'### Search: "{search.query}"')
        if search.answer:
            lines.append(f"**Summary:** {search.answer}")
        for hit in search.results:
            lines.append(f"- [{hit.title}]({hit.url})")
            if hit.content:
                lines.append(f"  {hit.content[:200]}...")
        lines.append("")
    lines.append("---")
    lines.append("Use this web context to verify claims. If something conflicts with web results, note the discrepancy.")
    lines.append("")
    return "\n".join(lines)


def _queries_from(data) -> list[str]:
    if isinstance(data, list):
        raw = data
    elif isinstance(data, dict):
        raw = data.get("queries") or data.get("topics") or []
    else:
        raw = []
    if not isinstance(raw, list):
        raise ValueError("queries is not a list")
    return [q.strip() for q in raw if isinstance(q, str) and len(q.strip()) > 2]


async def extract_topics(
    provider: LLMProvider,
    models: list[ModelDescriptor],
    text: str,
    context: CallContext | None = None,
) -> list[str]:
    """Ask a fast model for up to topic_budget(text) search queries."""
    max_topics = topic_budget(text)
    prompt = build_user_prompt(
        KEYWORD_EXTRACTION.instructions.format(max_topics=max_topics),
        text[:KEYWORD_EXTRACTION.max_chars],
        context="keyword-extraction",
    )
    try:
        result = await attempt_call(
            provider,
            models,
            KEYWORD_EXTRACTION.system,
            prompt,
            section=KEYWORD_EXTRACTION.name,
            context=context,
            validate=_queries_from,
        )
    except AllModelsFailedError as e:
        logger.warning(f"Topic extraction failed, skipping web search: {e}")
        return []
    return dedupe_queries(result.data)[:max_topics]


class TavilyClient:
    """Tavily search with a per-run cache supplied by the caller."""

    def __init__(self, api_key: str, usage_logger: "ApiUsageLogger | None" = None, retry_wait=None):
        self.api_key = api_key
        self.usage_logger = usage_logger
        self.retry_wait = retry_wait

    async def _post_search(self, query: str) -> dict:
        payload = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": "basic",
            "include_answer": True,
            "include_raw_content": False,
            "max_results": TAVILY_MAX_RESULTS,
        }
        async with aiohttp.ClientSession() as session:
            async with session.post(
                TAVILY_SEARCH_URL,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=TAVILY_TIMEOUT),
            ) as resp:
                raise_for_status(resp.status, "Tavily")
                return await read_json(resp, "Tavily")

    def _log(self, status: str, started: float, content_id: int | None, error: str | None = None):
        if self.usage_logger is None:
            return
        self.usage_logger.log(
            api_name="tavily",
            operation="search",
            status=status,
            response_time_ms=int((time.monotonic() - started) * 1000),
            content_id=content_id,
            error_message=error,
        )

    async def search(
        self,
        query: str,
        cache: dict[str, WebSearchResult],
        content_id: int | None = None,
    ) -> WebSearchResult | None:
        """Search once per normalised query; failures return None."""
        key = normalize_query(query)
        if key in cache:
            return cache[key]

        started = time.monotonic()
        try:
            data = await with_retries(
                lambda: self._post_search(query),
                service="Tavily",
                wait=self.retry_wait,
            )
        except ExtractionError as e:
            logger.warning(f'Tavily search failed for "{query}": {e.message}')
            self._log("error", started, content_id, e.message)
            return None
        self._log("success", started, content_id)

        result = WebSearchResult(
            query=query,
            answer=(data or {}).get("answer"),
            results=[
                SearchHit(
                    title=hit.get("title") or "",
                    url=hit.get("url") or "",
                    content=(hit.get("content") or "")[:500],
                )
                for hit in ((data or {}).get("results") or [])[:TAVILY_MAX_RESULTS]
            ],
        )
        cache[key] = result
        return result

    async def build_context(
        self,
        queries: list[str],
        cache: dict[str, WebSearchResult],
        content_id: int | None = None,
    ) -> WebSearchContext | None:
        """Run deduplicated queries concurrently and render the shared block."""
        queries = dedupe_queries(queries)[:MAX_QUERIES]
        if not queries:
            return None

        cache_hits = sum(1 for q in queries if normalize_query(q) in cache)
        results = await asyncio.gather(*(self.search(q, cache, content_id) for q in queries))
        searches = [r for r in results if r is not None and r.results]
        if not searches:
            return None

        return WebSearchContext(
            searches=searches,
            formatted=format_web_context(searches),
            api_calls=len(queries) - cache_hits,
            cache_hits=cache_hits,
        )
