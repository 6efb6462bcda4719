"""
AI analysis orchestrator.

Runs the two-phase fan-out/fan-in pipeline for one content item:
- Phase 1 (parallel): tone detection and web-search grounding, on fast models
- Phase 2 (parallel): the six main sections, each written to the summary
  row as soon as it lands so pollers see partial results
- Post-processing: auto-tags from the completed sections

Every AI call goes through attempt_call with an ordered model list. A
section that exhausts its list is recorded as failed; siblings continue.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..database import Database, DBContent, SECTION_ORDER
from ..exceptions import ErrorKind, PipelineError
from ..languages import DEFAULT_LANGUAGE, language_directive
from ..prompt_sanitizer import INSTRUCTION_ANCHOR, build_user_prompt, sanitize, wrap_user_content
from ..providers import (
    AllModelsFailedError,
    CallContext,
    LLMProvider,
    ModelDescriptor,
    attempt_call,
)
from .prompts import (
    AUTO_TAGS,
    CONTENT_TYPE_LABELS,
    MAIN_SECTIONS,
    TONE_DETECTION,
    SectionPrompt,
)
from .sections import SECTION_VALIDATORS, ContentRefusedError, validate_tags, validate_tone
from .web_search import TavilyClient, WebSearchResult, extract_topics

if TYPE_CHECKING:
    from ..api_usage import ApiUsageLogger

logger = logging.getLogger(__name__)

NEUTRAL_TONE_LABEL = "neutral"
NEUTRAL_TONE_DIRECTIVE = (
    "The content uses a standard informational tone. Write your analysis in a clear, neutral voice."
)


@dataclass
class Tone:
    label: str = NEUTRAL_TONE_LABEL
    directive: str = NEUTRAL_TONE_DIRECTIVE


@dataclass
class AnalysisResult:
    content_id: int
    language: str
    status: str
    completed_sections: list[str] = field(default_factory=list)
    failed_sections: list[str] = field(default_factory=list)
    tone: str = NEUTRAL_TONE_LABEL
    tags: list[str] = field(default_factory=list)
    web_searches: int = 0


def sample_for_tone(text: str) -> str:
    """First 2K, plus the middle 1K past 6K chars and the last 1K past 4K chars."""
    segments = [text[:2000]]
    if len(text) > 6000:
        mid = len(text) // 2
        segments.append(text[mid - 500:mid + 500])
    if len(text) > 4000:
        segments.append(text[-1000:])
    return "\n\n---\n\n".join(segments)


class AnalysisOrchestrator:
    """
    Multi-section analysis of extracted content.

    Args:
        db: Database facade
        provider: LLM provider used for every call
        analysis_models: Fallback list for the main sections
        fast_models: Fallback list for tone, topics and tags
        search: Tavily client, None to skip web grounding
        usage_logger: Cost accounting sink
    """

    def __init__(
        self,
        db: Database,
        provider: LLMProvider,
        analysis_models: list[ModelDescriptor],
        fast_models: list[ModelDescriptor],
        search: TavilyClient | None = None,
        usage_logger: "ApiUsageLogger | None" = None,
    ):
        if not analysis_models or not fast_models:
            raise ValueError("Model fallback lists must not be empty")
        self.db = db
        self.provider = provider
        self.analysis_models = analysis_models
        self.fast_models = fast_models
        self.search = search
        self.usage_logger = usage_logger

    def _context(self, content: DBContent, user_id: int | None) -> CallContext:
        return CallContext(
            usage_logger=self.usage_logger,
            content_id=content.id,
            user_id=user_id if user_id is not None else content.user_id,
            api_name=self.provider.name,
        )

    # ─────────────────────────────────────────────────────────────
    # Phase 1
    # ─────────────────────────────────────────────────────────────

    async def detect_tone(self, content: DBContent, context: CallContext) -> Tone:
        """Tone label and directive; neutral on any failure."""
        title_line = f"Title: {sanitize(content.title, max_length=500, context='tone-title')}" if content.title else ""
        prompt = build_user_prompt(
            TONE_DETECTION.instructions.format(
                type=CONTENT_TYPE_LABELS.get(content.type, content.type),
                title_line=title_line,
            ),
            sample_for_tone(content.full_text or ""),
            context="tone-detection",
        )
        try:
            result = await attempt_call(
                self.provider,
                self.fast_models,
                TONE_DETECTION.system,
                prompt,
                section=TONE_DETECTION.name,
                context=context,
                validate=validate_tone,
            )
        except AllModelsFailedError as e:
            logger.warning(f"Tone detection failed (non-fatal): {e}")
            return Tone()
        label, directive = result.data
        return Tone(label, directive)

    async def gather_web_context(
        self,
        content: DBContent,
        context: CallContext,
        cache: dict[str, WebSearchResult],
    ) -> tuple[str, int]:
        """Formatted verification block and number of searches used."""
        if self.search is None:
            return "", 0
        text = content.full_text or ""
        queries = await extract_topics(self.provider, self.fast_models, text, context)
        if not queries:
            return "", 0
        web = await self.search.build_context(queries, cache, content.id)
        if web is None:
            return "", 0
        logger.info(
            f"Web context for content {content.id}: {len(web.searches)} searches "
            f"({web.api_calls} API calls, {web.cache_hits} cached)"
        )
        return web.formatted, len(web.searches)

    # ─────────────────────────────────────────────────────────────
    # Phase 2
    # ─────────────────────────────────────────────────────────────

    def build_section_prompt(
        self,
        prompt: SectionPrompt,
        content: DBContent,
        tone: Tone,
        language: str,
        web_context: str,
    ) -> str:
        instructions = prompt.instructions.format(
            type=CONTENT_TYPE_LABELS.get(content.type, content.type),
            tone=tone.directive if prompt.uses_tone else "",
            language=language_directive(language),
        )
        text = sanitize((content.full_text or "")[:prompt.max_chars], context=f"analysis-{prompt.name}")
        web = web_context if prompt.use_web_context else ""
        return f"{instructions}\n\n{wrap_user_content(text)}{web}{INSTRUCTION_ANCHOR}"

    async def run_section(
        self,
        name: str,
        content: DBContent,
        tone: Tone,
        language: str,
        web_context: str,
        context: CallContext,
    ) -> bool:
        """Generate and persist one section. Returns False if every model failed."""
        prompt = MAIN_SECTIONS[name]
        models = [
            ModelDescriptor(m.name, prompt.max_tokens, prompt.temperature, m.timeout_seconds)
            for m in self.analysis_models
        ]

        def validate(data):
            try:
                return SECTION_VALIDATORS[name](data)
            except ContentRefusedError as e:
                logger.warning(f"MODERATION: AI refused [{name}] for {content.url}: {e.reason} ({', '.join(e.categories)})")
                raise

        try:
            result = await attempt_call(
                self.provider,
                models,
                prompt.system,
                self.build_section_prompt(prompt, content, tone, language, web_context),
                section=name,
                context=context,
                parse_json=prompt.expect_json,
                validate=validate,
            )
        except AllModelsFailedError as e:
            logger.warning(f"Section {name} failed for content {content.id}: {e}")
            return False

        value = result.data
        if name == "mid_length_summary":
            if value["title"] and not content.title:
                self.db.content.update(content.id, title=value["title"][:300])
            value = value["summary"]

        status = self.db.summaries.write_section(content.id, language, name, value, result.model)
        logger.info(f"Section {name} saved for content {content.id} (status: {status})")
        return True

    # ─────────────────────────────────────────────────────────────
    # Post-processing
    # ─────────────────────────────────────────────────────────────

    async def generate_tags(self, content: DBContent, language: str, context: CallContext) -> list[str]:
        """Tags from the completed sections (source text as a fallback)."""
        summary = self.db.summaries.get(content.id, language)
        parts = []
        if summary:
            parts = [p for p in (summary.brief_overview, summary.mid_length_summary) if p]
        source = "\n\n".join(parts) or (content.full_text or "")
        prompt = build_user_prompt(
            AUTO_TAGS.instructions.format(type=CONTENT_TYPE_LABELS.get(content.type, content.type)),
            source[:AUTO_TAGS.max_chars],
            context="auto-tags",
        )
        try:
            result = await attempt_call(
                self.provider,
                self.fast_models,
                AUTO_TAGS.system,
                prompt,
                section=AUTO_TAGS.name,
                context=context,
                validate=validate_tags,
            )
        except AllModelsFailedError as e:
            logger.warning(f"Auto-tagging failed for content {content.id}: {e}")
            return []
        if result.data:
            self.db.content.set_tags(content.id, result.data)
        return result.data

    # ─────────────────────────────────────────────────────────────
    # Pipeline
    # ─────────────────────────────────────────────────────────────

    async def analyze(
        self,
        content_id: int,
        language: str = DEFAULT_LANGUAGE,
        user_id: int | None = None,
    ) -> AnalysisResult:
        """
        Run the full pipeline for one content item.

        Raises:
            PipelineError: If the content is missing or has no usable text
        """
        content = self.db.content.get(content_id)
        if content is None:
            raise PipelineError(f"Content {content_id} not found", ErrorKind.PERMANENT_INPUT)
        if not content.has_text:
            raise PipelineError(f"Content {content_id} has no extracted text", ErrorKind.PERMANENT_INPUT)

        context = self._context(content, user_id)
        self.db.summaries.start_analysis(content.id, context.user_id, language, self.analysis_models[0].name)
        self.db.content.update(content.id, processing_status="analyzing", analysis_language=language)
        logger.info(f"Analyzing content {content.id} ({content.type}, {len(content.full_text)} chars, {language})")

        try:
            tone, web_context, web_searches = await self.run_phase_one(content, context)
            completed, failed = await self.run_phase_two(content, tone, language, web_context, context)
            status = self.db.summaries.finish_analysis(content.id, language, failed)
            self.db.content.update(content.id, processing_status=status)
        except Exception:
            logger.exception(f"Analysis of content {content.id} aborted")
            self.db.summaries.set_status(content.id, language, "error")
            self.db.content.update(content.id, processing_status="error")
            raise

        tags: list[str] = []
        if completed:
            try:
                tags = await self.generate_tags(content, language, context)
            except Exception as e:
                logger.error(f"Auto-tagging raised for content {content.id}: {e!r}")

        logger.info(
            f"Analysis of content {content.id} finished: {status} "
            f"({len(completed)}/{len(SECTION_ORDER)} sections)"
        )
        return AnalysisResult(
            content_id=content.id,
            language=language,
            status=status,
            completed_sections=completed,
            failed_sections=failed,
            tone=tone.label,
            tags=tags,
            web_searches=web_searches,
        )

    async def run_phase_one(self, content: DBContent, context: CallContext) -> tuple[Tone, str, int]:
        """Tone and web context; either falls back to its default when it raises."""
        search_cache: dict[str, WebSearchResult] = {}
        tone, web = await asyncio.gather(
            self.detect_tone(content, context),
            self.gather_web_context(content, context, search_cache),
            return_exceptions=True,
        )
        if isinstance(tone, BaseException):
            logger.error(f"Tone detection raised for content {content.id}: {tone!r}")
            tone = Tone()
        if isinstance(web, BaseException):
            logger.error(f"Web context raised for content {content.id}: {web!r}")
            web = ("", 0)
        self.db.content.update(content.id, detected_tone=tone.label)
        web_context, web_searches = web
        return tone, web_context, web_searches

    async def run_phase_two(
        self,
        content: DBContent,
        tone: Tone,
        language: str,
        web_context: str,
        context: CallContext,
    ) -> tuple[list[str], list[str]]:
        """Run every section concurrently; returns (completed, failed) names."""
        outcomes = await asyncio.gather(
            *(self.run_section(name, content, tone, language, web_context, context) for name in SECTION_ORDER),
            return_exceptions=True,
        )
        completed, failed = [], []
        for name, outcome in zip(SECTION_ORDER, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Section {name} raised for content {content.id}: {outcome!r}")
                failed.append(name)
            elif outcome:
                completed.append(name)
            else:
                failed.append(name)
        return completed, failed
