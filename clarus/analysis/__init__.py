"""
Multi-section AI analysis of extracted content.
"""

from .orchestrator import (
    NEUTRAL_TONE_DIRECTIVE,
    NEUTRAL_TONE_LABEL,
    AnalysisOrchestrator,
    AnalysisResult,
    Tone,
    sample_for_tone,
)
from .web_search import (
    TavilyClient,
    WebSearchContext,
    WebSearchResult,
    dedupe_queries,
    extract_topics,
    format_web_context,
    normalize_query,
    topic_budget,
)

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisResult",
    "NEUTRAL_TONE_DIRECTIVE",
    "NEUTRAL_TONE_LABEL",
    "TavilyClient",
    "Tone",
    "WebSearchContext",
    "WebSearchResult",
    "dedupe_queries",
    "extract_topics",
    "format_web_context",
    "normalize_query",
    "sample_for_tone",
    "topic_budget",
]
