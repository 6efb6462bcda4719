"""
Translation service: localize a completed analysis into another language.

Only the human-language fields of the source summary are sent to the
model. Scores, severities and verdicts stay out of the payload entirely,
and the merge step falls back to the source value for any field the model
dropped or returned with the wrong type.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from fastapi import HTTPException

from ..database import Database, DBSummary, SECTION_ORDER
from ..exceptions import ErrorKind, ProcessContentError, require_content
from ..languages import DEFAULT_LANGUAGE, get_language, is_valid_language
from ..prompt_sanitizer import INSTRUCTION_ANCHOR, sanitize, wrap_user_content
from ..providers import (
    AllModelsFailedError,
    CallContext,
    LLMProvider,
    ModelDescriptor,
    attempt_call,
)
from ..tier_limits import has_feature

if TYPE_CHECKING:
    from ..api_usage import ApiUsageLogger
    from ..usage import UsageGate

logger = logging.getLogger(__name__)

MAX_FIELD_LENGTH = 50_000

TRANSLATION_MAX_TOKENS = 16000
TRANSLATION_TEMPERATURE = 0.3
TRANSLATION_TIMEOUT = 60.0

# Free-text sub-fields that are translated; everything else is carried over
TRIAGE_TEXT_FIELDS = ("worth_your_time", "target_audience", "content_density", "estimated_value")
ISSUE_TEXT_FIELDS = ("claim_or_issue", "assessment")
CLAIM_TEXT_FIELDS = ("claim", "explanation")
ACTION_TEXT_FIELDS = ("title", "description")


@dataclass
class TranslationOutcome:
    """Result of a translate request; summary is None while in flight."""
    summary: DBSummary | None
    in_progress: bool = False


# ─────────────────────────────────────────────────────────────
# Payload extraction and merge
# ─────────────────────────────────────────────────────────────

def _pick(item: Any, fields: tuple[str, ...]) -> dict:
    item = item if isinstance(item, dict) else {}
    return {name: item.get(name) for name in fields}


def extract_translatable(summary: DBSummary) -> dict:
    """The human-language subset of a summary, structure preserved."""
    payload: dict[str, Any] = {}
    if summary.brief_overview:
        payload["brief_overview"] = summary.brief_overview
    if summary.triage:
        payload["triage"] = _pick(summary.triage, TRIAGE_TEXT_FIELDS)
    if summary.truth_check:
        tc = summary.truth_check
        payload["truth_check"] = {
            "issues": [_pick(i, ISSUE_TEXT_FIELDS) for i in tc.get("issues") or []],
            "claims": [_pick(c, CLAIM_TEXT_FIELDS) for c in tc.get("claims") or []],
            "strengths": tc.get("strengths"),
            "sources_quality": tc.get("sources_quality"),
        }
    if summary.action_items:
        payload["action_items"] = [_pick(a, ACTION_TEXT_FIELDS) for a in summary.action_items]
    if summary.mid_length_summary:
        payload["mid_length_summary"] = summary.mid_length_summary
    if summary.detailed_summary:
        payload["detailed_summary"] = summary.detailed_summary
    return payload


def sanitize_payload(value: Any, context: str = "translate") -> Any:
    """Sanitize every string in a nested payload."""
    if isinstance(value, str):
        return sanitize(value, max_length=MAX_FIELD_LENGTH, context=context)
    if isinstance(value, list):
        return [sanitize_payload(item, context) for item in value]
    if isinstance(value, dict):
        return {key: sanitize_payload(item, f"{context}-{key}") for key, item in value.items()}
    return value


def _same_type(translated: Any, original: Any) -> bool:
    if original is None:
        return False
    if isinstance(original, list):
        return isinstance(translated, list) and all(isinstance(t, str) for t in translated)
    return isinstance(translated, type(original))


def _merge_fields(original: Any, translated: Any, fields: tuple[str, ...]) -> Any:
    if not isinstance(original, dict):
        return original
    translated = translated if isinstance(translated, dict) else {}
    merged = dict(original)
    for name in fields:
        value = translated.get(name)
        if _same_type(value, original.get(name)):
            merged[name] = value
    return merged


def _merge_list(original: Any, translated: Any, fields: tuple[str, ...]) -> Any:
    if not isinstance(original, list):
        return original
    translated = translated if isinstance(translated, list) else []
    return [
        _merge_fields(item, translated[i] if i < len(translated) else None, fields)
        for i, item in enumerate(original)
    ]


def _merge_text(original: Any, translated: Any) -> Any:
    return translated if isinstance(translated, str) and translated.strip() and original is not None else original


def merge_translation(source: DBSummary, translated: Any) -> dict[str, Any]:
    """
    Overlay translated text on the source sections.

    Every field takes the translated value only when it is present and of the
    same type as the source; otherwise the source value is kept.
    """
    translated = translated if isinstance(translated, dict) else {}
    merged: dict[str, Any] = {
        "brief_overview": _merge_text(source.brief_overview, translated.get("brief_overview")),
        "triage": _merge_fields(source.triage, translated.get("triage"), TRIAGE_TEXT_FIELDS),
        "action_items": _merge_list(source.action_items, translated.get("action_items"), ACTION_TEXT_FIELDS),
        "mid_length_summary": _merge_text(source.mid_length_summary, translated.get("mid_length_summary")),
        "detailed_summary": _merge_text(source.detailed_summary, translated.get("detailed_summary")),
    }

    truth_check = source.truth_check
    if isinstance(truth_check, dict):
        tc_translated = translated.get("truth_check")
        tc_translated = tc_translated if isinstance(tc_translated, dict) else {}
        truth_check = _merge_fields(truth_check, tc_translated, ("strengths", "sources_quality"))
        truth_check["issues"] = _merge_list(source.truth_check.get("issues"), tc_translated.get("issues"),
                                            ISSUE_TEXT_FIELDS)
        truth_check["claims"] = _merge_list(source.truth_check.get("claims"), tc_translated.get("claims"),
                                            CLAIM_TEXT_FIELDS)
    merged["truth_check"] = truth_check
    return merged


def _require_object(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValueError("translation must be a JSON object")
    return data


def build_system_prompt(source_language: str, target_language: str) -> str:
    source = get_language(source_language)
    target = get_language(target_language)
    rtl = "\n- This is a right-to-left language; make sure the text reads naturally right-to-left" if target.rtl else ""
    return f"""You are a professional translator. Translate the JSON values from {source.name} to {target.name} ({target.native_name}).

Rules:
- Translate ALL text string values naturally, not word-for-word
- Keep proper nouns, technical terms, URLs and timestamps unchanged
- Keep the JSON structure IDENTICAL; only change string values
- Do NOT translate null values; keep them as null
- Do NOT add fields, scores, ratings, severity levels or enum values
- For arrays of strings, translate each string in the array
- For arrays of objects, translate only the text fields within each object{rtl}

Return ONLY valid JSON. No markdown code blocks, no explanation."""


class TranslationService:
    """Service for translating completed analyses."""

    def __init__(
        self,
        db: Database,
        provider: LLMProvider,
        models: list[ModelDescriptor],
        usage_gate: "UsageGate | None" = None,
        usage_logger: "ApiUsageLogger | None" = None,
    ):
        self.db = db
        self.provider = provider
        self.models = models
        self.usage_gate = usage_gate
        self.usage_logger = usage_logger

    async def translate(self, content_id: int, language: str, user_id: int | None = None) -> TranslationOutcome:
        """
        Return the analysis in ``language``, translating it if needed.

        Raises:
            ProcessContentError: Invalid language, tier gate, no source
                analysis, or every translation model failed
        """
        if not is_valid_language(language):
            raise ProcessContentError(f"Unsupported language: {language}", ErrorKind.PERMANENT_INPUT)

        content = require_content(self.db.content.get(content_id))
        if user_id is not None and content.user_id != user_id:
            raise HTTPException(status_code=404, detail="Content not found")

        existing = self.db.summaries.get(content_id, language)
        if existing and existing.processing_status == "complete":
            return TranslationOutcome(existing)
        if existing and existing.processing_status == "translating":
            return TranslationOutcome(None, in_progress=True)

        if user_id is not None and self.usage_gate is not None:
            tier = self.usage_gate.get_tier(user_id)
            if not has_feature(tier, "multi_language_analysis"):
                raise ProcessContentError(
                    "Multi-language analysis requires Starter plan or higher",
                    ErrorKind.QUOTA_EXCEEDED,
                    upgrade_required=True,
                    tier=tier,
                )

        source = self.db.summaries.get_completed_source(content_id, DEFAULT_LANGUAGE)
        if source is None:
            raise ProcessContentError(
                "No completed analysis found. Analyze content first before translating.",
                ErrorKind.PERMANENT_INPUT,
            )

        if not self.db.summaries.claim_translation(content_id, user_id, language):
            return TranslationOutcome(None, in_progress=True)

        logger.info(f"Translating content {content_id} from {source.language} to {language}")
        payload = sanitize_payload(extract_translatable(source))
        models = [
            ModelDescriptor(m.name, TRANSLATION_MAX_TOKENS, TRANSLATION_TEMPERATURE, TRANSLATION_TIMEOUT)
            for m in self.models
        ]
        try:
            result = await attempt_call(
                self.provider,
                models,
                build_system_prompt(source.language, language),
                wrap_user_content(json.dumps(payload, ensure_ascii=False, indent=2)) + INSTRUCTION_ANCHOR,
                section="translate",
                context=CallContext(self.usage_logger, content_id, user_id, self.provider.name),
                validate=_require_object,
            )
            merged = merge_translation(source, result.data)
            self.db.summaries.save_translation(
                content_id,
                language,
                {name: merged[name] for name in SECTION_ORDER},
                result.model,
            )
        except AllModelsFailedError as e:
            logger.error(f"Translation of content {content_id} to {language} failed: {e}")
            self.db.summaries.set_status(content_id, language, "error")
            raise ProcessContentError("Translation failed. Please try again.", ErrorKind.TRANSIENT) from e
        except Exception:
            # Release the claim so a later request can retry
            logger.exception(f"Unexpected error translating content {content_id} to {language}")
            self.db.summaries.set_status(content_id, language, "error")
            raise

        self.db.content.update(content_id, analysis_language=language)
        return TranslationOutcome(self.db.summaries.get(content_id, language))
