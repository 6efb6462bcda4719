"""
Tests for the analysis orchestrator, section validators and model fallback.
"""

import json
import logging
import sqlite3
from unittest.mock import AsyncMock, patch

import pytest

from clarus.analysis import AnalysisOrchestrator, TavilyClient, sample_for_tone
from clarus.analysis.sections import (
    SECTION_VALIDATORS,
    ContentRefusedError,
    detect_ai_refusal,
    validate_action_items,
    validate_mid_summary,
    validate_tags,
    validate_tone,
    validate_triage,
    validate_truth_check,
)
from clarus.api_usage import ApiUsageLogger
from clarus.database import SECTION_ORDER, progress_status
from clarus.exceptions import PipelineError
from clarus.providers import AllModelsFailedError, LLMResponse, ModelDescriptor, ProviderError, attempt_call

from .conftest import MockProvider, section_responder

SOURCE_TEXT = (
    "Water boils when its vapor pressure matches the pressure of the air around it. "
    "At sea level that happens at one hundred degrees Celsius. " * 20
)

MODELS = [ModelDescriptor("primary-model"), ModelDescriptor("backup-model")]
FAST = [ModelDescriptor("fast-model")]


@pytest.fixture
def content_id(test_db, user_id):
    """An extracted article ready for analysis."""
    cid = test_db.content.create(user_id, "https://example.com/boiling", "article")
    test_db.content.set_full_text(cid, SOURCE_TEXT)
    return cid


def _orchestrator(db, provider, search=None, usage=True):
    return AnalysisOrchestrator(
        db,
        provider,
        MODELS,
        FAST,
        search=search,
        usage_logger=ApiUsageLogger(db) if usage else None,
    )


class TestProgressStatus:
    """Status follows the longest populated prefix of the section order."""

    def test_complete_only_after_every_section(self, test_db, user_id):
        """The row reaches 'complete' only once the sixth section lands."""
        cid = test_db.content.create(user_id, "https://example.com/a", "article")
        test_db.summaries.start_analysis(cid, user_id, "en")

        statuses = []
        values = {
            "brief_overview": "Overview",
            "triage": {"quality_score": 7},
            "truth_check": {"overall_rating": "Mixed"},
            "action_items": [],
            "mid_length_summary": "Mid",
            "detailed_summary": "Detailed",
        }
        for name in SECTION_ORDER:
            statuses.append(test_db.summaries.write_section(cid, "en", name, values[name]))

        assert statuses == [
            "overview_complete",
            "triage_complete",
            "truth_check_complete",
            "action_items_complete",
            "short_summary_complete",
            "complete",
        ]

    def test_out_of_order_writes_hold_status(self, test_db, user_id):
        """A later section landing first does not advance the status."""
        cid = test_db.content.create(user_id, "https://example.com/b", "article")
        test_db.summaries.start_analysis(cid, user_id, "en")

        assert test_db.summaries.write_section(cid, "en", "detailed_summary", "Detailed") == "pending"
        assert test_db.summaries.write_section(cid, "en", "triage", {"quality_score": 5}) == "pending"
        assert test_db.summaries.write_section(cid, "en", "brief_overview", "Overview") == "triage_complete"
        assert progress_status(test_db.summaries.get(cid)) == "triage_complete"


class TestAnalysisOrchestrator:
    """End-to-end runs of the two-phase pipeline with a mock provider."""

    @pytest.mark.asyncio
    async def test_full_analysis_completes(self, test_db, content_id, user_id):
        """Every section succeeds: status complete, tone and tags stored."""
        provider = MockProvider(responder=section_responder())

        result = await _orchestrator(test_db, provider).analyze(content_id, "en", user_id)

        assert result.status == "complete"
        assert sorted(result.completed_sections) == sorted(SECTION_ORDER)
        assert result.failed_sections == []
        assert result.tone == "conversational"
        assert result.tags == ["cooking", "physics"]

        summary = test_db.summaries.get(content_id, "en")
        assert summary.processing_status == "complete"
        assert summary.brief_overview == "A short explainer on boiling water."
        assert summary.triage["quality_score"] == 8
        assert summary.truth_check["overall_rating"] == "Mostly Accurate"
        assert summary.action_items[0]["priority"] == "high"
        assert summary.mid_length_summary.startswith("Water boils")
        assert summary.detailed_summary.startswith("## Boiling")

        content = test_db.content.get(content_id)
        assert content.processing_status == "complete"
        assert content.detected_tone == "conversational"
        assert content.tags == ["cooking", "physics"]
        # Untitled items take the title proposed with the mid-length summary
        assert content.title == "Why Water Boils"

    @pytest.mark.asyncio
    async def test_failed_section_gives_partial(self, test_db, content_id, user_id):
        """A section that exhausts its models is recorded; siblings still land."""
        provider = MockProvider(responder=section_responder(fail={"<markdown>"}))

        result = await _orchestrator(test_db, provider).analyze(content_id, "en", user_id)

        assert result.status == "partial"
        assert result.failed_sections == ["detailed_summary"]
        summary = test_db.summaries.get(content_id, "en")
        assert summary.processing_status == "partial"
        assert summary.failed_sections == ["detailed_summary"]
        assert summary.mid_length_summary is not None
        assert summary.detailed_summary is None

    @pytest.mark.asyncio
    async def test_all_sections_failing_gives_error(self, test_db, content_id, user_id):
        """No section at all is an error, and tags are not attempted."""
        provider = MockProvider(responder=lambda user, system, model: "")

        result = await _orchestrator(test_db, provider).analyze(content_id, "en", user_id)

        assert result.status == "error"
        assert len(result.failed_sections) == len(SECTION_ORDER)
        assert result.tags == []
        assert result.tone == "neutral"

    @pytest.mark.asyncio
    async def test_tone_failure_falls_back_to_neutral(self, test_db, content_id, user_id):
        """Tone detection failures are not fatal."""
        provider = MockProvider(responder=section_responder(fail={'"tone_label"'}))

        result = await _orchestrator(test_db, provider).analyze(content_id, "en", user_id)

        assert result.status == "complete"
        assert result.tone == "neutral"

    @pytest.mark.asyncio
    async def test_tone_exception_falls_back_to_neutral(self, test_db, content_id, user_id):
        """An unexpected exception in tone detection does not stop the run."""
        respond = section_responder()

        def responder(user_prompt, system_prompt, model):
            if '"tone_label"' in user_prompt:
                raise RuntimeError("unexpected client failure")
            return respond(user_prompt, system_prompt, model)

        result = await _orchestrator(test_db, MockProvider(responder=responder)).analyze(content_id, "en", user_id)

        assert result.status == "complete"
        assert result.tone == "neutral"
        assert test_db.content.get(content_id).detected_tone == "neutral"

    @pytest.mark.asyncio
    async def test_web_context_exception_is_optional(self, test_db, content_id, user_id):
        orchestrator = _orchestrator(test_db, MockProvider(responder=section_responder()))

        with patch.object(orchestrator, "gather_web_context", AsyncMock(side_effect=RuntimeError("search down"))):
            result = await orchestrator.analyze(content_id, "en", user_id)

        assert result.status == "complete"
        assert result.web_searches == 0

    @pytest.mark.asyncio
    async def test_aborted_run_settles_error_status(self, test_db, content_id, user_id):
        """A failure outside the section boundary still leaves a final status."""
        orchestrator = _orchestrator(test_db, MockProvider(responder=section_responder()))
        failure = sqlite3.OperationalError("database is locked")

        with patch.object(test_db.summaries, "finish_analysis", side_effect=failure):
            with pytest.raises(sqlite3.OperationalError):
                await orchestrator.analyze(content_id, "en", user_id)

        assert test_db.summaries.get(content_id, "en").processing_status == "error"
        assert test_db.content.get(content_id).processing_status == "error"

    @pytest.mark.asyncio
    async def test_fallback_to_second_model(self, test_db, content_id, user_id):
        """When the primary model returns garbage, the backup model's output is used."""
        respond = section_responder()

        def responder(user_prompt, system_prompt, model):
            if model == "primary-model":
                return "Sorry, I cannot help with that."
            return respond(user_prompt, system_prompt, model)

        provider = MockProvider(responder=responder)
        result = await _orchestrator(test_db, provider).analyze(content_id, "en", user_id)

        assert result.status == "complete"
        summary = test_db.summaries.get(content_id, "en")
        assert summary.model_name == "backup-model"

        failures = [u for u in test_db.api_usage.list(content_id=content_id) if u.status == "parse_error"]
        assert {u.model_name for u in failures} == {"primary-model"}
        assert len(failures) == len(SECTION_ORDER)

    @pytest.mark.asyncio
    async def test_refusal_fails_section(self, test_db, content_id, user_id, caplog):
        """A model refusal is treated like unusable output for that section."""
        respond = section_responder()

        def responder(user_prompt, system_prompt, model):
            if '"quality_score"' in user_prompt:
                return json.dumps({"refused": True, "reason": "Instructions for building weapons"})
            return respond(user_prompt, system_prompt, model)

        provider = MockProvider(responder=responder)
        with caplog.at_level(logging.WARNING, logger="clarus.analysis.orchestrator"):
            result = await _orchestrator(test_db, provider).analyze(content_id, "en", user_id)

        assert result.status == "partial"
        assert result.failed_sections == ["triage"]
        summary = test_db.summaries.get(content_id, "en")
        assert summary.triage is None
        assert summary.brief_overview == "A short explainer on boiling water."
        assert "MODERATION: AI refused [triage]" in caplog.text
        assert "(weapons)" in caplog.text
        invalid = [u for u in test_db.api_usage.list(content_id=content_id) if u.status == "invalid"]
        assert {u.model_name for u in invalid} == {"primary-model", "backup-model"}

    @pytest.mark.asyncio
    async def test_language_directive_in_prompts(self, test_db, content_id, user_id):
        """Non-English runs ask each section for that language."""
        provider = MockProvider(responder=section_responder())

        await _orchestrator(test_db, provider).analyze(content_id, "es", user_id)

        section_calls = [c for c in provider.calls if '"quality_score"' in c["user_prompt"]]
        assert section_calls
        assert "Spanish" in section_calls[0]["user_prompt"]
        assert test_db.summaries.get(content_id, "es").processing_status == "complete"

    @pytest.mark.asyncio
    async def test_source_text_is_wrapped(self, test_db, content_id, user_id):
        """Content reaches the model inside the user content boundary."""
        provider = MockProvider(responder=section_responder())

        await _orchestrator(test_db, provider).analyze(content_id, "en", user_id)

        for call in provider.calls:
            assert "<user_content>" in call["user_prompt"]
            assert "</user_content>" in call["user_prompt"]

    @pytest.mark.asyncio
    async def test_missing_content(self, test_db):
        """Unknown content ids are rejected."""
        with pytest.raises(PipelineError):
            await _orchestrator(test_db, MockProvider()).analyze(9999)

    @pytest.mark.asyncio
    async def test_content_without_text(self, test_db, user_id):
        """Content that has not been extracted cannot be analyzed."""
        cid = test_db.content.create(user_id, "https://example.com/empty", "article")
        with pytest.raises(PipelineError, match="no extracted text"):
            await _orchestrator(test_db, MockProvider()).analyze(cid)

    @pytest.mark.asyncio
    async def test_web_context_grounds_truth_check(self, test_db, content_id, user_id):
        """Search results are injected into web-grounded sections only."""
        respond = section_responder()

        def responder(user_prompt, system_prompt, model):
            if '"queries"' in user_prompt:
                return json.dumps({"queries": ["boiling point of water at sea level"]})
            return respond(user_prompt, system_prompt, model)

        search = TavilyClient("tvly-test")
        tavily_body = {
            "answer": "Water boils at 100 degrees Celsius at sea level.",
            "results": [{"title": "Boiling point", "url": "https://en.wikipedia.org/wiki/Boiling_point",
                         "content": "The boiling point of water is 100 C at 1 atm."}],
        }
        provider = MockProvider(responder=responder)
        with patch.object(search, "_post_search", new=AsyncMock(return_value=tavily_body)) as mock_search:
            result = await _orchestrator(test_db, provider, search=search).analyze(content_id, "en", user_id)

        assert result.web_searches == 1
        mock_search.assert_awaited_once()
        truth_prompt = next(c["user_prompt"] for c in provider.calls if '"overall_rating"' in c["user_prompt"])
        triage_prompt = next(c["user_prompt"] for c in provider.calls if '"quality_score"' in c["user_prompt"])
        assert "REAL-TIME WEB VERIFICATION CONTEXT" in truth_prompt
        assert "REAL-TIME WEB VERIFICATION CONTEXT" not in triage_prompt


class TestAttemptCall:
    """Tests for ordered model fallback."""

    @pytest.mark.asyncio
    async def test_provider_error_falls_back(self):
        """Provider errors move on to the next model."""
        provider = MockProvider()
        provider.complete_async = AsyncMock(side_effect=[
            ProviderError("boom", status_code=502),
            LLMResponse(text="{}", model="backup-model"),
        ])
        result = await attempt_call(provider, MODELS, "sys", "user", section="test")
        assert result.attempts == 2
        assert result.data == {}

    @pytest.mark.asyncio
    async def test_all_models_failed(self):
        """Every model failing raises with one error per model."""
        provider = MockProvider(responder=lambda user, system, model: "")
        with pytest.raises(AllModelsFailedError) as exc_info:
            await attempt_call(provider, MODELS, "sys", "user", section="test")
        assert len(exc_info.value.errors) == 2

    @pytest.mark.asyncio
    async def test_validation_failure_falls_back(self):
        """A validator ValueError rejects the output."""
        provider = MockProvider()
        provider.queue_response('{"tone_label": ""}')
        provider.queue_response('{"tone_label": "academic", "tone_directive": "Be precise."}')
        result = await attempt_call(provider, MODELS, "sys", "user", section="tone", validate=validate_tone)
        assert result.data == ("academic", "Be precise.")
        assert result.model == "backup-model"

    @pytest.mark.asyncio
    async def test_plain_text_mode(self):
        """parse_json=False returns the raw text."""
        provider = MockProvider()
        provider.queue_response("Just text")
        result = await attempt_call(provider, MODELS, None, "user", section="text", parse_json=False)
        assert result.data == "Just text"


class TestSectionValidators:
    """Tests for section output normalisation."""

    def test_triage_clamps_scores(self):
        data = validate_triage({"quality_score": "12", "signal_noise_score": -1, "target_audience": "devs"})
        assert data["quality_score"] == 10
        assert data["signal_noise_score"] == 0
        assert data["target_audience"] == ["devs"]
        assert data["content_category"] == "other"

    def test_triage_null_signal_noise_defaults(self):
        data = validate_triage({"quality_score": 6, "signal_noise_score": None})
        assert data["signal_noise_score"] == 0

    def test_triage_requires_score(self):
        with pytest.raises(ValueError):
            validate_triage({"worth_your_time": "Yes"})

    def test_truth_check_requires_rating(self):
        with pytest.raises(ValueError):
            validate_truth_check({"claims": []})

    def test_truth_check_drops_malformed_claims(self):
        data = validate_truth_check({"overall_rating": "Mixed", "claims": [{"claim": "x"}, "bad", {}]})
        assert data["claims"] == [{"claim": "x"}]

    def test_action_items_accepts_bare_list(self):
        items = validate_action_items([{"title": "Read it", "priority": "URGENT"}, {"description": "no title"}])
        assert items == [{"title": "Read it", "description": "", "priority": "medium", "category": ""}]

    def test_mid_summary_title_optional(self):
        assert validate_mid_summary("Plain summary") == {"summary": "Plain summary", "title": None}

    def test_tags_normalised(self):
        tags = validate_tags({"tags": ["Machine-Learning", "machine learning", "AI", 42, "x" * 80]})
        assert tags == ["machine learning", "ai"]

    def test_refusal_detection(self):
        assert detect_ai_refusal({"refused": True, "reason": "Child exploitation material"}) == "Child exploitation material"
        assert detect_ai_refusal({"refused": True}) == "AI refused to analyze this content"
        assert detect_ai_refusal("CONTENT_REFUSED: terrorism planning") == "terrorism planning"
        assert detect_ai_refusal({"refused": False, "reason": "x"}) is None
        assert detect_ai_refusal("A normal overview.") is None

    def test_section_validators_reject_refusals(self):
        with pytest.raises(ContentRefusedError) as exc_info:
            SECTION_VALIDATORS["brief_overview"]({"refused": True, "reason": "Human trafficking logistics"})
        assert exc_info.value.categories == ["trafficking"]
        with pytest.raises(ContentRefusedError) as exc_info:
            SECTION_VALIDATORS["detailed_summary"]("CONTENT_REFUSED: I cannot analyze this")
        assert exc_info.value.categories == ["terrorism"]
        assert SECTION_VALIDATORS["brief_overview"]({"overview": "Fine."}) == "Fine."

    def test_sample_for_tone_short_text(self):
        assert sample_for_tone("short") == "short"

    def test_sample_for_tone_long_text(self):
        text = "a" * 3000 + "b" * 2000 + "c" * 3000
        sample = sample_for_tone(text)
        assert sample.startswith("a" * 2000)
        assert sample.count("---") == 2
        assert sample.endswith("c" * 1000)
