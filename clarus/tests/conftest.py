"""
Pytest fixtures for Clarus tests.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

from clarus.config import config, state
from clarus.database import Database
from clarus.providers import LLMProvider, LLMResponse, ProviderCapabilities
from clarus.rate_limit import limiter
from clarus.server import app, init_state

STATE_FIELDS = (
    "db",
    "provider",
    "feed_parser",
    "dispatcher",
    "transcription",
    "orchestrator",
    "content_service",
    "translation_service",
    "feed_poller",
    "usage_gate",
    "rate_limiter",
    "scheduler",
)


class MockProvider(LLMProvider):
    """
    Mock LLM provider that returns pre-configured responses.

    A ``responder`` callable, when given, is asked first with
    (user_prompt, system_prompt, model) and may return the response text or
    None to fall through to the queue. Analysis sections run concurrently,
    so tests that exercise the orchestrator route on the prompt rather than
    on call order.
    """

    def __init__(self, responder: Callable[[str, str | None, str | None], str | None] | None = None):
        self.calls: list[dict] = []
        self.responses: list[str] = []
        self.responder = responder
        self._call_index = 0

    @property
    def name(self) -> str:
        return "mock"

    @property
    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(supports_json_mode=True)

    def queue_response(self, text: str):
        """Queue a response to be returned on the next call."""
        self.responses.append(text)

    async def complete_async(
        self,
        user_prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.calls.append({
            "user_prompt": user_prompt,
            "system_prompt": system_prompt,
            "model": model,
        })
        text = self.responder(user_prompt, system_prompt, model) if self.responder else None
        if text is None:
            text = self.responses[self._call_index] if self._call_index < len(self.responses) else "{}"
            self._call_index += 1
        return LLMResponse(text=text, model=model or "mock-standard", input_tokens=10, output_tokens=20)


# Canned section outputs keyed by a marker that only appears in that section's prompt
SECTION_RESPONSES = [
    ('"tone_label"', {"tone_label": "conversational", "tone_directive": "Write in a relaxed, friendly voice."}),
    ('"quality_score"', {
        "quality_score": 8,
        "worth_your_time": "Yes, a clear explainer.",
        "target_audience": ["developers"],
        "content_density": "High",
        "estimated_value": "A working mental model of the topic.",
        "signal_noise_score": 3,
        "content_category": "tutorial",
    }),
    ('"overall_rating"', {
        "overall_rating": "Mostly Accurate",
        "claims": [{"claim": "Water boils at 100C at sea level", "verdict": "verified",
                    "explanation": "Standard physics.", "timestamp": None}],
        "issues": [{"type": "missing_context", "claim_or_issue": "Altitude is ignored",
                    "assessment": "Boiling point drops with altitude.", "severity": "low"}],
        "strengths": ["Clear examples"],
        "sources_quality": "Relies on textbook facts.",
    }),
    ('"action_items"', {"action_items": [
        {"title": "Try the recipe", "description": "Cook it at home.", "priority": "high", "category": "try"},
    ]}),
    ('"tags"', {"tags": ["Cooking", "physics", "cooking"]}),
    ('"overview"', {"overview": "A short explainer on boiling water."}),
    ("<markdown>", {"summary": "## Boiling\n\nDetailed notes on boiling water."}),
    ('"title": "..."', {"title": "Why Water Boils", "summary": "Water boils when vapor pressure meets air pressure."}),
]


def section_responder(fail: set[str] | None = None) -> Callable[[str, str | None, str | None], str | None]:
    """
    Build a responder answering each analysis prompt with a valid section.

    Markers listed in ``fail`` get an unusable response instead, so that
    section exhausts its fallback list.
    """
    fail = fail or set()

    def respond(user_prompt: str, system_prompt: str | None, model: str | None) -> str | None:
        for marker, payload in SECTION_RESPONSES:
            if marker in user_prompt:
                return "not json at all" if marker in fail else json.dumps(payload)
        return None

    return respond


@pytest.fixture
def temp_db_path():
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        yield Path(f.name)
    # Cleanup
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(f.name + suffix):
            os.unlink(f.name + suffix)


@pytest.fixture
def test_db(temp_db_path):
    """Create a test database instance."""
    db = Database(temp_db_path)
    yield db


@pytest.fixture
def user_id(test_db):
    """A free-tier user."""
    return test_db.users.create("reader@example.com", "Reader")


@pytest.fixture
def mock_provider():
    """A MockProvider that answers every analysis section."""
    return MockProvider(responder=section_responder())


@pytest.fixture
def app_state():
    """Snapshot and restore the shared application state around a test."""
    saved = {name: getattr(state, name) for name in STATE_FIELDS}
    limiter.reset()
    yield state
    for name, value in saved.items():
        setattr(state, name, value)


@pytest.fixture
def client(test_db, app_state, monkeypatch):
    """Create a test client with an isolated database and no external services."""
    for name in (
        "OPENROUTER_API_KEY",
        "OPENAI_API_KEY",
        "SUPADATA_API_KEY",
        "FIRECRAWL_API_KEY",
        "TAVILY_API_KEY",
        "ASSEMBLYAI_API_KEY",
        "ASSEMBLYAI_WEBHOOK_TOKEN",
        "AUTH_API_KEY",
        "CRON_SECRET",
        "FEED_ENCRYPTION_KEY",
    ):
        monkeypatch.setattr(config, name, "")
    monkeypatch.setattr(config, "ENABLE_SCHEDULER", False)

    init_state(test_db)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
