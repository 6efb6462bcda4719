"""
Tests for tolerant JSON parsing of model responses.
"""

import pytest

from clarus.ai_response_parser import RAW_PREVIEW_LENGTH, parse_ai_response, parse_ai_response_or_raise


class TestParseAIResponse:
    """Tests for parse_ai_response."""

    def test_direct_json(self):
        result = parse_ai_response('{"overview": "Short."}')
        assert result.success
        assert result.data == {"overview": "Short."}
        assert result.used_fallback is False

    def test_json_array(self):
        assert parse_ai_response("[1, 2, 3]").data == [1, 2, 3]

    def test_markdown_fence(self):
        """JSON inside a ```json fence is extracted."""
        result = parse_ai_response('Here you go:\n```json\n{"tags": ["a", "b"]}\n```\nEnjoy!')
        assert result.success
        assert result.data == {"tags": ["a", "b"]}
        assert result.used_fallback is True

    def test_bare_fence(self):
        assert parse_ai_response('```\n{"a": 1}\n```').data == {"a": 1}

    def test_prose_around_object(self):
        """The first balanced object is pulled out of surrounding prose."""
        result = parse_ai_response('Sure! {"a": {"b": [1, 2]}} Hope this helps {"c": 3}')
        assert result.data == {"a": {"b": [1, 2]}}

    def test_braces_inside_strings(self):
        result = parse_ai_response('Result: {"text": "uses } and { inside", "n": 1}')
        assert result.data == {"text": "uses } and { inside", "n": 1}

    def test_truncated_array(self):
        """A response cut off mid-array is closed."""
        result = parse_ai_response('{"tags": ["cooking", "physics",')
        assert result.success
        assert result.data == {"tags": ["cooking", "physics"]}

    def test_truncated_string(self):
        result = parse_ai_response('{"overview": "Water boils when')
        assert result.data == {"overview": "Water boils when"}

    def test_unparseable(self):
        result = parse_ai_response("I cannot help with that.")
        assert result.success is False
        assert result.error == "Could not parse JSON from AI response"
        assert result.raw == "I cannot help with that."

    def test_raw_preview_is_truncated(self):
        result = parse_ai_response("x" * (RAW_PREVIEW_LENGTH * 2))
        assert len(result.raw) == RAW_PREVIEW_LENGTH

    def test_empty_input(self):
        assert parse_ai_response(None).error == "Empty or non-string input"
        assert parse_ai_response("").success is False

    def test_or_raise(self):
        assert parse_ai_response_or_raise('{"ok": true}') == {"ok": True}
        with pytest.raises(ValueError):
            parse_ai_response_or_raise("nope")
