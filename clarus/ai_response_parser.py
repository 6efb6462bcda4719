"""
Tolerant JSON extraction from AI model responses.

Models often wrap JSON in markdown fences, add prose around it, or get
truncated at the token limit. Strategies, tried in order:
1. Direct json.loads
2. Contents of a markdown code fence
3. First balanced {...} or [...] substring
4. Repair of a truncated substring (trailing comma, open string, open brackets)
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json|JSON)?\s*\n?([\s\S]*?)\n?\s*```")

RAW_PREVIEW_LENGTH = 500


@dataclass
class ParseResult:
    """Outcome of parsing an AI response."""
    success: bool
    data: Any = None
    error: str | None = None
    raw: str = ""
    used_fallback: bool = False


def _strip_fences(text: str) -> str | None:
    match = _FENCE.search(text)
    if match:
        return match.group(1).strip()
    return None


def _extract_json_substring(text: str) -> str | None:
    """Return the first balanced JSON object/array, or its truncated remainder."""
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    open_char = text[start]
    close_char = "}" if open_char == "{" else "]"

    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape_next:
            escape_next = False
            continue
        if ch == "\\":
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == open_char:
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    # Truncated; hand the remainder to the repair step
    return text[start:]


def _repair_truncated(text: str) -> str:
    """Close whatever a truncated JSON document left open."""
    repaired = re.sub(r",\s*$", "", text.rstrip())

    stack: list[str] = []
    in_string = False
    escape_next = False
    for ch in repaired:
        if escape_next:
            escape_next = False
            continue
        if ch == "\\":
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack:
            stack.pop()

    if in_string:
        repaired += '"'
    repaired = re.sub(r",\s*$", "", repaired)
    return repaired + "".join(reversed(stack))


def _try_loads(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return False, None


def parse_ai_response(raw: str | None) -> ParseResult:
    """
    Parse JSON out of a model response.

    Returns:
        ParseResult with success/data, or error and a truncated raw preview
    """
    if not raw or not isinstance(raw, str):
        return ParseResult(success=False, error="Empty or non-string input", raw=str(raw or ""))

    trimmed = raw.strip()

    ok, data = _try_loads(trimmed)
    if ok:
        return ParseResult(success=True, data=data)

    fenced = _strip_fences(trimmed)
    if fenced:
        ok, data = _try_loads(fenced)
        if ok:
            return ParseResult(success=True, data=data, used_fallback=True)

    candidate = _extract_json_substring(fenced or trimmed)
    if candidate:
        ok, data = _try_loads(candidate)
        if ok:
            return ParseResult(success=True, data=data, used_fallback=True)

        ok, data = _try_loads(_repair_truncated(candidate))
        if ok:
            logger.info("Recovered truncated JSON from AI response")
            return ParseResult(success=True, data=data, used_fallback=True)

    return ParseResult(
        success=False,
        error="Could not parse JSON from AI response",
        raw=trimmed[:RAW_PREVIEW_LENGTH],
    )


def parse_ai_response_or_raise(raw: str | None) -> Any:
    """Parse JSON out of a model response, raising ValueError on failure."""
    result = parse_ai_response(raw)
    if not result.success:
        raise ValueError(f"{result.error}: {result.raw[:200]}")
    return result.data
