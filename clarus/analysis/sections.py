"""
Output validation for analysis sections.

Each validator maps parsed model output to the value stored on the summary
row, or raises ValueError so attempt_call falls back to the next model.
Models are loose with shapes (bare strings, wrapped lists, numbers as
strings), so validators accept the common variants and normalise them.
A refusal object ({"refused": true}) is rejected like any other bad output.
"""

from functools import wraps
from typing import Any, Callable

ACTION_PRIORITIES = ("high", "medium", "low")

MAX_TAGS = 5
MAX_TAG_LENGTH = 50

REFUSAL_PREFIX = "CONTENT_REFUSED:"
DEFAULT_REFUSAL_REASON = "AI refused to analyze this content"

# Keyword -> moderation category, checked in order against the refusal reason
_REFUSAL_CATEGORIES = (
    ("csam", ("child", "csam", "minor", "exploitation")),
    ("terrorism", ("terror", "bomb", "attack")),
    ("weapons", ("weapon", "explosive", "chemical", "biological")),
    ("trafficking", ("traffick",)),
)


class ContentRefusedError(ValueError):
    """The model declined to analyze the content."""

    def __init__(self, reason: str):
        self.reason = reason
        self.categories = refusal_categories(reason)
        super().__init__(f"model refused: {reason}")


def refusal_categories(reason: str) -> list[str]:
    lower = reason.lower()
    categories = [name for name, words in _REFUSAL_CATEGORIES if any(w in lower for w in words)]
    return categories or ["terrorism"]


def detect_ai_refusal(data: Any) -> str | None:
    """
    Reason string if the model output is a refusal, else None.

    Recognises ``{"refused": true, "reason": ...}`` objects and plain text
    starting with ``CONTENT_REFUSED:``.
    """
    if isinstance(data, dict) and data.get("refused") is True:
        return str(data.get("reason") or "").strip() or DEFAULT_REFUSAL_REASON
    if isinstance(data, str) and data.startswith(REFUSAL_PREFIX):
        return data[len(REFUSAL_PREFIX):].strip() or DEFAULT_REFUSAL_REASON
    return None


def reject_refusal(data: Any) -> Any:
    reason = detect_ai_refusal(data)
    if reason is not None:
        raise ContentRefusedError(reason)
    return data


def _text_field(data: Any, *keys: str) -> str:
    if isinstance(data, str):
        text = data
    elif isinstance(data, dict):
        text = next((data[k] for k in keys if isinstance(data.get(k), str)), "")
    else:
        text = ""
    text = text.strip()
    if not text:
        raise ValueError(f"missing text field ({', '.join(keys)})")
    return text


def _int_in_range(value: Any, low: int, high: int, name: str) -> int:
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        raise ValueError(f"{name} is not a number: {value!r}")
    return max(low, min(high, number))


def _str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def validate_overview(data: Any) -> str:
    return _text_field(data, "overview", "brief_overview", "text")


def validate_triage(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValueError("triage must be an object")
    if "quality_score" not in data:
        raise ValueError("triage is missing quality_score")
    return {
        "quality_score": _int_in_range(data["quality_score"], 1, 10, "quality_score"),
        "worth_your_time": str(data.get("worth_your_time") or "").strip(),
        "target_audience": _str_list(data.get("target_audience")),
        "content_density": str(data.get("content_density") or "").strip(),
        "estimated_value": str(data.get("estimated_value") or "").strip(),
        "signal_noise_score": _int_in_range(data.get("signal_noise_score") or 0, 0, 3, "signal_noise_score"),
        "content_category": str(data.get("content_category") or "other").strip().lower(),
    }


def validate_truth_check(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValueError("truth_check must be an object")
    rating = data.get("overall_rating")
    if not isinstance(rating, str) or not rating.strip():
        raise ValueError("truth_check is missing overall_rating")

    claims = [c for c in data.get("claims") or [] if isinstance(c, dict) and c.get("claim")]
    issues = [i for i in data.get("issues") or [] if isinstance(i, dict)]
    return {
        "overall_rating": rating.strip(),
        "claims": claims,
        "issues": issues,
        "strengths": _str_list(data.get("strengths")),
        "sources_quality": str(data.get("sources_quality") or "").strip(),
    }


def validate_action_items(data: Any) -> list[dict]:
    if isinstance(data, dict):
        data = data.get("action_items", data.get("items"))
    if not isinstance(data, list):
        raise ValueError("action_items must be a list")

    items = []
    for item in data:
        if not isinstance(item, dict) or not str(item.get("title") or "").strip():
            continue
        priority = str(item.get("priority") or "medium").strip().lower()
        items.append({
            "title": str(item["title"]).strip(),
            "description": str(item.get("description") or "").strip(),
            "priority": priority if priority in ACTION_PRIORITIES else "medium",
            "category": str(item.get("category") or "").strip(),
        })
    return items


def validate_mid_summary(data: Any) -> dict:
    """Returns {"summary", "title"}; only the summary is stored on the row."""
    summary = _text_field(data, "summary", "mid_length_summary", "text")
    title = data.get("title") if isinstance(data, dict) else None
    return {"summary": summary, "title": title.strip() if isinstance(title, str) and title.strip() else None}


def validate_detailed_summary(data: Any) -> str:
    return _text_field(data, "summary", "detailed_summary", "text")


def validate_tone(data: Any) -> tuple[str, str]:
    if not isinstance(data, dict):
        raise ValueError("tone must be an object")
    label = data.get("tone_label")
    directive = data.get("tone_directive")
    if not isinstance(label, str) or not label.strip():
        raise ValueError("missing tone_label")
    if not isinstance(directive, str) or not directive.strip():
        raise ValueError("missing tone_directive")
    return label.strip().lower(), directive.strip()


def validate_tags(data: Any) -> list[str]:
    raw = data.get("tags") if isinstance(data, dict) else data
    if not isinstance(raw, list):
        raise ValueError("tags must be a list")
    tags = []
    for tag in raw:
        if not isinstance(tag, str):
            continue
        tag = tag.lower().strip().replace("-", " ")
        if tag and len(tag) <= MAX_TAG_LENGTH and tag not in tags:
            tags.append(tag)
    return tags[:MAX_TAGS]


def _rejecting_refusals(validator: Callable[[Any], Any]) -> Callable[[Any], Any]:
    @wraps(validator)
    def validate(data: Any) -> Any:
        return validator(reject_refusal(data))
    return validate


SECTION_VALIDATORS = {
    name: _rejecting_refusals(validator)
    for name, validator in (
        ("brief_overview", validate_overview),
        ("triage", validate_triage),
        ("truth_check", validate_truth_check),
        ("action_items", validate_action_items),
        ("mid_length_summary", validate_mid_summary),
        ("detailed_summary", validate_detailed_summary),
    )
}
