"""
Content moderation screening ahead of AI analysis.

Two pre-analysis layers:
- URL screening against hostnames associated with illegal content
- Keyword screening of the extracted text for prohibited material

A third layer, model refusals, is handled by the section validators.
Any critical or high severity flag blocks the item from analysis.
"""

import logging
import re
from dataclasses import dataclass, field
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

BLOCKING_SEVERITIES = frozenset({"critical", "high"})

# Only this much of the text is scanned
MAX_SCREENED_LENGTH = 50_000
MIN_SCREENED_LENGTH = 50

BLOCKED_MESSAGE = "This content could not be analyzed because it may violate our content policy."


@dataclass
class ContentFlag:
    source: str
    severity: str
    categories: list[str]
    reason: str


@dataclass
class ScreeningResult:
    flags: list[ContentFlag] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return any(flag.severity in BLOCKING_SEVERITIES for flag in self.flags)


_BLOCKED_HOST_PATTERNS: list[tuple[re.Pattern, list[str], str]] = [
    (re.compile(r"\.onion\.", re.I), ["csam", "trafficking"], "critical"),
    (re.compile(r"darknet|deepweb|hidden.wiki", re.I), ["csam", "trafficking"], "critical"),
]

# Indicator and context terms must co-occur, so news coverage of a topic
# does not match on a single word
_KEYWORD_PATTERNS: list[tuple[re.Pattern, list[str], str, str]] = [
    (re.compile(r"\b(?:child|minor|underage|pre-?teen|infant)\b[\s\S]{0,200}"
                r"\b(?:exploit|abuse|nude|naked|porn|sexual|molest|groom)\b", re.I),
     ["csam"], "critical", "Content contains child exploitation indicators"),
    (re.compile(r"\b(?:exploit|abuse|nude|naked|porn|sexual|molest|groom)\b[\s\S]{0,200}"
                r"\b(?:child|minor|underage|pre-?teen|infant)\b", re.I),
     ["csam"], "critical", "Content contains child exploitation indicators"),
    (re.compile(r"\b(?:cp\s+(?:link|download|share|collection|trade)|pizza\s+cheese\s+(?:link|download|share))\b",
                re.I),
     ["csam"], "critical", "Content contains known CSAM distribution terminology"),
    (re.compile(r"\b(?:synthesiz|manufactur|produc|creat|mak)\w*\b[\s\S]{0,150}"
                r"\b(?:sarin|vx\s+gas|nerve\s+agent|ricin|anthrax|botulinum|mustard\s+gas|chlorine\s+gas)\b", re.I),
     ["weapons"], "high", "Content contains chemical/biological weapon manufacturing instructions"),
    (re.compile(r"\b(?:sarin|vx\s+gas|nerve\s+agent|ricin|anthrax|botulinum)\b[\s\S]{0,150}"
                r"\b(?:synthesiz|manufactur|produc|creat|mak|prepar)\w*\b", re.I),
     ["weapons"], "high", "Content contains chemical/biological weapon manufacturing instructions"),
    (re.compile(r"\b(?:improv\w*\s+explosive|pipe\s+bomb|pressure\s+cooker\s+bomb|detonat\w*\s+mechanism)\b"
                r"[\s\S]{0,200}\b(?:build|construct|assembl|wir|connect|timer)", re.I),
     ["weapons", "terrorism"], "high", "Content contains explosive device construction instructions"),
    (re.compile(r"\b(?:jihad|martyrdom\s+operation|caliphate)\b[\s\S]{0,200}"
                r"\b(?:recruit|join|travel|train|attack\s+plan|target)", re.I),
     ["terrorism"], "high", "Content contains terrorism recruitment or operational planning"),
    (re.compile(r"\b(?:traffick|smuggl)\w*\b[\s\S]{0,200}\b(?:person|human|women|girl|boy|child|minor)\b"
                r"[\s\S]{0,200}\b(?:price|cost|buy|sell|deliver|transport|route)", re.I),
     ["trafficking"], "high", "Content contains human trafficking facilitation indicators"),
]


def screen_url(url: str) -> ContentFlag | None:
    host = (urlparse(url).hostname or "").lower()
    if not host:
        return None
    for pattern, categories, severity in _BLOCKED_HOST_PATTERNS:
        if pattern.search(host):
            return ContentFlag("url_screening", severity, categories,
                               f"URL matches blocked domain pattern: {host}")
    return None


def screen_text(text: str | None) -> list[ContentFlag]:
    """Keyword flags for the text, at most one per category set."""
    if not text or len(text) < MIN_SCREENED_LENGTH:
        return []

    sample = text[:MAX_SCREENED_LENGTH]
    flags: list[ContentFlag] = []
    seen: set[tuple[str, ...]] = set()
    for pattern, categories, severity, reason in _KEYWORD_PATTERNS:
        key = tuple(categories)
        if key in seen or not pattern.search(sample):
            continue
        seen.add(key)
        flags.append(ContentFlag("keyword_screening", severity, categories, reason))
    return flags


def screen_content(url: str, text: str | None) -> ScreeningResult:
    """Run URL and keyword screening; logs every flag."""
    result = ScreeningResult()
    url_flag = screen_url(url)
    if url_flag:
        result.flags.append(url_flag)
    result.flags.extend(screen_text(text))

    for flag in result.flags:
        logger.warning(
            f"MODERATION: {flag.source} flagged {url} "
            f"[{flag.severity}] {','.join(flag.categories)}: {flag.reason}"
        )
    return result
