"""
Paywall heuristics for scraped articles.

Scrapers only see what a logged-out browser sees, so subscription sites
often yield a teaser instead of the article. The warning is advisory: the
analysis still runs on whatever text was extracted.
"""

from urllib.parse import urlparse

from .base import ContentType

PAYWALLED_DOMAINS = frozenset({
    "nytimes.com",
    "wsj.com",
    "washingtonpost.com",
    "ft.com",
    "economist.com",
    "bloomberg.com",
    "barrons.com",
    "telegraph.co.uk",
    "thetimes.co.uk",
    "latimes.com",
    "bostonglobe.com",
    "theatlantic.com",
    "newyorker.com",
    "wired.com",
    "hbr.org",
    "businessinsider.com",
    "seekingalpha.com",
    "theathletic.com",
    "theinformation.com",
    "stratechery.com",
})

# Below this a scraped article is suspiciously short
SHORT_ARTICLE_LENGTH = 500
# Below this, text from a known paywalled domain is treated as a preview
PREVIEW_LENGTH = 2000

PREVIEW_WARNING = (
    "This content is from a paywalled source. The analysis is based on the publicly "
    "available preview, which may not include the full article."
)
SHORT_CONTENT_WARNING = (
    "The scraped content is shorter than expected. This may be due to a paywall, login wall, "
    "or content that requires JavaScript to render. The analysis may be incomplete."
)
SUBSCRIPTION_WARNING = (
    "This content is from a source that sometimes requires a subscription. If the analysis "
    "seems incomplete, the full article may be behind a paywall."
)

# Transcripts are never paywall-truncated
_EXEMPT_TYPES = {ContentType.VIDEO.value, ContentType.PODCAST.value}


def is_paywalled_domain(url: str) -> bool:
    """True for a known subscription site or one of its subdomains."""
    host = (urlparse(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return any(host == domain or host.endswith("." + domain) for domain in PAYWALLED_DOMAINS)


def detect_paywall_truncation(url: str, text: str | None, content_type: str) -> str | None:
    """
    Warning to show alongside the analysis, or None.

    Args:
        url: Source URL
        text: Extracted text
        content_type: Stored content type value
    """
    if not text or content_type in _EXEMPT_TYPES:
        return None

    length = len(text)
    known = is_paywalled_domain(url)
    if known and length < PREVIEW_LENGTH:
        return PREVIEW_WARNING
    if content_type == ContentType.ARTICLE.value and length < SHORT_ARTICLE_LENGTH:
        return SHORT_CONTENT_WARNING
    if known:
        return SUBSCRIPTION_WARNING
    return None
