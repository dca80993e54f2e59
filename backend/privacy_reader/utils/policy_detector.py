"""Heuristic privacy-policy detection from a URL and, optionally, its HTML."""

from bs4 import BeautifulSoup

URL_KEYWORDS: tuple[str, ...] = (
    "privacy",
    "privacypolicy",
    "data-policy",
    "datapolicy",
    "data-protection",
    "gdpr",
    "datenschutz",
    "confidentialite",
    "confidentialité",
    "privacidad",
    "privacidade",
    "privacybeleid",
    "riservatezza",
    "integritet",
    "personvern",
    "tietosuoja",
    "prywatnosc",
    "gizlilik",
)

HEADING_KEYWORDS: tuple[str, ...] = (
    "privacy",
    "policy",
    "data",
    "personal information",
    "cookie",
    "gdpr",
)

CONTENT_PHRASES: tuple[str, ...] = (
    "we collect",
    "personal data",
    "personal information",
    "your rights",
    "opt out",
    "third parties",
    "data protection",
    "controller",
    "processor",
    "legal basis",
    "retain your",
    "we share",
    "cookies",
)

MIN_CONTENT_PHRASES = 4


def url_looks_like_policy(url: str) -> bool:
    lowered = url.lower()
    return any(keyword in lowered for keyword in URL_KEYWORDS)


def count_policy_phrases(text: str) -> int:
    """Number of distinct CONTENT_PHRASES present in *text*."""
    lowered = text.lower()
    return sum(1 for phrase in CONTENT_PHRASES if phrase in lowered)


def is_probably_policy(url: str, html: str | None = None) -> bool:
    """
    Advisory check: does this URL/HTML pair look like a privacy policy?

    A URL keyword match is authoritative. Otherwise, with HTML, a matching
    title/heading or at least MIN_CONTENT_PHRASES distinct body phrases.
    """
    if url_looks_like_policy(url):
        return True
    if not html:
        return False

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    headings = [soup.title.get_text(" ", strip=True)] if soup.title else []
    headings += [h.get_text(" ", strip=True) for h in soup.find_all(["h1", "h2", "h3"])]
    for heading in headings:
        lowered = heading.lower()
        if any(keyword in lowered for keyword in HEADING_KEYWORDS):
            return True

    root = soup.body or soup
    return count_policy_phrases(root.get_text(" ", strip=True)) >= MIN_CONTENT_PHRASES
