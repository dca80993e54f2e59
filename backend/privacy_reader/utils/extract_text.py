"""Pull the policy body and its metadata out of raw HTML."""

import logging
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from privacy_reader.utils.url_utils import get_domain_label, get_hostname

logger = logging.getLogger(__name__)

NON_CONTENT_TAGS = [
    "script", "style", "noscript", "nav", "header", "footer",
    "iframe", "frame", "object", "embed", "svg",
]

# Most specific first: dedicated policy containers, then content, then layout.
CANDIDATE_SELECTORS: list[str] = [
    "#privacy-policy",
    ".privacy-policy",
    "#privacy",
    ".privacy",
    "[id*=privacy]",
    "[class*=privacy]",
    ".policy",
    "#policy",
    ".legal",
    "#legal",
    "article",
    "main",
    "[role=main]",
    ".content",
    "#content",
    ".main-content",
    ".entry-content",
    ".container",
    "#main",
    ".page",
    "section",
]

PRIVACY_VOCABULARY: list[str] = [
    "privacy",
    "personal data",
    "personal information",
    "cookie",
    "third part",
    "consent",
    "data protection",
    "retention",
    "your rights",
    "collect",
    "disclose",
    "opt out",
    "gdpr",
    "ccpa",
    "processing",
]

MIN_CANDIDATE_WORDS = 50
MEDIUM_CONFIDENCE_SCORE = 500
HIGH_CONFIDENCE_SCORE = 1000
MIN_PARAGRAPH_CHARS = 20
MIN_FALLBACK_CHARS = 500

_DATE = (
    r"([A-Z][a-z]+\.?\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4}"
    r"|\d{1,2}(?:st|nd|rd|th)?\s+[A-Z][a-z]+\.?,?\s+\d{4}"
    r"|\d{4}-\d{2}-\d{2}"
    r"|\d{1,2}[/.]\d{1,2}[/.]\d{2,4})"
)

LAST_UPDATED_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"last\s+(?:updated|modified|revised)(?:\s+on)?\s*[:\-]?\s*" + _DATE, re.IGNORECASE),
    re.compile(r"effective\s+date\s*[:\-]?\s*" + _DATE, re.IGNORECASE),
    re.compile(r"effective\s+(?:as\s+of|from|on)\s*[:\-]?\s*" + _DATE, re.IGNORECASE),
    re.compile(r"\bupdated(?:\s+on)?\s*:\s*" + _DATE, re.IGNORECASE),
]

SUBDOMAIN_PREFIXES = ("www.", "privacy.", "legal.", "help.", "support.")
COMMON_TLDS = (".com", ".org", ".net", ".io", ".co", ".gov", ".edu")


@dataclass
class PolicyMetadata:
    title: str
    company: str | None
    last_updated: str | None


@dataclass
class ExtractionCandidate:
    selector: str
    text: str
    words: int
    score: float


def normalize_text(text: str) -> str:
    """Collapse spaces/tabs to one space and newline runs to one newline, then trim."""
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r"\s*\n\s*", "\n", text)
    return text.strip()


def _clean_soup(html: str) -> BeautifulSoup:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(NON_CONTENT_TAGS):
        tag.decompose()
    return soup


def relevance_score(text: str) -> tuple[int, float]:
    """``(word_count, score)`` where score = words * (1 + 2 * vocabulary fraction present)."""
    words = len(text.split())
    lowered = text.lower()
    found = sum(1 for term in PRIVACY_VOCABULARY if term in lowered)
    return words, words * (1 + 2 * found / len(PRIVACY_VOCABULARY))


def find_best_candidate(soup: BeautifulSoup) -> ExtractionCandidate | None:
    best: ExtractionCandidate | None = None
    for selector in CANDIDATE_SELECTORS:
        for element in soup.select(selector):
            text = element.get_text(separator=" ", strip=True)
            words, score = relevance_score(text)
            if words < MIN_CANDIDATE_WORDS:
                continue
            if best is None or score > best.score:
                best = ExtractionCandidate(selector=selector, text=text, words=words, score=score)
            if score > HIGH_CONFIDENCE_SCORE:
                return best
    return best


def _paragraph_text(soup: BeautifulSoup) -> str:
    paragraphs = []
    for p in soup.find_all("p"):
        text = p.get_text(separator=" ", strip=True)
        if len(text) > MIN_PARAGRAPH_CHARS:
            paragraphs.append(text)
    return "\n".join(paragraphs)


def _body_text(soup: BeautifulSoup) -> str:
    root: Tag | BeautifulSoup = soup.body or soup
    return root.get_text(separator="\n", strip=True)


def extract_text(html: str, url: str = "") -> str:
    """
    Return the most likely policy text from *html*.

    Best-scoring container wins. Below medium confidence the paragraphs are
    concatenated instead; if that is still short, the whole body is used. A
    later tier never produces less text than an earlier one.
    """
    soup = _clean_soup(html)
    best = find_best_candidate(soup)
    if best is not None and best.score >= MEDIUM_CONFIDENCE_SCORE:
        logger.debug("Extracted %s via selector %s (score %.0f)", url, best.selector, best.score)
        return normalize_text(best.text)

    text = normalize_text(best.text) if best is not None else ""
    paragraphs = normalize_text(_paragraph_text(soup))
    if len(paragraphs) >= len(text):
        text = paragraphs
    logger.debug("Low-confidence extraction for %s; paragraph fallback gave %d chars", url, len(paragraphs))

    if len(text) < MIN_FALLBACK_CHARS:
        body = normalize_text(_body_text(soup))
        if len(body) >= len(text):
            text = body
        logger.debug("Using full body text for %s (%d chars)", url, len(text))
    return text


def _meta_content(soup: BeautifulSoup, *, prop: str | None = None, name: str | None = None) -> str | None:
    tag = soup.find("meta", attrs={"property": prop}) if prop else soup.find("meta", attrs={"name": name})
    if isinstance(tag, Tag):
        content = (tag.get("content") or "").strip()
        return content or None
    return None


def extract_title(soup: BeautifulSoup) -> str:
    for heading in soup.find_all(["h1", "h2"]):
        text = normalize_text(heading.get_text(separator=" ", strip=True))
        lowered = text.lower()
        if text and ("privacy" in lowered or "policy" in lowered):
            return text
    if soup.title and soup.title.string:
        title = normalize_text(soup.title.string)
        if title:
            return title
    return "Privacy Policy"


def extract_last_updated(text: str) -> str | None:
    for pattern in LAST_UPDATED_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def company_from_domain(url: str) -> str | None:
    """``https://privacy.acme-corp.co.uk`` -> ``Acme-corp``."""
    label = get_domain_label(url)
    if not label:
        host = get_hostname(url)
        for prefix in SUBDOMAIN_PREFIXES:
            if host.startswith(prefix):
                host = host[len(prefix):]
        for tld in COMMON_TLDS:
            if host.endswith(tld):
                host = host[: -len(tld)]
        label = host.split(".")[-1] if host else ""
    return label.capitalize() if label else None


def extract_metadata(html: str, url: str) -> PolicyMetadata:
    soup = BeautifulSoup(html, "html.parser")
    company = (
        _meta_content(soup, prop="og:site_name")
        or _meta_content(soup, name="application-name")
        or company_from_domain(url)
    )
    title = extract_title(soup)
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    last_updated = extract_last_updated(normalize_text(soup.get_text(separator=" ", strip=True)))
    return PolicyMetadata(title=title, company=company, last_updated=last_updated)
