"""URL parsing utilities."""

import re
from urllib.parse import urlsplit

import idna
import tldextract

from privacy_reader.core.errors import ValidationError

# Bundled public-suffix snapshot only; no network fetch of the suffix list.
_extract = tldextract.TLDExtract(suffix_list_urls=())

# Whitespace and ASCII control characters; urlsplit silently drops some of them.
_UNSAFE_CHARS = re.compile(r"[\x00-\x20\x7f]")


def _check_hostname(hostname: str, url: str) -> None:
    """Raise ValidationError unless *hostname* survives IDNA encoding/decoding."""
    try:
        if not hostname.isascii():
            idna.encode(hostname, uts46=True)
        elif any(label.startswith("xn--") for label in hostname.split(".")):
            idna.decode(hostname)
    except UnicodeError as e:
        raise ValidationError(f"Invalid hostname {hostname!r}: {e}", url=url) from e


def validate_url(url: str) -> str:
    """
    Return the stripped URL if it is an absolute http(s) URL with a valid host.

    Raises ValidationError otherwise, including for embedded whitespace or
    control characters and hostnames that are not valid IDNA.
    """
    candidate = (url or "").strip()
    if not candidate:
        raise ValidationError("URL is required", url=url)
    if _UNSAFE_CHARS.search(candidate):
        raise ValidationError("URL contains whitespace or control characters", url=candidate)
    try:
        parts = urlsplit(candidate)
    except ValueError as e:
        raise ValidationError(f"Invalid URL: {e}", url=candidate) from e
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        raise ValidationError("URL must be an absolute http(s) URL", url=candidate)
    _check_hostname(parts.hostname, candidate)
    return candidate


def get_hostname(url: str) -> str:
    """Return the lower-cased host of a URL (``www.example.com``), or ``""``."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def get_domain(url_or_host: str) -> str:
    """
    Registered domain of a URL or bare hostname (``https://help.acme.co.uk/x`` and
    ``help.acme.co.uk`` both give ``acme.co.uk``). Single-label hosts such as
    ``localhost`` come back as-is; ``""`` for empty input.
    """
    ext = _extract(url_or_host.strip().lower())
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"
    return ext.domain or ""


def get_domain_label(url: str) -> str:
    """Return the registered domain without its public suffix (``policies.google.com`` -> ``google``)."""
    return _extract(url).domain or ""


def host_matches(hostname: str, domain: str) -> bool:
    """True when *hostname* is *domain* or one of its subdomains."""
    hostname = hostname.lower().rstrip(".")
    domain = domain.lower()
    return hostname == domain or hostname.endswith("." + domain)
