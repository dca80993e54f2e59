"""Application utilities."""

from privacy_reader.utils.extract_text import extract_metadata, extract_text
from privacy_reader.utils.fetch_page import FetchResult, PageFetcher
from privacy_reader.utils.policy_detector import is_probably_policy
from privacy_reader.utils.url_utils import get_domain, get_hostname, validate_url

__all__ = [
    "FetchResult",
    "PageFetcher",
    "extract_metadata",
    "extract_text",
    "get_domain",
    "get_hostname",
    "is_probably_policy",
    "validate_url",
]
