"""Error taxonomy for the policy analysis pipeline.

Every error raised out of the pipeline carries the offending URL (when one is
known) and an HTTP status code the API layer uses when rendering it.
"""

from __future__ import annotations


class PolicyReaderError(Exception):
    """Base class for pipeline errors."""

    status_code = 500

    def __init__(self, message: str, *, url: str | None = None) -> None:
        self.message = message
        self.url = url
        super().__init__(message)

    def to_dict(self) -> dict[str, str | None]:
        return {"type": type(self).__name__, "message": self.message, "url": self.url}


class ValidationError(PolicyReaderError):
    """Malformed input, e.g. a URL that does not parse. Never retried."""

    status_code = 400


class FetchError(PolicyReaderError):
    """Network/HTTP failure or anti-bot block after all fetch strategies."""

    status_code = 502

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None) -> None:
        super().__init__(message, url=url)
        self.status = status


class ExtractionError(PolicyReaderError):
    """Too little text extracted from the fetched page."""

    status_code = 422


class ProviderError(PolicyReaderError):
    """LLM provider call failed (auth, quota, transport, unusable output)."""

    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        provider: str | None = None,
        rate_limited: bool = False,
    ) -> None:
        super().__init__(message, url=url)
        self.provider = provider
        self.rate_limited = rate_limited


class ConfigurationError(PolicyReaderError):
    """Required configuration is missing, e.g. no LLM provider has credentials."""

    status_code = 500


class PersistenceError(PolicyReaderError):
    """Database write or read failure."""

    status_code = 500


class NotFoundError(PolicyReaderError):
    status_code = 404
