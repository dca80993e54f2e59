"""The analyze-policy use case: freshness check, fetch, classify, extract, analyze, persist."""

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from privacy_reader.api.policy_analyzer.analyzer import PolicyAnalyzer
from privacy_reader.core.errors import ExtractionError, FetchError, PolicyReaderError
from privacy_reader.policy_store import PolicyStore, is_fresh
from privacy_reader.schemas.policy import AnalysisRequestLog, PolicyData, PolicyRecord
from privacy_reader.utils.extract_text import extract_metadata, extract_text
from privacy_reader.utils.fetch_page import PageFetcher
from privacy_reader.utils.policy_detector import is_probably_policy
from privacy_reader.utils.url_utils import get_hostname, validate_url

logger = logging.getLogger(__name__)

MIN_HTML_CHARS = 100
MIN_TEXT_CHARS = 200

NOT_A_POLICY_WARNING = "This page may not be a privacy policy; the analysis may be unreliable."


@dataclass
class RequestInfo:
    user_id: int | None = None
    user_agent: str | None = None
    ip_address: str | None = None


@dataclass
class AnalyzeOutcome:
    policy: PolicyRecord
    cached: bool
    is_new: bool | None = None
    warnings: list[str] = field(default_factory=list)


class PolicyPipeline:
    def __init__(
        self,
        fetcher: PageFetcher,
        analyzer: PolicyAnalyzer,
        store: PolicyStore,
        *,
        freshness_window: timedelta = timedelta(days=7),
        max_raw_text_chars: int = 100_000,
    ) -> None:
        self._fetcher = fetcher
        self._analyzer = analyzer
        self._store = store
        self._freshness_window = freshness_window
        self._max_raw_text_chars = max_raw_text_chars

    async def analyze(
        self,
        url: str,
        *,
        force_fresh: bool = False,
        skip_cache: bool = False,
        request_info: RequestInfo | None = None,
    ) -> AnalyzeOutcome:
        url = validate_url(url)
        logger.info("Received analysis request for %s", url)

        if not force_fresh:
            existing = await self._store.get_by_url(url)
            if (
                existing is not None
                and existing.analysis_status == "complete"
                and is_fresh(existing, self._freshness_window)
            ):
                logger.info("Returning stored analysis %s for %s", existing.id, url)
                await self._track(url, existing.id, True, request_info)
                return AnalyzeOutcome(policy=existing, cached=True)

        try:
            outcome = await self._run(url, skip_cache=skip_cache)
        except PolicyReaderError as e:
            if e.url is None:
                e.url = url
            raise
        await self._track(url, outcome.policy.id, False, request_info)
        return outcome

    async def _run(self, url: str, *, skip_cache: bool) -> AnalyzeOutcome:
        fetched = await self._fetcher.fetch(url, skip_cache=skip_cache)
        html = fetched.html
        if len(html.strip()) < MIN_HTML_CHARS:
            raise FetchError(f"Insufficient HTML content fetched from {url}", url=url, status=fetched.status)

        warnings: list[str] = []
        if not is_probably_policy(url, html):
            logger.warning("%s does not look like a privacy policy", url)
            warnings.append(NOT_A_POLICY_WARNING)

        text = extract_text(html, url)
        if len(text) < MIN_TEXT_CHARS:
            raise ExtractionError(
                f"Insufficient text content extracted from {url} ({len(text)} chars)",
                url=url,
            )
        metadata = extract_metadata(html, url)
        logger.info("Extracted %d chars from %s (method=%s)", len(text), url, fetched.method)

        policy_data = PolicyData(
            url=url,
            domain=get_hostname(url),
            title=metadata.title,
            company=metadata.company,
            last_updated=metadata.last_updated,
            text=text[: self._max_raw_text_chars],
            extraction_method=fetched.method,
        )

        analysis = await self._analyzer.analyze(policy_data, skip_cache=skip_cache)
        if not analysis.is_complete:
            warnings.append(f"Analysis status: {analysis.analysis_status}; manual review recommended.")

        saved = await self._store.save(policy_data, analysis)
        policy = await self._store.get_by_id(saved.policy_id)
        if policy is None:
            raise PolicyReaderError(f"Saved policy {saved.policy_id} could not be read back", url=url)

        logger.info("Analysis complete for %s. Policy ID: %s (new=%s)", url, saved.policy_id, saved.is_new)
        return AnalyzeOutcome(policy=policy, cached=False, is_new=saved.is_new, warnings=warnings)

    async def _track(
        self, url: str, policy_id: int | None, cached: bool, request_info: RequestInfo | None
    ) -> None:
        if request_info is None:
            return
        await self._store.track_request(AnalysisRequestLog(
            url=url,
            policy_id=policy_id,
            user_id=request_info.user_id,
            cached=cached,
            user_agent=request_info.user_agent,
            ip_address=request_info.ip_address,
        ))
