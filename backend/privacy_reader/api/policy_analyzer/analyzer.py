"""Cache-aware policy analysis with cross-provider fallback."""

import logging
import time

from privacy_reader.api.policy_analyzer.models import AnalysisResult, placeholder_analysis
from privacy_reader.api.policy_analyzer.parsing import parse_analysis_response
from privacy_reader.api.policy_analyzer.prompts import build_prompt
from privacy_reader.api.policy_analyzer.providers import LLMProvider, require_providers
from privacy_reader.cache import ANALYSIS_NAMESPACE, PolicyCache, cache_key
from privacy_reader.core.errors import ProviderError
from privacy_reader.schemas.policy import PolicyData

logger = logging.getLogger(__name__)

# Preferred provider plus exactly one fallback.
MAX_PROVIDER_ATTEMPTS = 2


class PolicyAnalyzer:
    """
    Analyze extracted policy text with the configured LLM providers.

    Results are cached per URL. The preferred provider is tried first and one
    other provider on failure (including rate limits and unparseable output).
    Outside production a placeholder result is returned when every attempt
    fails; in production the last ProviderError is raised.
    """

    def __init__(
        self,
        cache: PolicyCache,
        providers: list[LLMProvider],
        *,
        cache_ttl_seconds: int = 60 * 60 * 24 * 7,
        max_prompt_chars: int = 30_000,
        allow_placeholder: bool = False,
    ) -> None:
        self._cache = cache
        self._providers = providers
        self._ttl = cache_ttl_seconds
        self._max_prompt_chars = max_prompt_chars
        self._allow_placeholder = allow_placeholder

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self._providers]

    async def analyze(self, policy_data: PolicyData, *, skip_cache: bool = False) -> AnalysisResult:
        logger.info("Starting analysis for %s", policy_data.url)
        key = cache_key(ANALYSIS_NAMESPACE, policy_data.url)

        if not skip_cache:
            cached = await self._cache.get_model(key, AnalysisResult)
            if cached is not None:
                logger.info("Using cached analysis for %s", policy_data.url)
                return cached

        providers = require_providers(self._providers)
        prompt = build_prompt(
            url=policy_data.url,
            title=policy_data.title,
            text=policy_data.text,
            company=policy_data.company,
            last_updated=policy_data.last_updated,
            max_chars=self._max_prompt_chars,
        )

        started = time.monotonic()
        last_error: ProviderError | None = None
        unparsed: AnalysisResult | None = None
        for provider in providers[:MAX_PROVIDER_ATTEMPTS]:
            logger.info("Analyzing %s with %s", policy_data.url, provider.name)
            try:
                raw = await provider.generate(prompt)
            except ProviderError as e:
                e.url = policy_data.url
                last_error = e
                unparsed = None
                if e.rate_limited:
                    logger.warning("Provider %s rate limited for %s", provider.name, policy_data.url)
                else:
                    logger.error("Provider %s failed for %s: %s", provider.name, policy_data.url, e.message)
                continue

            result = parse_analysis_response(raw)
            if not result.is_complete:
                logger.warning("Provider %s returned unusable output for %s", provider.name, policy_data.url)
                unparsed = result.model_copy(update={"provider": provider.name})
                continue

            result = result.model_copy(update={"provider": provider.name})
            await self._cache.set_model(key, result, self._ttl)
            logger.info(
                "Analysis completed in %.0fms using %s",
                (time.monotonic() - started) * 1000,
                provider.name,
            )
            return result

        # Last attempt answered but unparseably: hand back the fixed fallback object.
        if unparsed is not None:
            return unparsed
        if self._allow_placeholder:
            reason = last_error.message if last_error else "no provider response"
            logger.warning("All providers failed for %s; returning placeholder analysis", policy_data.url)
            return placeholder_analysis(reason)
        raise last_error or ProviderError("No AI provider produced a result", url=policy_data.url)
