"""LLM provider abstraction.

To add a provider:
1. Subclass LLMProvider and implement generate().
2. Call register_provider("name", factory) where factory is a callable
   (Settings) -> LLMProvider | None, returning None when the provider has no
   credentials configured.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable

from langchain_google_genai import ChatGoogleGenerativeAI
from openai import APIConnectionError, APIStatusError, AsyncOpenAI, RateLimitError

from privacy_reader.core.config import Settings
from privacy_reader.core.errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Settings], "LLMProvider | None"]

# Registry: provider name -> factory(settings) -> LLMProvider | None
_PROVIDER_REGISTRY: dict[str, ProviderFactory] = {}

_RATE_LIMIT_MARKERS = ("429", "resource_exhausted", "resourceexhausted", "rate limit", "quota")


def register_provider(name: str, factory: ProviderFactory) -> None:
    """Register an LLM provider under *name*."""
    name = (name or "").lower().strip()
    if not name:
        raise ValueError("Provider name must be non-empty")
    _PROVIDER_REGISTRY[name] = factory


def list_providers() -> list[str]:
    """Return registered provider names."""
    return sorted(_PROVIDER_REGISTRY.keys())


def is_rate_limit_error(error: BaseException) -> bool:
    if isinstance(error, RateLimitError):
        return True
    message = f"{type(error).__name__} {error}".lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


class LLMProvider(ABC):
    """Turns a prompt into raw response text."""

    name: str

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Return the model's complete response; raise ProviderError on failure."""


class GeminiProvider(LLMProvider):
    """Google Gemini through LangChain's chat model wrapper."""

    name = "gemini"

    def __init__(self, api_key: str, *, model: str = "gemini-2.5-flash") -> None:
        self._model = ChatGoogleGenerativeAI(
            model=model,
            google_api_key=api_key,
            temperature=0,
        )

    async def generate(self, prompt: str) -> str:
        try:
            message = await self._model.ainvoke(prompt)
        except Exception as e:
            raise ProviderError(
                f"Gemini API error: {e}",
                provider=self.name,
                rate_limited=is_rate_limit_error(e),
            ) from e
        content = message.content
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        return content or ""


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions, asking for a JSON object response."""

    name = "openai"

    def __init__(self, api_key: str, *, model: str = "gpt-4o-mini", temperature: float = 0.1) -> None:
        self._client = AsyncOpenAI(api_key=api_key, timeout=60.0)
        self._model = model
        self._temperature = temperature

    async def generate(self, prompt: str) -> str:
        try:
            resp = await self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self._temperature,
                response_format={"type": "json_object"},
            )
        except RateLimitError as e:
            raise ProviderError(f"OpenAI rate limit: {e}", provider=self.name, rate_limited=True) from e
        except (APIStatusError, APIConnectionError) as e:
            raise ProviderError(
                f"OpenAI API error: {e}",
                provider=self.name,
                rate_limited=is_rate_limit_error(e),
            ) from e
        if resp.choices and resp.choices[0].message.content:
            return resp.choices[0].message.content
        return ""


def _gemini_factory(settings: Settings) -> LLMProvider | None:
    if not settings.gemini_api_key:
        return None
    return GeminiProvider(settings.gemini_api_key, model=settings.gemini_model)


def _openai_factory(settings: Settings) -> LLMProvider | None:
    if not settings.openai_api_key:
        return None
    return OpenAIProvider(settings.openai_api_key, model=settings.openai_model)


register_provider("gemini", _gemini_factory)
register_provider("openai", _openai_factory)


def build_providers(settings: Settings) -> list[LLMProvider]:
    """Instantiate every configured provider, preferred provider first."""
    preferred = settings.preferred_provider.lower().strip()
    names = list_providers()
    if preferred in names:
        names.remove(preferred)
        names.insert(0, preferred)

    providers: list[LLMProvider] = []
    for name in names:
        provider = _PROVIDER_REGISTRY[name](settings)
        if provider is not None:
            providers.append(provider)
    if providers:
        logger.info("Configured AI providers: %s", ", ".join(p.name for p in providers))
    else:
        logger.error("No AI provider configured. Set GEMINI_API_KEY or OPENAI_API_KEY.")
    return providers


def require_providers(providers: list[LLMProvider]) -> list[LLMProvider]:
    if not providers:
        raise ConfigurationError("No AI provider configured. Set GEMINI_API_KEY or OPENAI_API_KEY.")
    return providers
