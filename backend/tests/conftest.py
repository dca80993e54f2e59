"""Pytest fixtures for privacy reader tests."""
from __future__ import annotations

import json

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from privacy_reader.api.policy_analyzer.providers import LLMProvider
from privacy_reader.cache import MemoryCacheBackend, PolicyCache
from privacy_reader.core.errors import FetchError
from privacy_reader.db import create_session_factory, init_models
from privacy_reader.policy_store import PolicyStore

POLICY_PARAGRAPHS = [
    "This privacy policy explains how Acme collects, uses and discloses personal information "
    "when you use our websites, apps and services.",
    "We collect personal data you provide to us, such as your name, email address and payment details, "
    "as well as device identifiers and usage data gathered automatically through cookies.",
    "We share personal information with third parties that process it on our behalf, including "
    "payment processors, analytics providers and cloud hosting companies, under data protection agreements.",
    "Depending on where you live you have rights over your data, including the right to access, correct, "
    "delete and port it, and the right to opt out of the sale of personal information under the CCPA.",
    "We retain your personal data only for as long as necessary to provide the services and to meet our "
    "legal obligations, after which it is deleted or anonymised.",
    "Where the GDPR applies, Acme Inc. is the controller and our legal basis for processing is consent, "
    "contract performance or our legitimate interests.",
]


def policy_html(*, title: str = "Acme Privacy Policy", extra: str = "", updated: str = "March 3, 2024") -> str:
    body = "".join(f"<p>{p}</p>" for p in POLICY_PARAGRAPHS * 2)
    return (
        "<html><head>"
        f"<title>{title}</title>"
        '<meta property="og:site_name" content="Acme">'
        "<script>var tracking = 'ignore me';</script>"
        "</head><body>"
        "<nav>Home | Products | Careers | Contact</nav>"
        '<main><article class="privacy-policy">'
        f"<h1>{title}</h1>"
        f"<p>Last updated: {updated}</p>"
        f"{body}{extra}"
        "</article></main>"
        "<footer>Copyright Acme Inc. All rights reserved.</footer>"
        "</body></html>"
    )


def analysis_payload(**overrides) -> dict:
    payload = {
        "summary": ["Collects account and device data", "Shares data with processors"],
        "dataCollection": {"Personal": ["name", "email"], "Device": ["device identifiers"]},
        "dataSharing": {"Payment processors": "billing"},
        "retention": "As long as necessary",
        "userRights": ["access", "deletion"],
        "score": {"value": 72, "explanation": "Clear rights, broad sharing"},
        "redFlags": ["Broad third-party sharing"],
        "compliance": {"GDPR": "Mostly compliant", "CCPA": "Opt-out offered"},
    }
    payload.update(overrides)
    return payload


class FakeProvider(LLMProvider):
    """Scripted provider: each call pops the next response (str) or raises it (Exception)."""

    def __init__(self, name: str, responses: list) -> None:
        self.name = name
        self._responses = list(responses)
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def calls(self) -> int:
        return len(self.prompts)


class FakeStrategy:
    """Fetch strategy returning fixed HTML or raising a FetchError."""

    def __init__(self, name: str, html: str | None = None, *, status: int = 200, error: str | None = None) -> None:
        self.name = name
        self._html = html
        self._status = status
        self._error = error
        self.urls: list[str] = []

    async def fetch(self, url: str) -> tuple[str, int | None]:
        self.urls.append(url)
        if self._error is not None:
            raise FetchError(self._error, url=url, status=self._status)
        return self._html or "", self._status

    @property
    def calls(self) -> int:
        return len(self.urls)


@pytest.fixture
def cache() -> PolicyCache:
    return PolicyCache(MemoryCacheBackend())


@pytest.fixture
def good_response() -> str:
    return json.dumps(analysis_payload())


@pytest_asyncio.fixture
async def store(tmp_path):
    """PolicyStore on a throwaway SQLite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'policies.db'}")
    await init_models(engine)
    yield PolicyStore(create_session_factory(engine))
    await engine.dispose()
