"""End-to-end tests of the analyze use case with fake fetch strategies and providers."""
from __future__ import annotations

import json

import pytest

from privacy_reader.api.policy_analyzer.analyzer import PolicyAnalyzer
from privacy_reader.api.policy_analyzer.pipeline import NOT_A_POLICY_WARNING, PolicyPipeline, RequestInfo
from privacy_reader.core.errors import ExtractionError, FetchError, ProviderError, ValidationError
from privacy_reader.utils.fetch_page import PageFetcher

from conftest import FakeProvider, FakeStrategy, analysis_payload, policy_html

URL = "https://www.acme.com/privacy"


class Harness:
    def __init__(self, cache, store, *, html: str | None = None, responses: list | None = None,
                 http_error: str | None = None, browser_error: str | None = None) -> None:
        self.http = FakeStrategy("http", html if html is not None else policy_html(), error=http_error)
        self.browser = FakeStrategy("browser", html if html is not None else policy_html(), error=browser_error)
        self.provider = FakeProvider("gemini", responses or [json.dumps(analysis_payload())])
        fetcher = PageFetcher(cache, http_strategy=self.http, browser_strategy=self.browser)
        analyzer = PolicyAnalyzer(cache, [self.provider])
        self.store = store
        self.pipeline = PolicyPipeline(fetcher, analyzer, store)

    @property
    def fetches(self) -> int:
        return self.http.calls + self.browser.calls


@pytest.mark.asyncio
async def test_first_analysis_persists_a_new_policy(cache, store):
    h = Harness(cache, store)
    outcome = await h.pipeline.analyze(URL)

    assert outcome.cached is False
    assert outcome.is_new is True
    assert outcome.warnings == []
    policy = outcome.policy
    assert policy.url == URL
    assert policy.domain == "www.acme.com"
    assert policy.title == "Acme Privacy Policy"
    assert policy.company == "Acme"
    assert policy.last_updated == "March 3, 2024"
    assert policy.extraction_method == "http"
    assert policy.score.value == 72
    assert policy.provider == "gemini"
    assert policy.created_at == policy.last_checked
    assert "Home | Products" not in policy.raw_text


@pytest.mark.asyncio
async def test_fresh_stored_result_short_circuits(cache, store):
    h = Harness(cache, store)
    first = await h.pipeline.analyze(URL)
    second = await h.pipeline.analyze(URL)

    assert second.cached is True
    assert second.is_new is None
    assert second.policy.id == first.policy.id
    assert h.fetches == 1
    assert h.provider.calls == 1


@pytest.mark.asyncio
async def test_force_fresh_with_unchanged_text_reuses_version(cache, store):
    h = Harness(cache, store)
    first = await h.pipeline.analyze(URL)
    again = await h.pipeline.analyze(URL, force_fresh=True)

    assert again.cached is False
    assert again.is_new is False
    assert again.policy.id == first.policy.id
    assert again.policy.last_checked >= first.policy.last_checked
    # HTML and analysis caches still answer.
    assert h.fetches == 1
    assert h.provider.calls == 1


@pytest.mark.asyncio
async def test_skip_cache_refetches_and_reanalyzes(cache, store):
    h = Harness(cache, store)
    await h.pipeline.analyze(URL)
    await h.pipeline.analyze(URL, force_fresh=True, skip_cache=True)
    assert h.fetches == 2
    assert h.provider.calls == 2


@pytest.mark.asyncio
async def test_changed_policy_creates_new_version(cache, store):
    h = Harness(cache, store)
    first = await h.pipeline.analyze(URL)

    changed = Harness(cache, store, html=policy_html(extra="<p>We now also sell your data to brokers worldwide.</p>"))
    second = await changed.pipeline.analyze(URL, force_fresh=True, skip_cache=True)

    assert second.is_new is True
    assert second.policy.id != first.policy.id
    history = await store.get_history(second.policy.id)
    assert [r.id for r in history] == [second.policy.id, first.policy.id]


@pytest.mark.asyncio
async def test_short_text_is_an_extraction_error(cache, store):
    html = "<html><body><h1>Privacy</h1><p>" + "Tiny privacy notice. " * 3 + "</p>" + "<!-- pad -->" * 20 + "</body></html>"
    h = Harness(cache, store, html=html)
    with pytest.raises(ExtractionError) as exc_info:
        await h.pipeline.analyze(URL)
    assert exc_info.value.url == URL
    assert h.provider.calls == 0
    assert await store.get_by_url(URL) is None


@pytest.mark.asyncio
async def test_tiny_html_is_a_fetch_error(cache, store):
    h = Harness(cache, store, html="<html></html>")
    with pytest.raises(FetchError, match="Insufficient HTML"):
        await h.pipeline.analyze(URL)


@pytest.mark.asyncio
async def test_fetch_failure_propagates_with_url(cache, store):
    h = Harness(
        cache,
        store,
        http_error="HTTP fetch failed with status 500",
        browser_error="Browser fetch failed: timeout",
    )
    with pytest.raises(FetchError) as exc_info:
        await h.pipeline.analyze(URL)
    assert exc_info.value.url == URL


@pytest.mark.asyncio
async def test_provider_failure_saves_nothing(cache, store):
    h = Harness(cache, store, responses=[ProviderError("quota", provider="gemini", rate_limited=True)])
    with pytest.raises(ProviderError):
        await h.pipeline.analyze(URL)
    assert await store.get_by_url(URL) is None


@pytest.mark.asyncio
async def test_unparseable_analysis_is_saved_with_warning(cache, store):
    h = Harness(cache, store, responses=["no json here"])
    outcome = await h.pipeline.analyze(URL)
    assert outcome.policy.analysis_status == "failed"
    assert outcome.policy.score.value == 0
    assert any("manual review" in w for w in outcome.warnings)


@pytest.mark.asyncio
async def test_failed_analysis_is_retried_on_next_request(cache, store, good_response):
    h = Harness(cache, store, responses=["no json here", good_response])
    failed = await h.pipeline.analyze(URL)
    assert failed.policy.analysis_status == "failed"

    retried = await h.pipeline.analyze(URL)

    assert retried.cached is False
    assert retried.is_new is True
    assert retried.policy.id != failed.policy.id
    assert retried.policy.analysis_status == "complete"
    assert retried.policy.score.value == 72
    assert h.provider.calls == 2
    assert h.fetches == 1
    assert (await store.get_by_url(URL)).id == retried.policy.id


@pytest.mark.asyncio
async def test_forced_refresh_replaces_failed_analysis(cache, store, good_response):
    h = Harness(cache, store, responses=["garbage", good_response])
    failed = await h.pipeline.analyze(URL)
    assert failed.policy.analysis_status == "failed"

    refreshed = await h.pipeline.analyze(URL, force_fresh=True, skip_cache=True)

    assert refreshed.is_new is True
    assert refreshed.policy.analysis_status == "complete"
    assert not any("manual review" in w for w in refreshed.warnings)
    snapshots = await store.get_snapshots(refreshed.policy.id)
    assert [s.policy_id for s in snapshots] == [failed.policy.id]


@pytest.mark.asyncio
async def test_non_policy_page_is_analyzed_with_warning(cache, store):
    html = (
        "<html><head><title>Acme Widgets</title></head><body><main>"
        + "<p>Acme widgets are durable, affordable and made with care in small batches every week.</p>" * 12
        + "</main></body></html>"
    )
    h = Harness(cache, store, html=html)
    outcome = await h.pipeline.analyze("https://acme.com/products")
    assert outcome.warnings == [NOT_A_POLICY_WARNING]
    assert outcome.policy.url == "https://acme.com/products"


@pytest.mark.asyncio
async def test_invalid_url_is_rejected(cache, store):
    h = Harness(cache, store)
    with pytest.raises(ValidationError):
        await h.pipeline.analyze("javascript:alert(1)")
    assert h.fetches == 0


@pytest.mark.asyncio
async def test_requests_are_tracked(cache, store):
    from sqlalchemy import select

    from privacy_reader.models import PolicyRequest

    h = Harness(cache, store)
    info = RequestInfo(user_agent="pytest", ip_address="10.0.0.1")
    await h.pipeline.analyze(URL, request_info=info)
    await h.pipeline.analyze(URL, request_info=info)

    async with store._session_factory() as session:
        rows = (await session.execute(select(PolicyRequest).order_by(PolicyRequest.id))).scalars().all()
    assert [r.cached for r in rows] == [False, True]
    assert rows[0].user_agent == "pytest"
