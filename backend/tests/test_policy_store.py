"""Tests for versioned policy persistence (SQLite via aiosqlite)."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from privacy_reader.api.policy_analyzer.models import AnalysisResult, Score
from privacy_reader.core.errors import PersistenceError
from privacy_reader.models import AnalyticsEvent, PolicyRequest
from privacy_reader.policy_store import is_fresh
from privacy_reader.schemas.policy import AnalysisRequestLog, PolicyData

URL = "https://www.acme.com/privacy"


def _data(text: str = "Original policy text. " * 20, url: str = URL, domain: str = "www.acme.com") -> PolicyData:
    return PolicyData(url=url, domain=domain, title="Acme Privacy Policy", text=text, company="Acme",
                      extraction_method="http")


def _analysis(score: int = 70, status: str = "complete") -> AnalysisResult:
    return AnalysisResult(
        summary=["Collects email"],
        data_collection={"Personal": ["email"]},
        data_sharing={"Processors": "hosting"},
        retention="1 year",
        user_rights=["access"],
        score=Score(value=score, explanation="fine"),
        red_flags=[],
        compliance={"GDPR": "ok"},
        provider="gemini",
        analysis_status=status,
    )


async def _events(store) -> list[AnalyticsEvent]:
    async with store._session_factory() as session:
        result = await session.execute(select(AnalyticsEvent).order_by(AnalyticsEvent.id))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_first_save_creates_version(store):
    saved = await store.save(_data(), _analysis())
    assert saved.is_new is True

    record = await store.get_by_id(saved.policy_id)
    assert record.url == URL
    assert record.raw_text.startswith("Original policy text.")
    assert record.score.value == 70
    assert record.data_collection == {"Personal": ["email"]}
    assert record.provider == "gemini"
    assert record.analysis_status == "complete"
    assert record.created_at == record.last_checked
    assert record.created_at.tzinfo is not None

    events = await _events(store)
    assert [e.event_type for e in events] == ["policy_created"]
    assert events[0].data["policyId"] == saved.policy_id


@pytest.mark.asyncio
async def test_unchanged_text_only_refreshes_last_checked(store):
    first = await store.save(_data(), _analysis())
    before = await store.get_by_id(first.policy_id)

    second = await store.save(_data(), _analysis(score=10))

    assert second.policy_id == first.policy_id
    assert second.is_new is False
    after = await store.get_by_id(first.policy_id)
    assert after.last_checked >= before.last_checked
    assert after.created_at == before.created_at
    assert after.score.value == 70
    assert await store.get_snapshots(first.policy_id) == []
    assert len(await store.get_history(first.policy_id)) == 1
    assert len(await _events(store)) == 1


@pytest.mark.asyncio
async def test_changed_text_creates_new_version_and_snapshot(store):
    first = await store.save(_data(), _analysis(score=70))
    second = await store.save(_data("Revised policy text. " * 20), _analysis(score=40))

    assert second.is_new is True
    assert second.policy_id != first.policy_id

    latest = await store.get_by_url(URL)
    assert latest.id == second.policy_id
    assert latest.score.value == 40

    history = await store.get_history(first.policy_id)
    assert [r.id for r in history] == [second.policy_id, first.policy_id]
    assert await store.get_history(second.policy_id) == history

    snapshots = await store.get_snapshots(second.policy_id)
    assert len(snapshots) == 1
    assert snapshots[0].policy_id == first.policy_id
    assert snapshots[0].raw_text.startswith("Original policy text.")
    assert snapshots[0].score == 70
    assert snapshots[0].changes_detected is True

    events = await _events(store)
    assert [e.event_type for e in events] == ["policy_created", "policy_updated"]
    assert events[1].data["previousScore"] == 70
    assert events[1].data["previousId"] == first.policy_id


@pytest.mark.asyncio
async def test_unknown_ids(store):
    assert await store.get_by_id(999) is None
    assert await store.get_by_url("https://nowhere.example/privacy") is None
    assert await store.get_history(999) == []
    assert await store.get_snapshots(999) == []


@pytest.mark.asyncio
async def test_get_by_domain_matches_registered_domain_and_subdomains(store):
    await store.save(_data(), _analysis())
    await store.save(_data(url="https://help.acme.com/privacy", domain="help.acme.com"), _analysis())
    await store.save(_data(url="https://notacme.com/privacy", domain="notacme.com"), _analysis())
    await store.save(_data(url="https://other.org/privacy", domain="other.org"), _analysis())

    for query in ("ACME.com", "www.acme.com", "https://help.acme.com/terms"):
        matches = await store.get_by_domain(query)
        assert {r.domain for r in matches} == {"www.acme.com", "help.acme.com"}, query


@pytest.mark.asyncio
async def test_failed_save_leaves_no_partial_version(store, monkeypatch):
    first = await store.save(_data(), _analysis())

    monkeypatch.setattr(
        AsyncSession, "flush", AsyncMock(side_effect=OperationalError("flush", {}, Exception("disk full")))
    )
    with pytest.raises(PersistenceError) as exc_info:
        await store.save(_data("Revised policy text. " * 20), _analysis(score=40))
    monkeypatch.undo()

    assert exc_info.value.url == URL
    assert (await store.get_by_url(URL)).id == first.policy_id
    assert await store.get_snapshots(first.policy_id) == []
    assert len(await store.get_history(first.policy_id)) == 1
    assert [e.event_type for e in await _events(store)] == ["policy_created"]


@pytest.mark.asyncio
async def test_complete_analysis_supersedes_failed_one_for_same_text(store):
    failed = await store.save(_data(), _analysis(score=0, status="failed"))
    fixed = await store.save(_data(), _analysis(score=65))

    assert fixed.is_new is True
    assert fixed.policy_id != failed.policy_id
    latest = await store.get_by_url(URL)
    assert latest.id == fixed.policy_id
    assert latest.analysis_status == "complete"
    assert latest.score.value == 65

    snapshots = await store.get_snapshots(fixed.policy_id)
    assert len(snapshots) == 1
    assert snapshots[0].policy_id == failed.policy_id
    assert snapshots[0].changes_detected is False

    again = await store.save(_data(), _analysis(score=10))
    assert again.is_new is False
    assert again.policy_id == fixed.policy_id


@pytest.mark.asyncio
async def test_failed_analysis_does_not_replace_complete_one(store):
    first = await store.save(_data(), _analysis())
    second = await store.save(_data(), _analysis(score=0, status="failed"))
    assert second.is_new is False
    assert second.policy_id == first.policy_id
    assert (await store.get_by_id(first.policy_id)).analysis_status == "complete"



@pytest.mark.asyncio
async def test_track_request(store):
    saved = await store.save(_data(), _analysis())
    ok = await store.track_request(
        AnalysisRequestLog(url=URL, policy_id=saved.policy_id, cached=True, user_agent="pytest", ip_address="127.0.0.1")
    )
    assert ok is True
    async with store._session_factory() as session:
        rows = (await session.execute(select(PolicyRequest))).scalars().all()
    assert len(rows) == 1
    assert rows[0].cached is True
    assert rows[0].policy_id == saved.policy_id


@pytest.mark.asyncio
async def test_is_fresh_window(store):
    saved = await store.save(_data(), _analysis())
    record = await store.get_by_id(saved.policy_id)
    window = timedelta(days=7)
    assert is_fresh(record, window) is True
    later = datetime.now(timezone.utc) + timedelta(days=8)
    assert is_fresh(record, window, now=later) is False
