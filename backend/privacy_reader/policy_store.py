"""Versioned persistence of analyzed policies.

Re-analysis with unchanged text only bumps ``last_checked``. Changed text
inserts a new ``policies`` row and snapshots the prior version into
``policy_history``; both writes share one transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from privacy_reader.api.policy_analyzer.models import AnalysisResult
from privacy_reader.core.errors import PersistenceError
from privacy_reader.models import AnalyticsEvent, Policy, PolicyHistory, PolicyRequest, utcnow
from privacy_reader.schemas.policy import (
    AnalysisRequestLog,
    PolicyData,
    PolicyHistoryEntry,
    PolicyRecord,
    SaveResult,
)
from privacy_reader.utils.url_utils import get_domain

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def to_record(row: Policy) -> PolicyRecord:
    return PolicyRecord(
        id=row.id,
        url=row.url,
        domain=row.domain,
        title=row.title,
        company=row.company,
        last_updated=row.last_updated,
        raw_text=row.raw_text or "",
        extraction_method=row.extraction_method,
        summary=row.summary or [],
        data_collection=row.data_collection or {},
        data_sharing=row.data_sharing or {},
        retention=row.retention or "",
        user_rights=row.user_rights or [],
        score={"value": row.score or 0, "explanation": row.score_explanation or ""},
        red_flags=row.red_flags or [],
        compliance=row.compliance or {},
        provider=row.provider,
        analysis_status=row.analysis_status or "complete",
        created_at=_as_utc(row.created_at),
        last_checked=_as_utc(row.last_checked),
    )


def to_history_entry(row: PolicyHistory) -> PolicyHistoryEntry:
    return PolicyHistoryEntry(
        id=row.id,
        policy_id=row.policy_id,
        snapshot_date=_as_utc(row.snapshot_date),
        raw_text=row.raw_text or "",
        summary=row.summary or [],
        score=row.score or 0,
        changes_detected=bool(row.changes_detected),
    )


def is_fresh(record: PolicyRecord, window: timedelta, *, now: datetime | None = None) -> bool:
    """True when the record was confirmed within *window*."""
    now = now or utcnow()
    return _as_utc(record.last_checked) > now - window


def _new_version(policy_data: PolicyData, analysis: AnalysisResult, now: datetime) -> Policy:
    return Policy(
        url=policy_data.url,
        domain=policy_data.domain,
        title=policy_data.title,
        company=policy_data.company,
        last_updated=policy_data.last_updated,
        raw_text=policy_data.text,
        extraction_method=policy_data.extraction_method,
        summary=list(analysis.summary),
        data_collection=dict(analysis.data_collection),
        data_sharing=dict(analysis.data_sharing),
        retention=analysis.retention,
        user_rights=list(analysis.user_rights),
        score=analysis.score.value,
        score_explanation=analysis.score.explanation,
        red_flags=list(analysis.red_flags),
        compliance=dict(analysis.compliance),
        provider=analysis.provider,
        analysis_status=analysis.analysis_status,
        created_at=now,
        last_checked=now,
    )


def _supersedes(existing: Policy, analysis: AnalysisResult) -> bool:
    return (existing.analysis_status or "complete") != "complete" and analysis.is_complete


class PolicyStore:
    """Sole writer of policies, policy history and request analytics."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _latest_for_url(self, session: AsyncSession, url: str) -> Policy | None:
        result = await session.execute(
            select(Policy)
            .where(Policy.url == url)
            .order_by(Policy.created_at.desc(), Policy.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_url(self, url: str) -> PolicyRecord | None:
        try:
            async with self._session_factory() as session:
                row = await self._latest_for_url(session, url)
        except SQLAlchemyError as e:
            logger.error("Error getting policy by URL %s: %s", url, e)
            raise PersistenceError(f"Could not read policy: {e}", url=url) from e
        return to_record(row) if row else None

    async def get_by_id(self, policy_id: int) -> PolicyRecord | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(Policy, policy_id)
        except SQLAlchemyError as e:
            logger.error("Error getting policy by ID %s: %s", policy_id, e)
            raise PersistenceError(f"Could not read policy: {e}") from e
        return to_record(row) if row else None

    async def get_history(self, policy_id: int) -> list[PolicyRecord]:
        """All versions sharing the URL of *policy_id*, newest first."""
        try:
            async with self._session_factory() as session:
                owner = await session.get(Policy, policy_id)
                if owner is None:
                    return []
                result = await session.execute(
                    select(Policy)
                    .where(Policy.url == owner.url)
                    .order_by(Policy.created_at.desc(), Policy.id.desc())
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Error getting policy history for ID %s: %s", policy_id, e)
            raise PersistenceError(f"Could not read policy history: {e}") from e
        return [to_record(row) for row in rows]

    async def get_snapshots(self, policy_id: int) -> list[PolicyHistoryEntry]:
        """History snapshots recorded for every version of the URL of *policy_id*, newest first."""
        try:
            async with self._session_factory() as session:
                owner = await session.get(Policy, policy_id)
                if owner is None:
                    return []
                version_ids = select(Policy.id).where(Policy.url == owner.url)
                result = await session.execute(
                    select(PolicyHistory)
                    .where(PolicyHistory.policy_id.in_(version_ids))
                    .order_by(PolicyHistory.snapshot_date.desc(), PolicyHistory.id.desc())
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Error getting policy snapshots for ID %s: %s", policy_id, e)
            raise PersistenceError(f"Could not read policy snapshots: {e}") from e
        return [to_history_entry(row) for row in rows]

    async def get_by_domain(self, domain: str) -> list[PolicyRecord]:
        """Versions whose host lies under the registered domain of *domain*, newest first."""
        needle = get_domain(domain) or domain.strip().lower()
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Policy)
                    .where(or_(Policy.domain == needle, Policy.domain.endswith("." + needle, autoescape=True)))
                    .order_by(Policy.last_checked.desc(), Policy.id.desc())
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Error getting policies by domain %s: %s", domain, e)
            raise PersistenceError(f"Could not read policies for domain: {e}") from e
        return [to_record(row) for row in rows]

    async def save(self, policy_data: PolicyData, analysis: AnalysisResult) -> SaveResult:
        """
        Persist an analysis for ``policy_data.url``.

        - no prior version: insert, ``is_new=True``
        - same text as latest version: bump ``last_checked``, ``is_new=False``
        - changed text, or a complete analysis replacing a failed or placeholder one:
          insert a new version and snapshot the prior one, ``is_new=True``
        """
        event: tuple[str, dict[str, Any]] | None = None
        try:
            async with self._session_factory() as session, session.begin():
                now = utcnow()
                existing = await self._latest_for_url(session, policy_data.url)

                if existing is None:
                    row = _new_version(policy_data, analysis, now)
                    session.add(row)
                    await session.flush()
                    result = SaveResult(policy_id=row.id, is_new=True)
                    event = ("policy_created", {
                        "policyId": row.id,
                        "url": policy_data.url,
                        "domain": policy_data.domain,
                        "score": analysis.score.value,
                    })
                    logger.info("Created policy %s for %s", row.id, policy_data.url)
                elif existing.raw_text == policy_data.text and not _supersedes(existing, analysis):
                    existing.last_checked = now
                    await session.flush()
                    result = SaveResult(policy_id=existing.id, is_new=False)
                    logger.info("Policy %s unchanged; refreshed last_checked", existing.id)
                else:
                    session.add(PolicyHistory(
                        policy_id=existing.id,
                        snapshot_date=now,
                        raw_text=existing.raw_text,
                        summary=existing.summary,
                        score=existing.score,
                        changes_detected=existing.raw_text != policy_data.text,
                    ))
                    row = _new_version(policy_data, analysis, now)
                    session.add(row)
                    await session.flush()
                    result = SaveResult(policy_id=row.id, is_new=True)
                    event = ("policy_updated", {
                        "policyId": row.id,
                        "url": policy_data.url,
                        "domain": policy_data.domain,
                        "score": analysis.score.value,
                        "previousScore": existing.score,
                        "previousId": existing.id,
                    })
                    logger.info(
                        "Policy for %s re-analyzed; new version %s supersedes %s",
                        policy_data.url, row.id, existing.id,
                    )
        except SQLAlchemyError as e:
            logger.error("Error saving policy for %s: %s", policy_data.url, e)
            raise PersistenceError(f"Could not save policy: {e}", url=policy_data.url) from e

        if event is not None:
            await self._log_event(*event)
        return result

    async def track_request(self, log: AnalysisRequestLog) -> bool:
        """Record an analyze call; failures are logged and reported as False."""
        try:
            async with self._session_factory() as session, session.begin():
                session.add(PolicyRequest(
                    url=log.url,
                    policy_id=log.policy_id,
                    user_id=log.user_id,
                    user_agent=log.user_agent,
                    ip_address=log.ip_address,
                    cached=log.cached,
                ))
        except SQLAlchemyError as e:
            logger.warning("Error tracking policy request for %s: %s", log.url, e)
            return False
        return True

    async def _log_event(self, event_type: str, data: dict[str, Any]) -> bool:
        try:
            async with self._session_factory() as session, session.begin():
                session.add(AnalyticsEvent(event_type=event_type, data=data))
        except SQLAlchemyError as e:
            logger.warning("Error logging analytics event %s: %s", event_type, e)
            return False
        return True
