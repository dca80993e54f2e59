"""
Policy database models.

Uniqueness is per version, not per URL: several ``policies`` rows may share a
URL, the newest being the current analysis.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from privacy_reader.db import Base

# JSONB on PostgreSQL, plain JSON elsewhere.
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Policy(Base):
    """One analyzed snapshot of a privacy policy."""

    __tablename__ = "policies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(Text, nullable=False)
    domain = Column(String(255), nullable=False)

    title = Column(Text, nullable=True)
    company = Column(String(255), nullable=True)
    last_updated = Column(String(100), nullable=True)
    raw_text = Column(Text, nullable=False)
    extraction_method = Column(String(20), nullable=True)

    # Analysis payload, written once
    summary = Column(JSONType, nullable=False, default=list)
    data_collection = Column(JSONType, nullable=False, default=dict)
    data_sharing = Column(JSONType, nullable=False, default=dict)
    retention = Column(Text, nullable=True)
    user_rights = Column(JSONType, nullable=False, default=list)
    score = Column(Integer, nullable=False, default=0)
    score_explanation = Column(Text, nullable=True)
    red_flags = Column(JSONType, nullable=False, default=list)
    compliance = Column(JSONType, nullable=False, default=dict)
    provider = Column(String(50), nullable=True)
    analysis_status = Column(String(20), nullable=False, default="complete")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_checked = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_policies_url", "url"),
        Index("idx_policies_domain", "domain"),
    )

    def __repr__(self):
        return f"<Policy(id={self.id}, url='{self.url}', score={self.score})>"


class PolicyHistory(Base):
    """A superseded policy version, recorded when its text changed."""

    __tablename__ = "policy_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    policy_id = Column(Integer, ForeignKey("policies.id", ondelete="CASCADE"), nullable=False)
    snapshot_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    raw_text = Column(Text, nullable=True)
    summary = Column(JSONType, nullable=True)
    score = Column(Integer, nullable=True)
    changes_detected = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_policy_history_policy_id", "policy_id"),
    )

    def __repr__(self):
        return f"<PolicyHistory(id={self.id}, policy_id={self.policy_id})>"


class PolicyRequest(Base):
    """Append-only log of analyze calls."""

    __tablename__ = "policy_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(Text, nullable=False)
    policy_id = Column(Integer, nullable=True)
    user_id = Column(Integer, nullable=True)
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    cached = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(50), nullable=False)
    data = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_analytics_events_type", "event_type"),
    )
