"""Policy schemas shared by the pipeline, the store and the API."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from privacy_reader.api.policy_analyzer.models import AnalysisStatus, Score
from privacy_reader.schemas.common import CamelModel


class PolicyData(CamelModel):
    """Extracted policy text and metadata handed to the analyzer and the store."""

    url: str
    domain: str
    title: str
    text: str
    company: Optional[str] = None
    last_updated: Optional[str] = Field(None, alias="lastUpdated")
    extraction_method: Optional[str] = Field(None, alias="extractionMethod")


class PolicyRecord(CamelModel):
    """One persisted, versioned analysis of a policy URL."""

    id: int
    url: str
    domain: str
    title: Optional[str] = None
    company: Optional[str] = None
    last_updated: Optional[str] = Field(None, alias="lastUpdated")
    raw_text: str = Field("", alias="rawText")
    extraction_method: Optional[str] = Field(None, alias="extractionMethod")

    summary: list[str] = Field(default_factory=list)
    data_collection: dict[str, list[str]] = Field(default_factory=dict, alias="dataCollection")
    data_sharing: dict[str, str] = Field(default_factory=dict, alias="dataSharing")
    retention: str = ""
    user_rights: list[str] = Field(default_factory=list, alias="userRights")
    score: Score = Field(default_factory=Score)
    red_flags: list[str] = Field(default_factory=list, alias="redFlags")
    compliance: dict[str, str] = Field(default_factory=dict)
    provider: Optional[str] = None
    analysis_status: AnalysisStatus = Field("complete", alias="analysisStatus")

    created_at: datetime = Field(..., alias="createdAt")
    last_checked: datetime = Field(..., alias="lastChecked")


class PolicyHistoryEntry(CamelModel):
    """Snapshot of a superseded policy version."""

    id: int
    policy_id: int = Field(..., alias="policyId")
    snapshot_date: datetime = Field(..., alias="snapshotDate")
    raw_text: str = Field("", alias="rawText")
    summary: list[str] = Field(default_factory=list)
    score: int = 0
    changes_detected: bool = Field(True, alias="changesDetected")


class SaveResult(CamelModel):
    policy_id: int = Field(..., alias="policyId")
    is_new: bool = Field(..., alias="isNew")


class AnalysisRequestLog(CamelModel):
    """One inbound analyze call, recorded for analytics only."""

    url: str
    policy_id: Optional[int] = Field(None, alias="policyId")
    user_id: Optional[int] = Field(None, alias="userId")
    cached: bool = False
    user_agent: Optional[str] = Field(None, alias="userAgent")
    ip_address: Optional[str] = Field(None, alias="ipAddress")


class AnalyzeOptions(CamelModel):
    force_fresh: bool = Field(False, alias="forceFresh", description="Bypass the stored-result freshness check")
    skip_cache: bool = Field(False, alias="skipCache", description="Also bypass the HTML and analysis caches")


class AnalyzeRequest(CamelModel):
    url: str = Field(..., min_length=1, description="Privacy policy URL")
    options: AnalyzeOptions = Field(default_factory=AnalyzeOptions)


class AnalyzeResponse(CamelModel):
    policy: PolicyRecord
    cached: bool
    is_new: Optional[bool] = Field(None, alias="isNew")
    warnings: list[str] = Field(default_factory=list)


class HistoryResponse(CamelModel):
    history: list[PolicyRecord]


class SnapshotsResponse(CamelModel):
    snapshots: list[PolicyHistoryEntry]


class DetectResponse(CamelModel):
    url: str
    is_policy: bool = Field(..., alias="isPolicy")


class FetchPageResponse(CamelModel):
    status: Literal["ok"] = "ok"
    url: str
    length: int
    method: str
    cached: bool
