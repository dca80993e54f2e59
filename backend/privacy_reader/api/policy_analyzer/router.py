"""Policy analysis routes."""

from fastapi import APIRouter, Depends, Query, Request

from privacy_reader.api.deps import get_pipeline, get_store
from privacy_reader.api.policy_analyzer.pipeline import PolicyPipeline, RequestInfo
from privacy_reader.core.errors import NotFoundError
from privacy_reader.policy_store import PolicyStore
from privacy_reader.schemas.policy import (
    AnalyzeRequest,
    AnalyzeResponse,
    DetectResponse,
    HistoryResponse,
    PolicyRecord,
    SnapshotsResponse,
)
from privacy_reader.utils.policy_detector import is_probably_policy
from privacy_reader.utils.url_utils import validate_url

router = APIRouter(prefix="/policies", tags=["policies"])


@router.post("/analyze", response_model=AnalyzeResponse, response_model_by_alias=True)
async def analyze_policy(
    body: AnalyzeRequest,
    request: Request,
    pipeline: PolicyPipeline = Depends(get_pipeline),
) -> AnalyzeResponse:
    """
    Analyze a privacy policy URL.

    Returns the stored analysis when it was checked within the freshness
    window (``cached: true``) unless ``options.forceFresh`` is set.
    """
    info = RequestInfo(
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )
    outcome = await pipeline.analyze(
        body.url,
        force_fresh=body.options.force_fresh,
        skip_cache=body.options.skip_cache,
        request_info=info,
    )
    return AnalyzeResponse(
        policy=outcome.policy,
        cached=outcome.cached,
        is_new=outcome.is_new,
        warnings=outcome.warnings,
    )


@router.get("/detect", response_model=DetectResponse, response_model_by_alias=True)
def detect_policy(url: str = Query(..., description="Page URL to check")) -> DetectResponse:
    """URL-only check used for proactive detection."""
    url = validate_url(url)
    return DetectResponse(url=url, is_policy=is_probably_policy(url))


@router.get("/domain/{domain}", response_model=list[PolicyRecord], response_model_by_alias=True)
async def get_policies_by_domain(domain: str, store: PolicyStore = Depends(get_store)) -> list[PolicyRecord]:
    return await store.get_by_domain(domain)


@router.get("/{policy_id}", response_model=PolicyRecord, response_model_by_alias=True)
async def get_policy(policy_id: int, store: PolicyStore = Depends(get_store)) -> PolicyRecord:
    policy = await store.get_by_id(policy_id)
    if policy is None:
        raise NotFoundError(f"Policy {policy_id} not found")
    return policy


@router.get("/{policy_id}/history", response_model=HistoryResponse, response_model_by_alias=True)
async def get_policy_history(policy_id: int, store: PolicyStore = Depends(get_store)) -> HistoryResponse:
    """Every stored version of the policy's URL, newest first."""
    return HistoryResponse(history=await store.get_history(policy_id))


@router.get("/{policy_id}/snapshots", response_model=SnapshotsResponse, response_model_by_alias=True)
async def get_policy_snapshots(policy_id: int, store: PolicyStore = Depends(get_store)) -> SnapshotsResponse:
    return SnapshotsResponse(snapshots=await store.get_snapshots(policy_id))
