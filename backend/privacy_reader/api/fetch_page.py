"""Fetch a page by URL through the server (for sites that block the extension)."""

from typing import Literal

from fastapi import APIRouter, Depends, Query

from privacy_reader.api.deps import get_fetcher
from privacy_reader.schemas.policy import FetchPageResponse
from privacy_reader.utils.fetch_page import PageFetcher

router = APIRouter(tags=["fetch_page"])


@router.get("/fetch_page", summary="Fetch page by URL", response_model=FetchPageResponse)
async def fetch_page(
    url: str,
    skip_cache: bool = Query(False, description="Bypass the HTML cache"),
    method: Literal["auto", "http", "browser"] = Query("auto", description="Force a fetch strategy"),
    fetcher: PageFetcher = Depends(get_fetcher),
) -> FetchPageResponse:
    """Download the page (headless browser for JS-rendered sites) and report what was fetched."""
    result = await fetcher.fetch(url, skip_cache=skip_cache, method=method)
    return FetchPageResponse(url=result.url, length=len(result.html), method=result.method, cached=result.from_cache)
