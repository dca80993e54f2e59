"""FastAPI dependencies resolving the services built in the application lifespan."""

from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from privacy_reader.api.policy_analyzer.analyzer import PolicyAnalyzer
from privacy_reader.api.policy_analyzer.pipeline import PolicyPipeline
from privacy_reader.cache import PolicyCache
from privacy_reader.policy_store import PolicyStore
from privacy_reader.utils.fetch_page import PageFetcher


@dataclass
class Services:
    cache: PolicyCache
    engine: AsyncEngine | None
    store: PolicyStore
    fetcher: PageFetcher
    analyzer: PolicyAnalyzer
    pipeline: PolicyPipeline


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized; the application lifespan has not run.")
    return services


def get_pipeline(request: Request) -> PolicyPipeline:
    return get_services(request).pipeline


def get_store(request: Request) -> PolicyStore:
    return get_services(request).store


def get_fetcher(request: Request) -> PageFetcher:
    return get_services(request).fetcher
