"""FastAPI application entry point and composition root."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from privacy_reader.api.deps import Services
from privacy_reader.api.policy_analyzer.analyzer import PolicyAnalyzer
from privacy_reader.api.policy_analyzer.pipeline import PolicyPipeline
from privacy_reader.api.policy_analyzer.providers import build_providers
from privacy_reader.api.router import api_router
from privacy_reader.cache import create_cache
from privacy_reader.core.config import APP_VERSION, Settings, get_settings
from privacy_reader.core.errors import PolicyReaderError
from privacy_reader.db import create_engine, create_session_factory, init_models
from privacy_reader.policy_store import PolicyStore
from privacy_reader.utils.fetch_page import BrowserFetchStrategy, HttpFetchStrategy, PageFetcher

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


async def build_services(settings: Settings) -> Services:
    """Construct every pipeline collaborator once for the process."""
    cache = await create_cache(settings)
    engine = create_engine(settings)
    await init_models(engine)
    store = PolicyStore(create_session_factory(engine))
    fetcher = PageFetcher(
        cache,
        http_strategy=HttpFetchStrategy(
            timeout=settings.http_timeout_seconds,
            max_redirects=settings.max_redirects,
        ),
        browser_strategy=BrowserFetchStrategy(timeout=settings.browser_timeout_seconds),
        cache_ttl_seconds=settings.html_cache_ttl_seconds,
    )
    analyzer = PolicyAnalyzer(
        cache,
        build_providers(settings),
        cache_ttl_seconds=settings.analysis_cache_ttl_seconds,
        max_prompt_chars=settings.max_prompt_chars,
        allow_placeholder=not settings.is_production,
    )
    pipeline = PolicyPipeline(
        fetcher,
        analyzer,
        store,
        freshness_window=timedelta(days=settings.freshness_window_days),
        max_raw_text_chars=settings.max_raw_text_chars,
    )
    return Services(
        cache=cache,
        engine=engine,
        store=store,
        fetcher=fetcher,
        analyzer=analyzer,
        pipeline=pipeline,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    logger.info("Starting %s v%s (%s)", settings.app_name, APP_VERSION, settings.environment)
    services = await build_services(settings)
    app.state.services = services
    try:
        yield
    finally:
        await services.cache.close()
        if services.engine is not None:
            await services.engine.dispose()
        logger.info("Shutting down %s", settings.app_name)


def _error_payload(error: PolicyReaderError, settings: Settings) -> dict:
    payload = error.to_dict()
    if error.status_code >= 500 and settings.is_production:
        payload["message"] = GENERIC_ERROR_MESSAGE
    return {"error": payload}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PolicyReaderError)
    async def handle_pipeline_error(request: Request, exc: PolicyReaderError) -> JSONResponse:
        settings = get_settings()
        if exc.status_code >= 500:
            logger.error("%s for %s: %s", type(exc).__name__, exc.url or request.url.path, exc.message)
        else:
            logger.info("%s for %s: %s", type(exc).__name__, exc.url or request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=_error_payload(exc, settings))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        settings = get_settings()
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = GENERIC_ERROR_MESSAGE if settings.is_production else str(exc)
        return JSONResponse(
            status_code=500,
            content={"error": {"type": type(exc).__name__, "message": message, "url": None}},
        )


def create_application() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="Fetches, analyzes and versions privacy policies for the browser extension.",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    return app


app = create_application()
