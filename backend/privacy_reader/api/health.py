"""Health and readiness endpoints."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from privacy_reader.api.deps import Services, get_services
from privacy_reader.api.policy_analyzer.providers import list_providers
from privacy_reader.core.config import APP_VERSION, Settings, get_settings
from privacy_reader.schemas.common import DetailedHealthResponse, HealthResponse

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """Return service health and environment."""
    return HealthResponse(
        status="ok",
        environment=settings.environment,
    )


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check(
    settings: Settings = Depends(get_settings),
    services: Services = Depends(get_services),
) -> DetailedHealthResponse:
    """Cache backend, database connectivity and AI provider configuration."""
    db_status = "unknown"
    if services.engine is not None:
        try:
            async with services.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            db_status = "connected"
        except (SQLAlchemyError, OSError) as e:
            logger.error("Database connection error in health check: %s", e)
            db_status = "error"

    configured = set(services.analyzer.provider_names)
    return DetailedHealthResponse(
        status="ok",
        environment=settings.environment,
        version=APP_VERSION,
        cache=services.cache.stats(),
        database={"status": db_status},
        ai_providers={
            name: "configured" if name in configured else "not configured" for name in list_providers()
        },
    )
