"""Root / welcome endpoint."""

from fastapi import APIRouter, Depends

from privacy_reader.core.config import Settings, get_settings
from privacy_reader.schemas.common import MessageResponse

router = APIRouter(tags=["root"])


@router.get("/", response_model=MessageResponse)
def root(settings: Settings = Depends(get_settings)) -> MessageResponse:
    """Welcome message and API info."""
    return MessageResponse(
        message=(
            f"{settings.app_name} is running ({settings.environment}). "
            "POST /api/policies/analyze with a policy URL; see /docs for Swagger UI."
        )
    )
