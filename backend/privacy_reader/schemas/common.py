"""Common response schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Base for camelCase wire models; also readable from ORM rows."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class HealthResponse(BaseModel):

    status: str = Field(..., description="Service status")
    environment: str = Field(..., description="Current environment")


class DetailedHealthResponse(HealthResponse):

    version: str = Field(..., description="Service version")
    cache: dict[str, Any] = Field(default_factory=dict, description="Cache backend and stats")
    database: dict[str, str] = Field(default_factory=dict, description="Database status")
    ai_providers: dict[str, str] = Field(default_factory=dict, description="Provider configuration")


class MessageResponse(BaseModel):

    message: str = Field(..., description="Response message")
