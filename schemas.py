"""
schemas.py — Pydantic request/response schemas for the LinkedIn AI Engine.

Field names on the wire are camelCase (draftId, selectedModel, imageUrl, ...)
to stay compatible with the existing dashboard; Python code uses snake_case.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from src.integrations.llm_providers import PROVIDER_IDS

_CAMEL = ConfigDict(populate_by_name=True)


# ─────────────────────────────────────────────
# Generate
# ─────────────────────────────────────────────

class GenerateRequest(BaseModel):
    """Payload for POST /api/generate."""

    prompt: str = Field(..., min_length=1, max_length=2000)


# ─────────────────────────────────────────────
# Publish
# ─────────────────────────────────────────────

class PublishRequest(BaseModel):
    """Payload for POST /api/publish."""

    model_config = _CAMEL

    draft_id: str = Field(..., min_length=1, alias="draftId")
    selected_model: str = Field(..., alias="selectedModel")
    text: str = Field(..., min_length=1, max_length=3000)
    image_url: HttpUrl | None = Field(None, alias="imageUrl")

    @field_validator("selected_model")
    @classmethod
    def known_provider(cls, v: str) -> str:
        if v not in PROVIDER_IDS:
            raise ValueError(f"selectedModel must be one of {list(PROVIDER_IDS)}")
        return v


class PublishResponse(BaseModel):
    model_config = _CAMEL

    success: bool = True
    linkedin_post_id: str = Field(..., alias="linkedinPostId")
    dry_run: bool = Field(..., alias="dryRun")
    message: str


# ─────────────────────────────────────────────
# Canva
# ─────────────────────────────────────────────

class CanvaExportRequest(BaseModel):
    """Payload for POST /api/canva/export."""

    model_config = _CAMEL

    design_id: str = Field(..., min_length=1, alias="designId")


class CanvaExportResponse(BaseModel):
    model_config = _CAMEL

    success: bool = True
    image_url: str = Field(..., alias="imageUrl")


class CanvaStatusResponse(BaseModel):
    connected: bool
    expired: bool | None = None


# ─────────────────────────────────────────────
# Health
# ─────────────────────────────────────────────

class ServiceStatus(BaseModel):
    status: str  # healthy | degraded | error
    detail: str | None = None


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    services: dict[str, ServiceStatus] | None = None
    extra: dict[str, Any] | None = None
