"""
routers/health.py — Health check endpoints for the LinkedIn AI Engine.

Endpoints:
    GET /health               — Basic application liveness
    GET /health/database      — Database connectivity
    GET /health/integrations  — Which providers / vendors are configured
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from schemas import HealthResponse, ServiceStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


# ─────────────────────────────────────────────
# GET /health
# ─────────────────────────────────────────────

@router.get("", response_model=HealthResponse, summary="Application liveness")
async def health_check():
    """Return basic application status. Always 200 if the server is running."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
    )


# ─────────────────────────────────────────────
# GET /health/database
# ─────────────────────────────────────────────

@router.get("/database", response_model=HealthResponse, summary="Database connectivity")
async def database_health(db: AsyncSession = Depends(get_db)):
    """Verify that the database can accept connections and execute queries."""
    try:
        await db.execute(text("SELECT 1"))
        db_status = ServiceStatus(status="healthy")
    except Exception as exc:
        logger.error("Database health check failed: %s", exc)
        db_status = ServiceStatus(status="error", detail="Cannot connect to database")

    overall = "healthy" if db_status.status == "healthy" else "degraded"
    return HealthResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc),
        services={"database": db_status},
    )


# ─────────────────────────────────────────────
# GET /health/integrations
# ─────────────────────────────────────────────

def _configured(ok: bool, missing: str) -> ServiceStatus:
    if ok:
        return ServiceStatus(status="healthy")
    return ServiceStatus(status="degraded", detail=f"{missing} not configured")


@router.get("/integrations", response_model=HealthResponse, summary="Vendor configuration")
async def integrations_health():
    """Report configuration only; no vendor is called."""
    services = {
        "openai": _configured(bool(settings.openrouter_key_model1), "OPENROUTER_KEY_MODEL1"),
        "gemini": _configured(bool(settings.openrouter_key_model2), "OPENROUTER_KEY_MODEL2"),
        "claude": _configured(bool(settings.openrouter_key_model3), "OPENROUTER_KEY_MODEL3"),
        "geminiDirect": _configured(bool(settings.gemini_api_key), "GEMINI_API_KEY"),
        "groq": _configured(bool(settings.groq_api_key), "GROQ_API_KEY"),
        "anthropic": _configured(bool(settings.anthropic_api_key), "ANTHROPIC_API_KEY"),
        "linkedin": _configured(settings.linkedin_configured, "LinkedIn credentials"),
        "canva": _configured(settings.canva_configured, "Canva credentials"),
    }
    overall = "healthy" if all(s.status == "healthy" for s in services.values()) else "degraded"
    return HealthResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc),
        services=services,
        extra={
            "publish_enabled": settings.publish_enabled,
            "dry_run": not settings.linkedin_configured,
        },
    )
