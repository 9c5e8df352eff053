"""
routers/generate.py — Multi-provider draft generation.

Endpoints:
    POST /api/generate — Fan a prompt out to every LLM provider, store one draft
"""

import logging
from typing import AsyncIterator

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from schemas import GenerateRequest
from src.integrations.llm_providers import build_providers
from src.services.draft_store import DraftStore
from src.services.generation import GenerationService
from src.services.rate_limit import SlidingWindowRateLimiter, client_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Generate"])

RATE_LIMITED_MESSAGE = "Rate limit exceeded. Try again in 1 minute."

_limiter = SlidingWindowRateLimiter(
    window_seconds=settings.generate_rate_limit_window_seconds,
    max_requests=settings.generate_rate_limit_max_requests,
)


# ─────────────────────────────────────────────
# Dependencies
# ─────────────────────────────────────────────

def get_rate_limiter() -> SlidingWindowRateLimiter:
    return _limiter


def enforce_rate_limit(
    request: Request,
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
) -> None:
    """Admission gate; runs before the body is validated or providers are built."""
    key = client_key(
        request.headers.get("x-forwarded-for"),
        request.client.host if request.client else None,
    )
    if not limiter.admit(key).allowed:
        logger.warning("Generate rate limit hit for %s", key)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=RATE_LIMITED_MESSAGE,
        )


async def get_generation_service(
    db: AsyncSession = Depends(get_db),
) -> AsyncIterator[GenerationService]:
    async with httpx.AsyncClient(timeout=settings.llm_timeout_seconds) as http:
        yield GenerationService(build_providers(settings, http), DraftStore(db))


# ─────────────────────────────────────────────
# POST /api/generate
# ─────────────────────────────────────────────

@router.post(
    "/generate",
    dependencies=[Depends(enforce_rate_limit)],
    summary="Generate drafts from every provider",
)
async def generate(
    body: GenerateRequest,
    service: GenerationService = Depends(get_generation_service),
):
    """Return {id, <providerId>: text, ...}; failed providers carry a bracketed error."""
    result = await service.generate(body.prompt)
    return {"id": result.draft_id, **result.outputs}
