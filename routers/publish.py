"""
routers/publish.py — Publish a selected draft to LinkedIn.

Endpoints:
    POST /api/publish — Strip markdown, upload optional image, create the post
                        (or a dry run when LinkedIn is not configured)
"""

import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from schemas import PublishRequest, PublishResponse
from src.integrations.linkedin_client import LinkedInAPIError, LinkedInClient
from src.services.draft_store import DraftNotFoundError, DraftStore
from src.services.publishing import (
    ImageUploadError,
    LinkedInPublisher,
    ProviderNotSelectableError,
    PublishingDisabledError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Publish"])


async def get_publisher(db: AsyncSession = Depends(get_db)) -> AsyncIterator[LinkedInPublisher]:
    client = None
    if settings.linkedin_configured:
        client = LinkedInClient(
            access_token=settings.linkedin_access_token,
            author_urn=settings.linkedin_author_urn,
            api_version=settings.linkedin_api_version,
        )
    try:
        yield LinkedInPublisher(DraftStore(db), client, enabled=settings.publish_enabled)
    finally:
        if client is not None:
            await client.aclose()


# ─────────────────────────────────────────────
# POST /api/publish
# ─────────────────────────────────────────────

@router.post("/publish", response_model=PublishResponse, summary="Publish a draft to LinkedIn")
async def publish(
    body: PublishRequest,
    publisher: LinkedInPublisher = Depends(get_publisher),
):
    try:
        outcome = await publisher.publish(
            draft_id=body.draft_id,
            provider_id=body.selected_model,
            text=body.text,
            image_url=str(body.image_url) if body.image_url else None,
        )
    except PublishingDisabledError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except DraftNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Draft not found")
    except ProviderNotSelectableError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Selected provider output is not publishable",
        )
    except ImageUploadError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    except LinkedInAPIError as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail={"error": "LinkedIn API error", "status": exc.status_code, "details": exc.details},
        )

    return PublishResponse(
        success=True,
        linkedin_post_id=outcome.post_id,
        dry_run=outcome.dry_run,
        message=outcome.message,
    )
