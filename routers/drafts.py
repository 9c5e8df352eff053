"""
routers/drafts.py — Read access to stored drafts.

Endpoints:
    GET /api/drafts       — 50 most recent drafts, newest first
    GET /api/drafts/{id}  — One draft
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from src.services.draft_store import DraftStore, draft_to_dict

router = APIRouter(prefix="/api/drafts", tags=["Drafts"])


def get_draft_store(db: AsyncSession = Depends(get_db)) -> DraftStore:
    return DraftStore(db)


@router.get("", summary="List recent drafts")
async def list_drafts(store: DraftStore = Depends(get_draft_store)):
    drafts = await store.list_recent(limit=50)
    return [draft_to_dict(d) for d in drafts]


@router.get("/{draft_id}", summary="Get one draft")
async def get_draft(draft_id: str, store: DraftStore = Depends(get_draft_store)):
    draft = await store.get(draft_id)
    if draft is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Draft not found")
    return draft_to_dict(draft)
