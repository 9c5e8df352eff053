"""
src/services/draft_store.py — Persistence for Draft records.

Wraps the request-scoped AsyncSession. Writes are flushed, not committed:
the get_db dependency commits once the request succeeds.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Draft

logger = logging.getLogger(__name__)


class DraftNotFoundError(LookupError):
    def __init__(self, draft_id: str):
        super().__init__(f"Draft {draft_id} not found")
        self.draft_id = draft_id


class DraftStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, prompt: str, outputs: dict[str, str]) -> Draft:
        draft = Draft(prompt=prompt, outputs=dict(outputs))
        self.db.add(draft)
        await self.db.flush()
        logger.info("Draft %s created with %d provider outputs", draft.id, len(outputs))
        return draft

    async def get(self, draft_id: str) -> Draft | None:
        result = await self.db.execute(select(Draft).where(Draft.id == draft_id))
        return result.scalar_one_or_none()

    async def list_recent(self, limit: int = 50) -> list[Draft]:
        result = await self.db.execute(
            select(Draft).order_by(Draft.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def record_publish(
        self,
        draft_id: str,
        *,
        selected_model: str,
        final_text: str,
        image_url: str | None,
        linkedin_post_id: str,
        published: bool,
    ) -> Draft:
        """Apply the single publish-time update to a draft."""
        draft = await self.get(draft_id)
        if draft is None:
            raise DraftNotFoundError(draft_id)
        draft.selected_model = selected_model
        draft.final_text = final_text
        draft.image_url = image_url
        draft.linkedin_post_id = linkedin_post_id
        draft.published = published
        await self.db.flush()
        logger.info(
            "Draft %s updated: model=%s post=%s published=%s",
            draft_id, selected_model, linkedin_post_id, published,
        )
        return draft


def draft_to_dict(draft: Draft) -> dict:
    return {
        "id": draft.id,
        "prompt": draft.prompt,
        "outputs": draft.outputs or {},
        "selectedModel": draft.selected_model,
        "finalText": draft.final_text,
        "imageUrl": draft.image_url,
        "linkedinPostId": draft.linkedin_post_id,
        "published": draft.published,
        "createdAt": draft.created_at.isoformat() if draft.created_at else None,
        "updatedAt": draft.updated_at.isoformat() if draft.updated_at else None,
    }
