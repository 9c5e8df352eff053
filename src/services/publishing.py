"""
src/services/publishing.py — Final publish step for a selected draft.

Order of operations:
    1. kill switch (PUBLISH_ENABLED) — rejected before any I/O
    2. draft lookup + selectable-output check
    3. markdown stripping (LinkedIn accepts plain text only)
    4. live: optional image upload, then the post / dry-run: synthetic post id
    5. exactly one draft update

Any failure in steps 1–4 leaves the draft untouched.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable

from src.integrations.linkedin_client import LinkedInClient
from src.integrations.llm_providers import is_error_output
from src.services.draft_store import DraftNotFoundError, DraftStore

logger = logging.getLogger(__name__)

DISABLED_MESSAGE = "Publishing is currently disabled."
IMAGE_UPLOAD_FAILED_MESSAGE = "Failed to upload image to LinkedIn. Post not published."
DRY_RUN_MESSAGE = (
    "Draft saved (dry run). LinkedIn not configured yet — add LINKEDIN_ACCESS_TOKEN "
    "and LINKEDIN_AUTHOR_URN to go live."
)

_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"\*(.+?)\*")
_HEADING = re.compile(r"^#{1,6}\s+", re.MULTILINE)


def strip_markdown(text: str) -> str:
    """Plain-text rendition for LinkedIn: drop **bold**, *italic*, # headings; ◆ → •."""
    text = _BOLD.sub(r"\1", text)
    text = _ITALIC.sub(r"\1", text)
    text = _HEADING.sub("", text)
    return text.replace("◆", "•")


class PublishingDisabledError(Exception):
    def __init__(self):
        super().__init__(DISABLED_MESSAGE)


class ProviderNotSelectableError(ValueError):
    def __init__(self, provider_id: str):
        super().__init__(f"Output from '{provider_id}' is not publishable")
        self.provider_id = provider_id


class ImageUploadError(Exception):
    def __init__(self, cause: Exception):
        super().__init__(IMAGE_UPLOAD_FAILED_MESSAGE)
        self.cause = cause


@dataclass(frozen=True)
class PublishOutcome:
    post_id: str
    dry_run: bool
    message: str


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class LinkedInPublisher:
    def __init__(
        self,
        drafts: DraftStore,
        client: LinkedInClient | None,
        enabled: bool,
        clock_ms: Callable[[], int] = _epoch_ms,
    ):
        """client=None means LinkedIn credentials are not configured (dry run)."""
        self.drafts = drafts
        self.client = client
        self.enabled = enabled
        self._clock_ms = clock_ms

    async def publish(
        self,
        draft_id: str,
        provider_id: str,
        text: str,
        image_url: str | None = None,
    ) -> PublishOutcome:
        """Publish text (and optional image) for a draft.

        Raises:
            PublishingDisabledError: kill switch engaged.
            DraftNotFoundError: unknown draft_id.
            ProviderNotSelectableError: chosen slot is empty or an error placeholder.
            ImageUploadError: any step of the image upload failed; nothing posted.
            LinkedInAPIError: the post call was rejected.
        """
        if not self.enabled:
            raise PublishingDisabledError()

        draft = await self.drafts.get(draft_id)
        if draft is None:
            raise DraftNotFoundError(draft_id)
        if is_error_output((draft.outputs or {}).get(provider_id)):
            raise ProviderNotSelectableError(provider_id)

        clean_text = strip_markdown(text)

        if self.client is None:
            post_id = f"dry-run-{self._clock_ms()}"
            dry_run = True
            message = DRY_RUN_MESSAGE
            logger.info("[publish] DRY RUN — LinkedIn not configured. Saving draft only.")
        else:
            image_urn = None
            if image_url:
                try:
                    image_urn = await self.client.upload_image(image_url)
                except Exception as exc:
                    logger.error("[publish] Image upload failed: %s", exc)
                    raise ImageUploadError(exc) from exc

            post_id = await self.client.create_post(clean_text, image_urn)
            dry_run = False
            message = (
                "Published to LinkedIn with image successfully!"
                if image_url
                else "Published to LinkedIn successfully!"
            )
            logger.info("[publish] Draft %s published as %s", draft_id, post_id)

        await self.drafts.record_publish(
            draft_id,
            selected_model=provider_id,
            final_text=text,
            image_url=image_url,
            linkedin_post_id=post_id,
            published=not dry_run,
        )
        return PublishOutcome(post_id=post_id, dry_run=dry_run, message=message)

