"""
src/integrations/linkedin_client.py — LinkedIn REST API client.

Two-phase write: an optional image goes through initializeUpload + binary PUT,
then the post itself is created referencing the returned image URN.
Docs: https://learn.microsoft.com/linkedin/marketing/community-management/shares/posts-api
"""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

BASE_URL = "https://api.linkedin.com"

_DOWNLOAD_TIMEOUT = 30.0
_API_TIMEOUT = 15.0
_UPLOAD_TIMEOUT = 60.0


class LinkedInAPIError(Exception):
    """Non-2xx from LinkedIn; status and parsed body are forwarded to the caller."""

    def __init__(self, status_code: int, details: Any):
        super().__init__(f"LinkedIn API error {status_code}")
        self.status_code = status_code
        self.details = details


def _error_details(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class LinkedInClient:
    def __init__(
        self,
        access_token: str,
        author_urn: str,
        api_version: str = "202401",
        http: httpx.AsyncClient | None = None,
    ):
        self.access_token = access_token
        self.author_urn = author_urn
        self.api_version = api_version
        self._http = http or httpx.AsyncClient()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "LinkedIn-Version": self.api_version,
            "X-Restli-Protocol-Version": "2.0.0",
            "Content-Type": "application/json",
        }

    def _check(self, resp: httpx.Response, action: str) -> None:
        if resp.is_error:
            details = _error_details(resp)
            logger.error("LinkedIn %s failed (%d): %s", action, resp.status_code, details)
            raise LinkedInAPIError(resp.status_code, details)

    # ─────────────────────────────────────────────
    # Image upload
    # ─────────────────────────────────────────────

    async def download_image(self, image_url: str) -> bytes:
        resp = await self._http.get(image_url, timeout=_DOWNLOAD_TIMEOUT, follow_redirects=True)
        resp.raise_for_status()
        return resp.content

    async def initialize_image_upload(self) -> tuple[str, str]:
        """Return (upload_url, image_urn) for a new image owned by the author."""
        resp = await self._http.post(
            f"{BASE_URL}/rest/images",
            params={"action": "initializeUpload"},
            json={"initializeUploadRequest": {"owner": self.author_urn}},
            headers=self._headers(),
            timeout=_API_TIMEOUT,
        )
        self._check(resp, "initializeUpload")
        value = (resp.json() or {}).get("value") or {}
        upload_url = value.get("uploadUrl")
        image_urn = value.get("image")
        if not upload_url or not image_urn:
            raise ValueError("LinkedIn did not return upload URL or image URN")
        return upload_url, image_urn

    async def put_image_bytes(self, upload_url: str, data: bytes) -> None:
        resp = await self._http.put(
            upload_url,
            content=data,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/octet-stream",
            },
            timeout=_UPLOAD_TIMEOUT,
        )
        self._check(resp, "image upload")

    async def upload_image(self, image_url: str) -> str:
        """Download image_url and upload it to LinkedIn. Returns the image URN."""
        data = await self.download_image(image_url)
        upload_url, image_urn = await self.initialize_image_upload()
        await self.put_image_bytes(upload_url, data)
        logger.info("Uploaded %d bytes to LinkedIn as %s", len(data), image_urn)
        return image_urn

    # ─────────────────────────────────────────────
    # Posts
    # ─────────────────────────────────────────────

    def build_post_body(self, commentary: str, image_urn: str | None = None) -> dict:
        body: dict[str, Any] = {
            "author": self.author_urn,
            "commentary": commentary,
            "visibility": "PUBLIC",
            "distribution": {
                "feedDistribution": "MAIN_FEED",
                "targetEntities": [],
                "thirdPartyDistributionChannels": [],
            },
            "lifecycleState": "PUBLISHED",
        }
        if image_urn:
            body["content"] = {"media": {"title": "Design", "id": image_urn}}
        return body

    async def create_post(self, commentary: str, image_urn: str | None = None) -> str:
        """Create a post and return its id (x-restli-id header, else body id)."""
        resp = await self._http.post(
            f"{BASE_URL}/v2/posts",
            json=self.build_post_body(commentary, image_urn),
            headers=self._headers(),
            timeout=_API_TIMEOUT,
        )
        self._check(resp, "post")

        post_id = resp.headers.get("x-restli-id")
        if not post_id:
            try:
                post_id = (resp.json() or {}).get("id")
            except ValueError:
                post_id = None
        return str(post_id or "unknown")
