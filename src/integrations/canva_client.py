"""
src/integrations/canva_client.py — Canva Connect REST API client.

Covers the OAuth token endpoint (authorization-code + PKCE exchange and
refresh), design listing, and export jobs.
Docs: https://www.canva.dev/docs/connect/

Non-2xx responses raise CanvaAPIError carrying the vendor status and body.
"""

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://www.canva.com/api/oauth/authorize"
BASE_URL = "https://api.canva.com/rest/v1"
DEFAULT_SCOPES = ("design:content:read", "design:meta:read", "asset:read")

_TIMEOUT = 30.0


class CanvaAPIError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(f"Canva API error {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class CanvaClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        http: httpx.AsyncClient | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._http = http or httpx.AsyncClient(timeout=_TIMEOUT)

    async def aclose(self) -> None:
        await self._http.aclose()

    # ─────────────────────────────────────────────
    # OAuth
    # ─────────────────────────────────────────────

    def authorization_url(
        self,
        state: str,
        code_challenge: str,
        scopes: tuple[str, ...] = DEFAULT_SCOPES,
    ) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def _token_request(self, form: dict[str, str]) -> dict:
        resp = await self._http.post(
            f"{BASE_URL}/oauth/token",
            data=form,
            auth=(self.client_id, self.client_secret),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if resp.is_error:
            logger.error("Canva token endpoint returned %d: %s", resp.status_code, resp.text[:300])
            raise CanvaAPIError(resp.status_code, resp.text)
        return resp.json()

    async def exchange_code(self, code: str, code_verifier: str | None) -> dict:
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        if code_verifier:
            form["code_verifier"] = code_verifier
        return await self._token_request(form)

    async def refresh(self, refresh_token: str) -> dict:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    # ─────────────────────────────────────────────
    # Designs + exports
    # ─────────────────────────────────────────────

    async def _request(self, method: str, path: str, access_token: str, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {access_token}"}
        if "json" in kwargs:
            headers["Content-Type"] = "application/json"
        return await self._http.request(method, f"{BASE_URL}{path}", headers=headers, **kwargs)

    async def list_designs(self, access_token: str, continuation: str | None = None) -> dict:
        params = {"continuation": continuation} if continuation else None
        resp = await self._request("GET", "/designs", access_token, params=params)
        if resp.is_error:
            logger.error("Canva designs API error %d: %s", resp.status_code, resp.text[:300])
            raise CanvaAPIError(resp.status_code, resp.text)
        return resp.json()

    async def create_export(self, access_token: str, design_id: str, file_type: str = "png") -> dict:
        resp = await self._request(
            "POST",
            "/exports",
            access_token,
            json={"design_id": design_id, "format": {"type": file_type}},
        )
        if resp.is_error:
            logger.error("Canva create export failed %d: %s", resp.status_code, resp.text[:300])
            raise CanvaAPIError(resp.status_code, resp.text)
        return resp.json()

    async def get_export(self, access_token: str, job_id: str) -> httpx.Response:
        """Return the raw status response; the poller decides what a failure means."""
        return await self._request("GET", f"/exports/{job_id}", access_token)


def token_fields(payload: Any) -> tuple[str, str | None, int | None]:
    """Pull (access_token, refresh_token, expires_in) from a token response."""
    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise ValueError("Canva token response has no access_token")
    expires_in = payload.get("expires_in")
    return (
        payload["access_token"],
        payload.get("refresh_token") or None,
        int(expires_in) if expires_in else None,
    )
