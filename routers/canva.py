"""
routers/canva.py — Canva Connect integration.

Endpoints:
    GET  /api/canva/status    — {connected, expired?}; refreshes an expired token
    GET  /api/canva/auth      — Start OAuth 2.0 + PKCE, redirect to Canva
    GET  /api/canva/callback  — Finish OAuth, redirect back to the dashboard
    GET  /api/canva/designs   — List designs (cursor pagination via ?continuation=)
    POST /api/canva/export    — Export a design to PNG and return its URL
"""

import logging
from typing import AsyncIterator
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from config import settings
from database import AsyncSessionLocal
from schemas import CanvaExportRequest, CanvaExportResponse, CanvaStatusResponse
from src.integrations.canva_client import CanvaAPIError, CanvaClient
from src.services.canva_export import CanvaExportPoller, ExportError
from src.services.canva_oauth import (
    PKCE_COOKIE_MAX_AGE,
    STATE_COOKIE,
    VERIFIER_COOKIE,
    CanvaNotConnectedError,
    CanvaOAuthManager,
    OAuthCallbackError,
    SqlTokenStore,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/canva", tags=["Canva"])

NOT_CONFIGURED_MESSAGE = (
    "Canva credentials not configured. Set CANVA_CLIENT_ID and CANVA_REDIRECT_URI."
)


# ─────────────────────────────────────────────
# Dependencies
# ─────────────────────────────────────────────

async def get_canva_client() -> AsyncIterator[CanvaClient]:
    client = CanvaClient(
        client_id=settings.canva_client_id,
        client_secret=settings.canva_client_secret,
        redirect_uri=settings.canva_redirect_uri,
    )
    try:
        yield client
    finally:
        await client.aclose()


def get_token_store() -> SqlTokenStore:
    return SqlTokenStore(AsyncSessionLocal)


def get_oauth_manager(
    client: CanvaClient = Depends(get_canva_client),
    store: SqlTokenStore = Depends(get_token_store),
) -> CanvaOAuthManager:
    return CanvaOAuthManager(client, store)


def get_export_poller(client: CanvaClient = Depends(get_canva_client)) -> CanvaExportPoller:
    return CanvaExportPoller(
        client,
        interval=settings.canva_export_poll_interval,
        max_attempts=settings.canva_export_max_attempts,
    )


def _dashboard_redirect(query: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.dashboard_url}?{query}", status_code=status.HTTP_307_TEMPORARY_REDIRECT)


async def _access_token(manager: CanvaOAuthManager) -> str:
    try:
        return await manager.get_access_token()
    except CanvaNotConnectedError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))


# ─────────────────────────────────────────────
# GET /api/canva/status
# ─────────────────────────────────────────────

@router.get(
    "/status",
    response_model=CanvaStatusResponse,
    response_model_exclude_none=True,
    summary="Canva connection status",
)
async def canva_status(manager: CanvaOAuthManager = Depends(get_oauth_manager)):
    result = await manager.status()
    return result.to_dict()


# ─────────────────────────────────────────────
# GET /api/canva/auth
# ─────────────────────────────────────────────

@router.get("/auth", summary="Start the Canva OAuth flow")
async def canva_auth(manager: CanvaOAuthManager = Depends(get_oauth_manager)):
    if not settings.canva_configured:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=NOT_CONFIGURED_MESSAGE,
        )

    auth = manager.begin_authorization()
    response = RedirectResponse(auth.url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    for name, value in ((VERIFIER_COOKIE, auth.code_verifier), (STATE_COOKIE, auth.state)):
        response.set_cookie(
            name,
            value,
            max_age=PKCE_COOKIE_MAX_AGE,
            path="/",
            httponly=True,
            secure=settings.is_production,
            samesite="lax",
        )
    return response


# ─────────────────────────────────────────────
# GET /api/canva/callback
# ─────────────────────────────────────────────

@router.get("/callback", summary="Canva OAuth callback")
async def canva_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    manager: CanvaOAuthManager = Depends(get_oauth_manager),
):
    """Every outcome is a redirect to the dashboard, never a raw error."""
    if error:
        logger.warning("Canva authorization denied: %s", error)
        return _dashboard_redirect(f"canva_error={quote(error, safe='')}")

    try:
        await manager.complete_authorization(
            code=code,
            state=state,
            saved_state=request.cookies.get(STATE_COOKIE),
            code_verifier=request.cookies.get(VERIFIER_COOKIE),
        )
    except OAuthCallbackError as exc:
        logger.warning("Canva callback failed: %s", exc.code)
        return _dashboard_redirect(f"canva_error={exc.code}")

    response = _dashboard_redirect("canva_connected=true")
    response.delete_cookie(VERIFIER_COOKIE, path="/")
    response.delete_cookie(STATE_COOKIE, path="/")
    return response


# ─────────────────────────────────────────────
# GET /api/canva/designs
# ─────────────────────────────────────────────

@router.get("/designs", summary="List Canva designs")
async def canva_designs(
    continuation: str | None = None,
    manager: CanvaOAuthManager = Depends(get_oauth_manager),
):
    access_token = await _access_token(manager)
    try:
        return await manager.client.list_designs(access_token, continuation)
    except CanvaAPIError as exc:
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Canva token expired. Please reconnect.",
            )
        raise HTTPException(status_code=exc.status_code, detail="Failed to fetch designs from Canva")


# ─────────────────────────────────────────────
# POST /api/canva/export
# ─────────────────────────────────────────────

@router.post("/export", response_model=CanvaExportResponse, summary="Export a design to PNG")
async def canva_export(
    body: CanvaExportRequest,
    manager: CanvaOAuthManager = Depends(get_oauth_manager),
    poller: CanvaExportPoller = Depends(get_export_poller),
):
    access_token = await _access_token(manager)
    try:
        image_url = await poller.export_design(access_token, body.design_id)
    except ExportError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc))
    return CanvaExportResponse(success=True, image_url=image_url)
