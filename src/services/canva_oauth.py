"""
src/services/canva_oauth.py — Canva OAuth token lifecycle.

States:
    disconnected → pending_authorization   begin_authorization()
    pending_authorization → connected      complete_authorization()
    connected → expired                    detected lazily by status() / get_access_token()
    expired → connected | disconnected     refresh with the stored refresh token

The token is a singleton record behind a TokenStore. SqlTokenStore is the
production store; tests inject an in-memory one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import CANVA_TOKEN_ID, CanvaToken
from security import (
    code_challenge_for,
    decrypt_field,
    encrypt_field,
    encryption_enabled,
    generate_code_verifier,
    generate_oauth_state,
    states_match,
)
from src.integrations.canva_client import CanvaAPIError, CanvaClient, token_fields

logger = logging.getLogger(__name__)

# Cookie names + lifetime for the pending authorization
VERIFIER_COOKIE = "canva_code_verifier"
STATE_COOKIE = "canva_oauth_state"
PKCE_COOKIE_MAX_AGE = 600

# Callback failure codes (sent back to the dashboard as ?canva_error=...)
MISSING_PARAMS = "missing_params"
INVALID_STATE = "invalid_state"
TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
SERVER_ERROR = "server_error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StoredToken:
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    updated_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now


@dataclass(frozen=True)
class AuthorizationRequest:
    url: str
    state: str
    code_verifier: str


@dataclass(frozen=True)
class ConnectionStatus:
    connected: bool
    expired: bool | None = None

    def to_dict(self) -> dict:
        d: dict = {"connected": self.connected}
        if self.expired is not None:
            d["expired"] = self.expired
        return d


class OAuthCallbackError(Exception):
    """Callback could not be completed; code is the dashboard error flag."""

    def __init__(self, code: str, detail: str = ""):
        super().__init__(detail or code)
        self.code = code


class CanvaNotConnectedError(Exception):
    def __init__(self, message: str = "Canva not connected", expired: bool = False):
        super().__init__(message)
        self.expired = expired


# ─────────────────────────────────────────────
# Token stores
# ─────────────────────────────────────────────

class TokenStore(Protocol):
    async def load(self) -> StoredToken | None: ...

    async def save(self, token: StoredToken) -> None: ...


class SqlTokenStore:
    """Singleton row in canva_tokens, upserted on every save."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _seal(value: str | None) -> str | None:
        if value is None or not encryption_enabled():
            return value
        return encrypt_field(value)

    @staticmethod
    def _open(value: str | None) -> str | None:
        if value is None or not encryption_enabled():
            return value
        return decrypt_field(value)

    async def load(self) -> StoredToken | None:
        async with self._session_factory() as db:
            result = await db.execute(select(CanvaToken).where(CanvaToken.id == CANVA_TOKEN_ID))
            row = result.scalar_one_or_none()
        if row is None:
            return None
        expires_at = row.expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            # SQLite hands back naive datetimes
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return StoredToken(
            access_token=self._open(row.access_token),
            refresh_token=self._open(row.refresh_token),
            expires_at=expires_at,
            updated_at=row.updated_at,
        )

    async def save(self, token: StoredToken) -> None:
        async with self._session_factory() as db:
            row = await db.get(CanvaToken, CANVA_TOKEN_ID)
            if row is None:
                row = CanvaToken(id=CANVA_TOKEN_ID)
                db.add(row)
            row.access_token = self._seal(token.access_token)
            row.refresh_token = self._seal(token.refresh_token)
            row.expires_at = token.expires_at
            row.updated_at = token.updated_at or _utcnow()
            await db.commit()


# ─────────────────────────────────────────────
# Lifecycle manager
# ─────────────────────────────────────────────

class CanvaOAuthManager:
    def __init__(
        self,
        client: CanvaClient,
        store: TokenStore,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.store = store
        self._now = now

    def begin_authorization(self) -> AuthorizationRequest:
        """Create the PKCE verifier/challenge pair and the authorize URL.

        The caller keeps state + verifier (httpOnly cookies) until the callback.
        """
        verifier = generate_code_verifier()
        state = generate_oauth_state()
        url = self.client.authorization_url(state=state, code_challenge=code_challenge_for(verifier))
        return AuthorizationRequest(url=url, state=state, code_verifier=verifier)

    def _token_from_response(self, payload: dict, fallback_refresh: str | None = None) -> StoredToken:
        access, refresh, expires_in = token_fields(payload)
        now = self._now()
        return StoredToken(
            access_token=access,
            refresh_token=refresh or fallback_refresh,
            expires_at=now + timedelta(seconds=expires_in) if expires_in else None,
            updated_at=now,
        )

    async def complete_authorization(
        self,
        code: str | None,
        state: str | None,
        saved_state: str | None,
        code_verifier: str | None,
    ) -> StoredToken:
        """Validate the callback and exchange the code for a token pair.

        Raises:
            OAuthCallbackError: code is one of missing_params, invalid_state,
                token_exchange_failed, server_error. The store is only
                written on success.
        """
        if not code or not state:
            raise OAuthCallbackError(MISSING_PARAMS)
        if not states_match(state, saved_state):
            logger.warning("Canva callback rejected: state mismatch")
            raise OAuthCallbackError(INVALID_STATE)

        try:
            payload = await self.client.exchange_code(code, code_verifier)
            token = self._token_from_response(payload)
            await self.store.save(token)
        except CanvaAPIError as exc:
            raise OAuthCallbackError(TOKEN_EXCHANGE_FAILED, exc.detail) from exc
        except Exception as exc:
            logger.exception("Canva callback failed unexpectedly")
            raise OAuthCallbackError(SERVER_ERROR, str(exc)) from exc

        logger.info("Canva connected (expires_at=%s)", token.expires_at)
        return token

    async def _refresh(self, token: StoredToken) -> StoredToken | None:
        if not token.refresh_token:
            return None
        try:
            payload = await self.client.refresh(token.refresh_token)
            refreshed = self._token_from_response(payload, fallback_refresh=token.refresh_token)
            await self.store.save(refreshed)
        except Exception as exc:
            logger.warning("Canva token refresh failed: %s", exc)
            return None
        logger.info("Canva token refreshed (expires_at=%s)", refreshed.expires_at)
        return refreshed

    async def status(self) -> ConnectionStatus:
        """Report whether a usable token exists, refreshing it if expired."""
        try:
            token = await self.store.load()
            if token is None:
                return ConnectionStatus(connected=False)
            if token.is_expired(self._now()):
                if await self._refresh(token):
                    return ConnectionStatus(connected=True)
                return ConnectionStatus(connected=False, expired=True)
            return ConnectionStatus(connected=True)
        except Exception as exc:
            logger.error("Canva status check failed: %s", exc)
            return ConnectionStatus(connected=False)

    async def get_access_token(self) -> str:
        """Return a live access token, refreshing transparently when expired.

        Raises:
            CanvaNotConnectedError: no token, or expired and not refreshable.
        """
        token = await self.store.load()
        if token is None:
            raise CanvaNotConnectedError()
        if token.is_expired(self._now()):
            refreshed = await self._refresh(token)
            if refreshed is None:
                raise CanvaNotConnectedError("Canva token expired. Please reconnect.", expired=True)
            return refreshed.access_token
        return token.access_token
