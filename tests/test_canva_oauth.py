"""
tests/test_canva_oauth.py — Unit tests for PKCE helpers and the Canva token lifecycle.

Run with:  pytest tests/test_canva_oauth.py -v

The Canva token endpoint is served by httpx.MockTransport and tokens live in
an in-memory store; time is pinned by an injected clock.
"""

import base64
import hashlib
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from security import code_challenge_for, generate_code_verifier, generate_oauth_state, states_match
from src.integrations.canva_client import CanvaClient
from src.services.canva_oauth import (
    INVALID_STATE,
    MISSING_PARAMS,
    SERVER_ERROR,
    TOKEN_EXCHANGE_FAILED,
    CanvaNotConnectedError,
    CanvaOAuthManager,
    OAuthCallbackError,
    StoredToken,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
REDIRECT = "https://app.test/api/canva/callback"


def _token_response(**overrides) -> httpx.Response:
    body = {"access_token": "at-new", "refresh_token": "rt-new", "expires_in": 3600}
    body.update(overrides)
    return httpx.Response(200, json=body)


@pytest.fixture
def make_manager(mock_http, token_store):
    def _make(handler=lambda req: _token_response()):
        http, transport = mock_http(handler)
        client = CanvaClient("cid", "csecret", REDIRECT, http=http)
        return CanvaOAuthManager(client, token_store, now=lambda: NOW), transport

    return _make


# ═════════════════════════════════════════════
# PKCE + STATE
# ═════════════════════════════════════════════

class TestPKCE:

    def test_verifier_is_base64url_of_32_bytes(self):
        verifier = generate_code_verifier()
        assert len(verifier) == 43
        assert "=" not in verifier
        assert base64.urlsafe_b64decode(verifier + "=")

    def test_challenge_is_unpadded_sha256(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).rstrip(b"=")
        assert code_challenge_for(verifier) == expected.decode()
        # RFC 7636 appendix B vector
        assert code_challenge_for(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_state_is_32_hex_chars(self):
        state = generate_oauth_state()
        assert len(state) == 32
        int(state, 16)

    @pytest.mark.parametrize(
        "received,stored,expected",
        [("abc", "abc", True), ("abc", "abd", False), ("\u00e9", "abc", False), ("abc", None, False), (None, "abc", False), ("", "", False)],
    )
    def test_states_match(self, received, stored, expected):
        assert states_match(received, stored) is expected


# ═════════════════════════════════════════════
# BEGIN AUTHORIZATION
# ═════════════════════════════════════════════

class TestBeginAuthorization:

    def test_authorize_url_parameters(self, make_manager):
        manager, _ = make_manager()

        auth = manager.begin_authorization()

        url = urlparse(auth.url)
        assert f"{url.scheme}://{url.netloc}{url.path}" == "https://www.canva.com/api/oauth/authorize"
        params = {k: v[0] for k, v in parse_qs(url.query).items()}
        assert params == {
            "response_type": "code",
            "client_id": "cid",
            "redirect_uri": REDIRECT,
            "scope": "design:content:read design:meta:read asset:read",
            "state": auth.state,
            "code_challenge": code_challenge_for(auth.code_verifier),
            "code_challenge_method": "S256",
        }

    def test_each_attempt_is_fresh(self, make_manager):
        manager, _ = make_manager()
        a, b = manager.begin_authorization(), manager.begin_authorization()
        assert a.state != b.state
        assert a.code_verifier != b.code_verifier


# ═════════════════════════════════════════════
# CALLBACK
# ═════════════════════════════════════════════

class TestCompleteAuthorization:

    @pytest.mark.asyncio
    async def test_success_stores_token_with_expiry(self, make_manager, token_store):
        manager, transport = make_manager()

        token = await manager.complete_authorization("the-code", "s1", "s1", "verifier-1")

        assert token.access_token == "at-new"
        assert token.refresh_token == "rt-new"
        assert token.expires_at == NOW + timedelta(seconds=3600)
        assert token_store.saves == [token]

        req = transport.requests[0]
        assert str(req.url) == "https://api.canva.com/rest/v1/oauth/token"
        assert req.headers["Authorization"] == "Basic " + base64.b64encode(b"cid:csecret").decode()
        form = parse_qs(req.content.decode())
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["the-code"]
        assert form["redirect_uri"] == [REDIRECT]
        assert form["code_verifier"] == ["verifier-1"]

    @pytest.mark.asyncio
    async def test_missing_verifier_is_omitted_from_exchange(self, make_manager):
        manager, transport = make_manager()
        await manager.complete_authorization("c", "s", "s", None)
        assert "code_verifier" not in parse_qs(transport.requests[0].content.decode())

    @pytest.mark.asyncio
    async def test_no_expires_in_means_no_expiry(self, make_manager):
        manager, _ = make_manager(lambda req: _token_response(expires_in=None))
        token = await manager.complete_authorization("c", "s", "s", "v")
        assert token.expires_at is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,state", [(None, "s"), ("c", None), ("", "")])
    async def test_missing_params(self, make_manager, token_store, code, state):
        manager, transport = make_manager()

        with pytest.raises(OAuthCallbackError) as exc_info:
            await manager.complete_authorization(code, state, "s", "v")

        assert exc_info.value.code == MISSING_PARAMS
        assert transport.requests == []
        assert token_store.saves == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("saved", ["other-state", None])
    async def test_state_mismatch_never_touches_store(self, make_manager, token_store, saved):
        manager, transport = make_manager()

        with pytest.raises(OAuthCallbackError) as exc_info:
            await manager.complete_authorization("c", "s1", saved, "v")

        assert exc_info.value.code == INVALID_STATE
        assert transport.requests == []
        assert token_store.saves == []

    @pytest.mark.asyncio
    async def test_token_exchange_failure(self, make_manager, token_store):
        manager, _ = make_manager(lambda req: httpx.Response(400, json={"error": "invalid_grant"}))

        with pytest.raises(OAuthCallbackError) as exc_info:
            await manager.complete_authorization("c", "s", "s", "v")

        assert exc_info.value.code == TOKEN_EXCHANGE_FAILED
        assert token_store.saves == []

    @pytest.mark.asyncio
    async def test_response_without_access_token_is_server_error(self, make_manager, token_store):
        manager, _ = make_manager(lambda req: httpx.Response(200, json={"token_type": "bearer"}))

        with pytest.raises(OAuthCallbackError) as exc_info:
            await manager.complete_authorization("c", "s", "s", "v")

        assert exc_info.value.code == SERVER_ERROR
        assert token_store.saves == []


# ═════════════════════════════════════════════
# STATUS + REFRESH
# ═════════════════════════════════════════════

class TestStatus:

    @pytest.mark.asyncio
    async def test_no_token_is_disconnected(self, make_manager):
        manager, _ = make_manager()
        assert (await manager.status()).to_dict() == {"connected": False}

    @pytest.mark.asyncio
    async def test_live_token_is_idempotent(self, make_manager, token_store):
        token_store.token = StoredToken("at", "rt", NOW + timedelta(hours=1))
        manager, transport = make_manager()

        first = await manager.status()
        second = await manager.status()

        assert first.to_dict() == second.to_dict() == {"connected": True}
        assert transport.requests == []
        assert token_store.saves == []

    @pytest.mark.asyncio
    async def test_token_without_expiry_never_expires(self, make_manager, token_store):
        token_store.token = StoredToken("at", None, None)
        manager, _ = make_manager()
        assert (await manager.status()).connected

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed(self, make_manager, token_store):
        token_store.token = StoredToken("at-old", "rt-old", NOW - timedelta(minutes=1))
        manager, transport = make_manager()

        result = await manager.status()

        assert result.to_dict() == {"connected": True}
        form = parse_qs(transport.requests[0].content.decode())
        assert form == {"grant_type": ["refresh_token"], "refresh_token": ["rt-old"]}
        assert token_store.token.access_token == "at-new"
        assert token_store.token.refresh_token == "rt-new"
        assert token_store.token.expires_at == NOW + timedelta(seconds=3600)

    @pytest.mark.asyncio
    async def test_refresh_keeps_old_refresh_token_when_none_returned(self, make_manager, token_store):
        token_store.token = StoredToken("at-old", "rt-old", NOW - timedelta(minutes=1))
        manager, _ = make_manager(lambda req: _token_response(refresh_token=None))

        await manager.status()

        assert token_store.token.access_token == "at-new"
        assert token_store.token.refresh_token == "rt-old"

    @pytest.mark.asyncio
    async def test_refresh_failure_reports_expired(self, make_manager, token_store):
        token_store.token = StoredToken("at-old", "rt-old", NOW - timedelta(minutes=1))
        manager, _ = make_manager(lambda req: httpx.Response(401, json={"error": "invalid_grant"}))

        result = await manager.status()

        assert result.to_dict() == {"connected": False, "expired": True}
        assert token_store.saves == []

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token(self, make_manager, token_store):
        token_store.token = StoredToken("at-old", None, NOW - timedelta(minutes=1))
        manager, transport = make_manager()

        assert (await manager.status()).to_dict() == {"connected": False, "expired": True}
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_store_error_is_disconnected(self, make_manager, token_store):
        async def broken_load():
            raise RuntimeError("db down")

        token_store.load = broken_load
        manager, _ = make_manager()

        assert (await manager.status()).to_dict() == {"connected": False}


class TestGetAccessToken:

    @pytest.mark.asyncio
    async def test_returns_live_token(self, make_manager, token_store):
        token_store.token = StoredToken("at", "rt", NOW + timedelta(hours=1))
        manager, _ = make_manager()
        assert await manager.get_access_token() == "at"

    @pytest.mark.asyncio
    async def test_refreshes_transparently(self, make_manager, token_store):
        token_store.token = StoredToken("at-old", "rt-old", NOW - timedelta(seconds=1))
        manager, _ = make_manager()
        assert await manager.get_access_token() == "at-new"

    @pytest.mark.asyncio
    async def test_not_connected(self, make_manager):
        manager, _ = make_manager()
        with pytest.raises(CanvaNotConnectedError) as exc_info:
            await manager.get_access_token()
        assert str(exc_info.value) == "Canva not connected"
        assert not exc_info.value.expired

    @pytest.mark.asyncio
    async def test_expired_and_unrefreshable(self, make_manager, token_store):
        token_store.token = StoredToken("at-old", None, NOW - timedelta(seconds=1))
        manager, _ = make_manager()
        with pytest.raises(CanvaNotConnectedError) as exc_info:
            await manager.get_access_token()
        assert exc_info.value.expired
