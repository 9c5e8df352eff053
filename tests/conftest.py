"""
tests/conftest.py — Shared pytest configuration and fixtures.

Env setup:
  Test defaults are forced into os.environ before any project module is
  imported, so a developer .env never leaks provider keys or a real database
  into the suite. Vendor HTTP is served by httpx.MockTransport; the database
  is in-memory SQLite.

Markers:
  @pytest.mark.live  — requires real API keys; skipped unless explicitly enabled

Run unit tests:
    pytest tests/ -m "not live" -v
"""

import os
import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest
import pytest_asyncio

# ─── Path setup ──────────────────────────────────────────────────────────────
# Ensure the project root is on sys.path so imports resolve correctly
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

os.environ.update(
    {
        "ENVIRONMENT": "test",
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "FIELD_ENCRYPTION_KEY": "",
        "OPENROUTER_KEY_MODEL1": "",
        "OPENROUTER_KEY_MODEL2": "",
        "OPENROUTER_KEY_MODEL3": "",
        "GEMINI_API_KEY": "",
        "GROQ_API_KEY": "",
        "ANTHROPIC_API_KEY": "",
        "LINKEDIN_ACCESS_TOKEN": "",
        "LINKEDIN_AUTHOR_URN": "",
        "PUBLISH_ENABLED": "false",
        "CANVA_CLIENT_ID": "",
        "CANVA_CLIENT_SECRET": "",
        "CANVA_REDIRECT_URI": "",
        "SENTRY_DSN": "",
        "RATE_LIMIT_GENERAL": "1000/minute",
    }
)

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402


# ─── Marker registration ─────────────────────────────────────────────────────
def pytest_configure(config):
    config.addinivalue_line("markers", "live: marks test as a live integration test requiring real API keys")


# ─── Database ────────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database with all tables, shared by every session."""
    import models  # noqa: F401
    from database import Base

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ─── Vendor HTTP ─────────────────────────────────────────────────────────────
class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def mock_http():
    """Factory: mock_http(handler) → (AsyncClient, RecordingTransport)."""
    def _make(handler):
        transport = RecordingTransport(handler)
        return httpx.AsyncClient(transport=transport), transport

    return _make


# ─── Canva token store ───────────────────────────────────────────────────────
class MemoryTokenStore:
    """In-process TokenStore; counts saves so tests can assert "no write"."""

    def __init__(self, token=None):
        self.token = token
        self.saves = []

    async def load(self):
        return self.token

    async def save(self, token):
        self.saves.append(token)
        self.token = token


@pytest.fixture
def token_store():
    return MemoryTokenStore()


# ─── Settings override for tests ─────────────────────────────────────────────
@pytest.fixture
def app_settings(monkeypatch):
    """The shared settings object; attribute changes are undone after the test."""
    from config import settings

    def _set(**values):
        for name, value in values.items():
            monkeypatch.setattr(settings, name, value)
        return settings

    return _set
