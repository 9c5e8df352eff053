"""
database.py — Async SQLAlchemy engine, session factory, and helpers.

Uses asyncpg for PostgreSQL (production) and aiosqlite for SQLite (development).
Schema changes are additive only (new nullable columns); SQLite picks them up
through the lightweight ALTER TABLE pass in create_tables().
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# Engine
# ─────────────────────────────────────────────

# Translate sync postgres:// → async asyncpg driver notation
_db_url = settings.database_url
if _db_url.startswith("postgresql://"):
    _db_url = _db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
elif _db_url.startswith("postgres://"):
    _db_url = _db_url.replace("postgres://", "postgresql+asyncpg://", 1)

# SQLite doesn't support pool_size / max_overflow
_is_sqlite = "sqlite" in _db_url

_engine_kwargs: dict = {
    "echo": settings.debug,
    "future": True,
}

if not _is_sqlite:
    _engine_kwargs.update(
        {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_timeout": settings.db_pool_timeout,
            "pool_recycle": settings.db_pool_recycle,
            "pool_pre_ping": True,
        }
    )
    if settings.db_ssl_args:
        _engine_kwargs["connect_args"] = settings.db_ssl_args

engine = create_async_engine(_db_url, **_engine_kwargs)

# ─────────────────────────────────────────────
# Session Factory
# ─────────────────────────────────────────────

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


# ─────────────────────────────────────────────
# Base
# ─────────────────────────────────────────────

class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""
    pass


# ─────────────────────────────────────────────
# Lifecycle
# ─────────────────────────────────────────────

# Columns added after a table first shipped: (table, column, DDL type)
_ADDITIVE_COLUMNS = [
    ("drafts", "image_url", "TEXT"),
]


async def create_tables() -> None:
    """Create all tables defined in models.py.

    Idempotent — existing tables are left intact. On SQLite, columns listed in
    _ADDITIVE_COLUMNS are added to databases created by an older version.
    """
    import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if _is_sqlite:
        async with engine.begin() as conn:
            for table, col, col_def in _ADDITIVE_COLUMNS:
                result = await conn.exec_driver_sql(f"PRAGMA table_info({table})")
                if col in {row[1] for row in result.fetchall()}:
                    continue
                await conn.exec_driver_sql(
                    f"ALTER TABLE {table} ADD COLUMN {col} {col_def}"
                )
                logger.info("Migration: added column %s.%s", table, col)

    logger.info("Database tables initialised")


# ─────────────────────────────────────────────
# Dependency Injection
# ─────────────────────────────────────────────

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a database session per request.

    Commits on success, rolls back on any exception, always closes.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
