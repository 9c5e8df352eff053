"""
models.py — SQLAlchemy ORM models for the LinkedIn AI Engine.

Two tables:
    drafts        — one row per generation request, updated once at publish time
    canva_tokens  — singleton row holding the Canva OAuth token pair
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from database import Base

CANVA_TOKEN_ID = "singleton"


def _uuid() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    """Adds created_at / updated_at to any model."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ─────────────────────────────────────────────────────────────────────────────
# DRAFT
# ─────────────────────────────────────────────────────────────────────────────

class Draft(TimestampMixin, Base):
    """A fan-out generation request and its eventual publish outcome.

    outputs maps provider id → generated text or a bracketed error placeholder,
    e.g. {"openai": "...", "groq": "[Groq error: timeout]"}. Every configured
    provider has an entry from the moment the row is created.
    """

    __tablename__ = "drafts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    outputs: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Set once at publish time
    selected_model: Mapped[str | None] = mapped_column(String(32), nullable=True)
    final_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    linkedin_post_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Draft id={self.id} selected={self.selected_model} published={self.published}>"


# ─────────────────────────────────────────────────────────────────────────────
# CANVA TOKEN
# ─────────────────────────────────────────────────────────────────────────────

class CanvaToken(Base):
    """Singleton OAuth token record (id is always CANVA_TOKEN_ID).

    A new authorization overwrites the row; refreshes update it in place.
    Token columns hold Fernet ciphertext when FIELD_ENCRYPTION_KEY is set.
    """

    __tablename__ = "canva_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=CANVA_TOKEN_ID)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<CanvaToken expires_at={self.expires_at}>"
