"""
config.py — Application configuration.

All settings are loaded from environment variables (via .env file).
Provider keys, LinkedIn credentials and Canva client credentials are optional:
missing LLM keys surface as per-provider errors, missing LinkedIn credentials
switch publishing to dry-run, missing Canva credentials disable the connect flow.
"""

import logging
from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Placeholder URN shipped in .env.example — treated as "not configured"
LINKEDIN_PLACEHOLDER_URN = "urn:li:person:XXXX"


class Settings(BaseSettings):
    """Central configuration for the LinkedIn AI Engine.

    All fields map 1-to-1 to environment variables (case-insensitive).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ─────────────────────────────────────────────
    # Application
    # ─────────────────────────────────────────────
    app_name: str = "LinkedIn AI Engine"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False
    app_url: str = "https://linkedin-ai-engine.vercel.app"  # sent to OpenRouter as HTTP-Referer
    dashboard_url: str = "/dashboard"  # OAuth callback redirects land here

    # ─────────────────────────────────────────────
    # Database
    # ─────────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./linkedin_ai_engine.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # ─────────────────────────────────────────────
    # Encryption (OAuth tokens at rest)
    # ─────────────────────────────────────────────
    field_encryption_key: str = ""

    # ─────────────────────────────────────────────
    # LLM providers
    # ─────────────────────────────────────────────
    openrouter_key_model1: str = ""
    openrouter_key_model2: str = ""
    openrouter_key_model3: str = ""
    model1_id: str = "openai/gpt-oss-120b"
    model2_id: str = "google/gemma-3-27b-it:free"
    model3_id: str = "zhipu-ai/glm-z1-air:free"

    gemini_api_key: str = ""
    gemini_model_id: str = "gemini-2.0-flash"

    groq_api_key: str = ""
    groq_model_id: str = "llama-3.3-70b-versatile"

    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-haiku-20240307"

    llm_timeout_seconds: float = 60.0
    llm_max_tokens: int = 800

    # ─────────────────────────────────────────────
    # LinkedIn
    # ─────────────────────────────────────────────
    linkedin_access_token: str = ""
    linkedin_author_urn: str = ""
    linkedin_api_version: str = "202401"
    publish_enabled: bool = False  # global kill switch

    # ─────────────────────────────────────────────
    # Canva
    # ─────────────────────────────────────────────
    canva_client_id: str = ""
    canva_client_secret: str = ""
    canva_redirect_uri: str = ""
    canva_export_poll_interval: float = 2.0
    canva_export_max_attempts: int = 15

    # ─────────────────────────────────────────────
    # Monitoring
    # ─────────────────────────────────────────────
    sentry_dsn: str = ""

    # ─────────────────────────────────────────────
    # CORS
    # ─────────────────────────────────────────────
    allowed_origins: str = "http://localhost:3000"

    # ─────────────────────────────────────────────
    # Rate Limiting
    # ─────────────────────────────────────────────
    rate_limit_general: str = "100/minute"
    generate_rate_limit_window_seconds: float = 60.0
    generate_rate_limit_max_requests: int = 10

    # ─────────────────────────────────────────────
    # Validators
    # ─────────────────────────────────────────────

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    # ─────────────────────────────────────────────
    # Computed properties
    # ─────────────────────────────────────────────

    @property
    def allowed_origins_list(self) -> List[str]:
        """Return CORS origins as a list."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def linkedin_configured(self) -> bool:
        """True when live publishing credentials are present (else dry-run)."""
        return bool(
            self.linkedin_access_token
            and self.linkedin_author_urn
            and self.linkedin_author_urn != LINKEDIN_PLACEHOLDER_URN
        )

    @property
    def canva_configured(self) -> bool:
        return bool(self.canva_client_id and self.canva_redirect_uri)

    @property
    def db_ssl_args(self) -> dict:
        """Extra SQLAlchemy connect_args for SSL in production."""
        if self.environment in {"production", "staging"} and "postgresql" in self.database_url:
            return {"ssl": "require"}
        return {}


@lru_cache
def get_settings() -> Settings:
    """Return a cached singleton Settings instance."""
    _settings = Settings()
    logger.info(
        "Config loaded — env=%s debug=%s", _settings.environment, _settings.debug
    )
    return _settings


settings = get_settings()
