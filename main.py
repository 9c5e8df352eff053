"""
main.py — FastAPI application entry point for the LinkedIn AI Engine.

Wires together middleware, routers, error handlers, and startup logic.
Run with:  python -m uvicorn main:app --reload
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from config import settings
from database import create_tables
from routers import canva, drafts, generate, health, publish

# ─────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# Sentry (production error tracking)
# ─────────────────────────────────────────────

if settings.sentry_dsn:
    try:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            traces_sample_rate=0.2,
        )
        logger.info("Sentry initialised")
    except Exception as _e:
        logger.warning("Sentry init failed (skipping): %s", _e)
else:
    logger.info("Sentry not configured — skipping")

# ─────────────────────────────────────────────
# Rate Limiter (app-wide default; /api/generate has its own sliding window)
# ─────────────────────────────────────────────

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_general])


# ─────────────────────────────────────────────
# Security Headers Middleware
# ─────────────────────────────────────────────

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security-related HTTP response headers to every response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


# ─────────────────────────────────────────────
# Request Logging Middleware
# ─────────────────────────────────────────────

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status code, and response time for every request.

    Query strings are never logged (the OAuth callback carries the code).
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)

        logger.info(
            "%s %s → %d  (%.2fms)  ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request.client.host if request.client else "unknown",
        )
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"
        return response


# ─────────────────────────────────────────────
# Lifespan (startup / shutdown)
# ─────────────────────────────────────────────

_PROVIDER_KEYS = (
    ("GPT-OSS", "openrouter_key_model1"),
    ("Gemma", "openrouter_key_model2"),
    ("GLM", "openrouter_key_model3"),
    ("Gemini", "gemini_api_key"),
    ("Groq", "groq_api_key"),
    ("Claude", "anthropic_api_key"),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run startup tasks before serving, cleanup after shutdown."""
    logger.info("Starting %s v%s (%s)", settings.app_name, settings.app_version, settings.environment)

    # 1. Initialise database tables
    await create_tables()

    # 2. Report which providers can answer
    configured = [label for label, attr in _PROVIDER_KEYS if getattr(settings, attr)]
    missing = [label for label, attr in _PROVIDER_KEYS if not getattr(settings, attr)]
    logger.info("LLM providers configured: %s", ", ".join(configured) or "none")
    if missing:
        logger.warning("LLM providers without API key (will return errors): %s", ", ".join(missing))

    # 3. Publishing mode
    if not settings.publish_enabled:
        logger.warning("Publishing disabled (PUBLISH_ENABLED=false)")
    elif settings.linkedin_configured:
        logger.info("LinkedIn: configured — publishing live")
    else:
        logger.warning("LinkedIn: NOT configured — publishing runs as dry run")

    # 4. Canva
    if settings.canva_configured:
        logger.info("Canva: configured")
    else:
        logger.info("Canva: NOT configured — connect flow disabled")

    yield

    logger.info("Shutting down %s", settings.app_name)


# ─────────────────────────────────────────────
# App Initialisation
# ─────────────────────────────────────────────

app = FastAPI(
    title="LinkedIn AI Engine API",
    description="Multi-model LinkedIn post generation, Canva design export and publishing",
    version=settings.app_version,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)

# Attach rate limiter to app state
app.state.limiter = limiter

# ─────────────────────────────────────────────
# Middleware (order matters — outermost first)
# ─────────────────────────────────────────────

if settings.is_production:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["*.vercel.app", "localhost", "127.0.0.1"],
    )

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Security headers
app.add_middleware(SecurityHeadersMiddleware)

# Request logging
app.add_middleware(RequestLoggingMiddleware)

# Rate limiting
app.add_middleware(SlowAPIMiddleware)

# ─────────────────────────────────────────────
# Error Handlers
# ─────────────────────────────────────────────

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"status": "error", "error": "Too many requests. Please slow down."},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Structured details (LinkedIn errors) pass through as-is
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"status": "error", "error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(loc) for loc in e["loc"]), "message": e["msg"]}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"status": "error", "error": "Validation failed", "details": errors},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    # Never leak internal details to the client
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": "error", "error": "An internal server error occurred"},
    )


# ─────────────────────────────────────────────
# Routers
# ─────────────────────────────────────────────

app.include_router(health.router)
app.include_router(generate.router)
app.include_router(publish.router)
app.include_router(drafts.router)
app.include_router(canva.router)


# ─────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────

@app.get("/", include_in_schema=False)
async def root():
    """Health check / welcome endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "docs": "/docs",
    }
