"""FastAPI application factory: entry point for the BookTracker recommendation API."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booktracker.api.dependencies import create_completion_client, create_rate_limiter
from booktracker.api.routes.recommendations import router as recommendations_router
from booktracker.api.schemas import ErrorResponse
from booktracker.config import settings
from booktracker.domain.errors import (
    InvalidRequestError,
    QuotaExceededError,
    RecommendationError,
)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown events."""
    logger.info("BookTracker recommendations starting up...")
    logger.info("LLM provider: %s", settings.llm_provider.value)
    logger.info("Quota backend: %s (%d/day)", settings.quota_backend.value, settings.daily_quota)
    logger.info("Completion timeout: %.1fs", settings.completion_timeout_seconds)
    app.state.completion_client = create_completion_client(settings)
    app.state.rate_limiter = create_rate_limiter(settings)
    yield
    logger.info("BookTracker recommendations shutting down...")
    await app.state.completion_client.aclose()
    await app.state.rate_limiter.aclose()


async def recommendation_error_handler(request: Request, exc: RecommendationError) -> JSONResponse:
    """Map pipeline errors to the error envelope; detail stays in the log."""
    trace_id = uuid.uuid4().hex
    logger.warning(
        "%s %s -> %d %s (trace_id=%s, details=%s)",
        request.method,
        request.url.path,
        exc.http_status,
        exc.error_code,
        trace_id,
        exc.details,
    )
    headers = {}
    if isinstance(exc, QuotaExceededError):
        headers["Retry-After"] = str(exc.retry_after)
    errors = exc.errors if isinstance(exc, InvalidRequestError) else None
    body = ErrorResponse(message=exc.message, errors=errors or None, trace_id=trace_id)
    return JSONResponse(
        status_code=exc.http_status,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="BookTracker Recommendations",
        description="AI-generated book recommendations from a reader's ratings",
        version="1.0.0",
        lifespan=lifespan,
    )

    # ── Middleware ──────────────────────────────────
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After"],
    )

    # ── Errors ─────────────────────────────────────
    application.add_exception_handler(RecommendationError, recommendation_error_handler)

    # ── Routes ─────────────────────────────────────
    application.include_router(recommendations_router)

    # ── Health Check ───────────────────────────────
    @application.get("/health", tags=["System"])
    async def health() -> dict[str, str]:
        return {"status": "healthy", "service": "booktracker-recommendations"}

    return application


app = create_app()
