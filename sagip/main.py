"""Sagip FastAPI application entry point.

Creates the FastAPI app, configures middleware and error handlers,
includes routers, and manages the lifecycle of the moderation core
(admission limiter, directory store, verdict store, verification
engine, moderation service).
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator

from config.regions import get_region
from config.settings import settings
from sagip.api.router import api_router
from sagip.middleware.rate_limit import RateLimitMiddleware, rate_limited_response
from sagip.services.admission import AdmissionLimiter
from sagip.services.directory_store import DirectoryStore, InMemoryDirectoryStore, load_seed_entries
from sagip.services.errors import (
    AdmissionDenied,
    CandidateNotFound,
    ModeratorRequired,
    SagipError,
    TransitionConflict,
    UpstreamUnavailable,
    VerdictRequired,
)
from sagip.services.moderation import ModerationService
from sagip.services.verdicts import VerdictStore
from sagip.services.verification import DuplicateDetector, VerificationEngine

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO),
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

_ERROR_STATUS: dict[type[SagipError], int] = {
    CandidateNotFound: 404,
    TransitionConflict: 409,
    VerdictRequired: 409,
    ModeratorRequired: 401,
    UpstreamUnavailable: 503,
}


async def _sagip_error_handler(request: Request, exc: SagipError) -> JSONResponse:
    if isinstance(exc, AdmissionDenied):
        return rate_limited_response(exc)

    status_code = next(
        (status for cls, status in _ERROR_STATUS.items() if isinstance(exc, cls)),
        400,
    )
    content: dict[str, object] = {"error": exc.code, "message": str(exc)}
    if isinstance(exc, TransitionConflict):
        content["current_status"] = str(exc.current)
    if status_code >= 500:
        logger.error("api.upstream_error", path=request.url.path, error=str(exc))
    else:
        logger.info("api.request_rejected", path=request.url.path, error=exc.code)
    return ORJSONResponse(status_code=status_code, content=content)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    *,
    limiter: AdmissionLimiter | None = None,
    store: DirectoryStore | None = None,
    verdicts: VerdictStore | None = None,
    start_sweeper: bool = True,
) -> FastAPI:
    """Build the application.

    Components passed in are used as-is (tests inject clocks and
    stores this way); anything omitted is built from ``settings`` at
    startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Manage startup and shutdown of the moderation core.

        On startup:
          1. Admission limiter (and its background sweep)
          2. Directory store, optionally seeded from JSON
          3. Verdict session store (Redis or in-memory)
          4. Duplicate detector and verification engine
          5. Moderation service
          6. Store everything on ``app.state``
        """
        _configure_logging()
        logger.info("app.startup", env=settings.env, region=settings.region)

        app.state.start_time = time.time()

        # -- 1. Admission limiter -------------------------------------------
        admission_limiter = limiter or AdmissionLimiter()
        if start_sweeper:
            admission_limiter.start_sweeper(settings.rate_limit_sweep_interval_seconds)
        app.state.admission_limiter = admission_limiter
        logger.info("app.admission_limiter_initialised")

        # -- 2. Directory store ---------------------------------------------
        directory_store = store
        if directory_store is None:
            seed = load_seed_entries(settings.directory_seed_path) if settings.directory_seed_path else []
            directory_store = InMemoryDirectoryStore(entries=seed)
        app.state.directory_store = directory_store
        logger.info("app.directory_store_initialised")

        # -- 3. Verdict store -----------------------------------------------
        verdict_store = verdicts or VerdictStore(
            ttl_seconds=settings.verdict_ttl_seconds,
            redis_url=settings.redis_url or None,
        )
        app.state.verdict_store = verdict_store

        # -- 4. Verification ------------------------------------------------
        detector = DuplicateDetector(
            directory_store,
            proximity_degrees=settings.duplicate_proximity_degrees,
            read_attempts=settings.duplicate_read_attempts,
        )
        engine = VerificationEngine(
            detector,
            region=get_region(settings.region),
            address_min_length=settings.address_min_length,
        )
        app.state.verification_engine = engine
        logger.info("app.verification_engine_initialised", region=engine.region.code)

        # -- 5. Moderation --------------------------------------------------
        app.state.moderation = ModerationService(
            directory_store,
            engine,
            verdict_store,
            default_rejection_reason=settings.default_rejection_reason,
        )
        logger.info("app.startup_complete")

        yield

        # -- Shutdown -------------------------------------------------------
        logger.info("app.shutdown_start")
        await admission_limiter.stop()
        await verdict_store.close()
        logger.info("app.shutdown_complete")

    app = FastAPI(
        title="Sagip Directory API",
        description=(
            "Crowd-sourced emergency-service directory with admission control, "
            "automated verification, and moderator review."
        ),
        version="0.1.0",
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )

    # -- CORS middleware ----------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "authorization",
            "x-client-info",
            "apikey",
            "content-type",
            "x-user-id",
            "x-moderator-id",
            "x-moderator-key",
        ],
    )

    # -- Admission control --------------------------------------------------
    app.add_middleware(
        RateLimitMiddleware,
        trusted_proxy_count=settings.trusted_proxy_count,
    )

    # -- Prometheus metrics ---------------------------------------------------
    # Scraped from inside the cluster; hidden from the public schema in production.
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/metrics", "/api/v1/health"],
        registry=CollectorRegistry(),
    ).instrument(app).expose(
        app,
        endpoint="/metrics",
        include_in_schema=not settings.is_production,
    )

    app.add_exception_handler(SagipError, _sagip_error_handler)

    app.include_router(api_router)

    @app.get("/api", response_class=ORJSONResponse)
    async def api_info() -> dict:
        """API information endpoint."""
        return {
            "name": "Sagip Directory API",
            "version": app.version,
            "docs": "/docs",
            "health": "/api/v1/health",
            "region": settings.region,
            "endpoints": {
                "submissions": "/api/v1/submissions",
                "moderation": "/api/v1/moderation",
                "directory": "/api/v1/directory",
                "health": "/api/v1/health",
            },
        }

    return app


app = create_app()
