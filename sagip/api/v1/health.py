"""Health check endpoints for the Sagip API v1.

Provides liveness and readiness probes.  The readiness check verifies
that the directory store answers and that the admission limiter and
verdict store are wired up.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

from sagip.services.errors import UpstreamUnavailable

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    """Readiness check response with individual component statuses."""

    status: str
    checks: dict[str, str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe.

    Returns 200 if the process is running and able to handle requests.
    Does *not* check downstream dependencies.
    """
    start_time: float = getattr(request.app.state, "start_time", time.time())
    uptime = time.time() - start_time

    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(uptime, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness probe so the load balancer only routes to wired-up instances."""
    checks: dict[str, str] = {}
    all_ok = True

    # -- Directory store -----------------------------------------------------
    store = getattr(request.app.state, "directory_store", None)
    if store is not None:
        try:
            entries = await store.list_entries()
            checks["directory"] = f"ok ({len(entries)} entries)"
        except UpstreamUnavailable as exc:
            checks["directory"] = f"error: {exc!s}"
            all_ok = False
    else:
        checks["directory"] = "not_initialised"
        all_ok = False

    # -- Admission limiter ---------------------------------------------------
    limiter = getattr(request.app.state, "admission_limiter", None)
    if limiter is not None:
        checks["admission_limiter"] = f"ok ({limiter.size} counters)"
    else:
        checks["admission_limiter"] = "not_initialised"
        all_ok = False

    # -- Verdict store -------------------------------------------------------
    verdicts = getattr(request.app.state, "verdict_store", None)
    if verdicts is not None:
        checks["verdicts"] = f"ok ({verdicts.backend_name})"
    else:
        checks["verdicts"] = "not_initialised"
        all_ok = False

    status = "ready" if all_ok else "degraded"

    logger.info("health.readiness_check", status=status, checks=checks)

    return ReadinessResponse(status=status, checks=checks)
