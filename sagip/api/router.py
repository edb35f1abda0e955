"""Main API router combining all v1 route modules.

Aggregates all routers under the ``/api/v1`` prefix so the FastAPI
application only needs to include a single router.

Includes:
    * Submissions: community proposals into the pending queue
    * Moderation: pending queue, verification, approve / reject, audit
    * Directory: the approved public directory
    * Health: liveness and readiness probes
"""

from __future__ import annotations

from fastapi import APIRouter

from sagip.api.v1 import directory, health, moderation, submissions

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(submissions.router)
api_router.include_router(moderation.router)
api_router.include_router(directory.router)
api_router.include_router(health.router)
