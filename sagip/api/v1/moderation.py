"""Moderation API endpoints for Sagip v1.

Moderators load the pending queue (each candidate is scored on load),
rescore a candidate on demand, and approve or reject it.  Approving
with failing critical checks is permitted but reported back as an
override warning and recorded in the audit trail.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from sagip.api.dependencies import get_moderation_service
from sagip.middleware.auth import require_moderator
from sagip.models.directory import (
    AuditRecord,
    CandidateService,
    DirectoryEntry,
    PendingReview,
    VerificationVerdict,
)
from sagip.models.enums import VerificationCheck
from sagip.services.moderation import ModerationService

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/moderation", tags=["moderation"])

_OVERRIDE_WARNING = "Service has verification warnings. Approved anyway."


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class PendingQueueResponse(BaseModel):
    """Pending candidates with their current verdicts."""

    items: list[PendingReview]
    total: int


class RejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class ApprovalResponse(BaseModel):
    """Result of an approval, including any overridden checks."""

    candidate: CandidateService
    entry: DirectoryEntry
    overridden_checks: list[VerificationCheck]
    warning: str | None = None


class AuditTrailResponse(BaseModel):
    candidate_id: str
    records: list[AuditRecord]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/pending", response_model=PendingQueueResponse)
async def list_pending(
    verify: bool = Query(default=True, description="Score each candidate before returning it"),
    moderator_id: str = Depends(require_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
) -> PendingQueueResponse:
    """Pending submissions, newest first."""
    items = await moderation.list_pending(verify=verify)
    logger.info("api.moderation.pending", moderator_id=moderator_id, count=len(items))
    return PendingQueueResponse(items=items, total=len(items))


@router.post("/{candidate_id}/verify", response_model=VerificationVerdict)
async def verify_candidate(
    candidate_id: str,
    moderator_id: str = Depends(require_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
) -> VerificationVerdict:
    """Recompute the verdict for one candidate, replacing the current one."""
    verdict = await moderation.verify(candidate_id)
    logger.info("api.moderation.verified", candidate_id=candidate_id, moderator_id=moderator_id)
    return verdict


@router.post("/{candidate_id}/approve", response_model=ApprovalResponse)
async def approve_candidate(
    candidate_id: str,
    moderator_id: str = Depends(require_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
) -> ApprovalResponse:
    """Approve a verified candidate into the public directory."""
    outcome = await moderation.approve(candidate_id, moderator_id)
    return ApprovalResponse(
        candidate=outcome.candidate,
        entry=outcome.entry,
        overridden_checks=outcome.overridden_checks,
        warning=_OVERRIDE_WARNING if outcome.overridden else None,
    )


@router.post("/{candidate_id}/reject", response_model=CandidateService)
async def reject_candidate(
    candidate_id: str,
    body: RejectRequest | None = None,
    moderator_id: str = Depends(require_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
) -> CandidateService:
    """Reject a pending candidate; it stays on record with the reason."""
    reason = body.reason if body is not None else None
    return await moderation.reject(candidate_id, moderator_id, reason)


@router.get("/{candidate_id}/audit", response_model=AuditTrailResponse)
async def get_audit_trail(
    candidate_id: str,
    moderator_id: str = Depends(require_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
) -> AuditTrailResponse:
    """Every recorded action on one candidate, oldest first."""
    records = await moderation.audit_trail(candidate_id)
    return AuditTrailResponse(candidate_id=candidate_id, records=records)
