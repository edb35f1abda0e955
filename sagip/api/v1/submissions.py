"""Community submission endpoint for Sagip v1.

Anyone signed in can propose an emergency service.  Submissions land in
the moderation queue as ``pending`` and never reach the public
directory without a moderator's approval.  This route sits in the
strict ``emergency`` rate-limit class.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from sagip.api.dependencies import get_moderation_service
from sagip.middleware.auth import require_submitter
from sagip.models.directory import CandidateService, ServiceSubmission
from sagip.services.moderation import ModerationService

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("", response_model=CandidateService, status_code=201)
async def submit_service(
    body: ServiceSubmission,
    submitted_by: str = Depends(require_submitter),
    moderation: ModerationService = Depends(get_moderation_service),
) -> CandidateService:
    """Propose a new emergency service for the directory."""
    candidate = await moderation.submit(body, submitted_by)
    logger.info("api.submissions.created", candidate_id=candidate.id)
    return candidate
