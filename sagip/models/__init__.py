from sagip.models.directory import (
    CRITICAL_CHECKS,
    ApprovalOutcome,
    AuditRecord,
    CandidateService,
    DirectoryEntry,
    DuplicateMatch,
    PendingReview,
    ServiceSubmission,
    VerificationVerdict,
)
from sagip.models.enums import (
    AuditAction,
    CandidateStatus,
    DuplicateReason,
    ServiceCategory,
    VerificationCheck,
)

__all__ = [
    "CRITICAL_CHECKS",
    "ApprovalOutcome",
    "AuditAction",
    "AuditRecord",
    "CandidateService",
    "CandidateStatus",
    "DirectoryEntry",
    "DuplicateMatch",
    "DuplicateReason",
    "PendingReview",
    "ServiceCategory",
    "ServiceSubmission",
    "VerificationCheck",
    "VerificationVerdict",
]
