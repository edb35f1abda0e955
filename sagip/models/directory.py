"""Directory moderation data models for Sagip.

A user-submitted ``CandidateService`` waits in the pending queue until a
moderator approves it, which copies it into the public directory as a
``DirectoryEntry``, or rejects it.  Candidates are never deleted; a
rejected candidate remains as the audit record of the decision.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from sagip.models.enums import (
    AuditAction,
    CandidateStatus,
    DuplicateReason,
    ServiceCategory,
    VerificationCheck,
)

# Checks that must pass for an approval to go through without an override.
CRITICAL_CHECKS: tuple[VerificationCheck, ...] = (
    VerificationCheck.PHONE,
    VerificationCheck.COORDINATES,
    VerificationCheck.DUPLICATE,
)


def _new_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class ServiceSubmission(BaseModel):
    """Fields a community member supplies when proposing a service."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=200)
    category: ServiceCategory
    phone: str = Field(..., min_length=7, max_length=20)
    address: str | None = Field(default=None, max_length=500)
    city: str | None = Field(default=None, max_length=100)
    latitude: float = Field(..., ge=-90.0, le=90.0, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180.0, le=180.0, allow_inf_nan=False)


# ---------------------------------------------------------------------------
# Candidate and directory entry
# ---------------------------------------------------------------------------


class CandidateService(BaseModel):
    """A proposed emergency-service directory entry.

    Only the moderation service produces modified copies (via
    ``model_copy``); the model itself is frozen.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1)
    category: ServiceCategory
    phone: str
    address: str | None = None
    city: str | None = None
    latitude: float = Field(..., allow_inf_nan=False)
    longitude: float = Field(..., allow_inf_nan=False)
    submitted_by: str
    submitted_at: datetime = Field(default_factory=_utcnow)

    status: CandidateStatus = CandidateStatus.PENDING
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    overridden_checks: list[VerificationCheck] = Field(
        default_factory=list,
        description="Critical checks that were failing when a moderator approved anyway.",
    )
    directory_entry_id: str | None = None


class DirectoryEntry(BaseModel):
    """An approved service in the public, trusted directory."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    name: str
    category: ServiceCategory
    phone: str
    address: str | None = None
    city: str | None = None
    latitude: float = Field(..., allow_inf_nan=False)
    longitude: float = Field(..., allow_inf_nan=False)
    is_national: bool = False
    source_candidate_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_candidate(cls, candidate: CandidateService, created_at: datetime) -> DirectoryEntry:
        return cls(
            name=candidate.name,
            category=candidate.category,
            phone=candidate.phone,
            address=candidate.address,
            city=candidate.city,
            latitude=candidate.latitude,
            longitude=candidate.longitude,
            is_national=False,
            source_candidate_id=candidate.id,
            created_at=created_at,
        )


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class DuplicateMatch(BaseModel):
    """One existing directory entry that resembles a candidate."""

    model_config = ConfigDict(frozen=True)

    reason: DuplicateReason
    entry_id: str
    entry_name: str


class VerificationVerdict(BaseModel):
    """Result of scoring one candidate against the current directory.

    Every boolean uses the same polarity: ``True`` means the check
    passed.  ``notes`` names each failing check, or states that all
    checks passed.
    """

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    phone_valid: bool
    address_plausible: bool
    coordinates_in_bounds: bool
    no_duplicate_found: bool
    notes: str
    duplicate_matches: list[DuplicateMatch] = Field(default_factory=list)

    @property
    def check_results(self) -> dict[VerificationCheck, bool]:
        return {
            VerificationCheck.PHONE: self.phone_valid,
            VerificationCheck.ADDRESS: self.address_plausible,
            VerificationCheck.COORDINATES: self.coordinates_in_bounds,
            VerificationCheck.DUPLICATE: self.no_duplicate_found,
        }

    @property
    def failed_checks(self) -> list[VerificationCheck]:
        return [check for check, passed in self.check_results.items() if not passed]

    @property
    def failed_critical_checks(self) -> list[VerificationCheck]:
        return [check for check in self.failed_checks if check in CRITICAL_CHECKS]

    @property
    def all_passed(self) -> bool:
        return not self.failed_checks


class PendingReview(BaseModel):
    """A pending candidate paired with its current verdict."""

    candidate: CandidateService
    verdict: VerificationVerdict | None = None


class ApprovalOutcome(BaseModel):
    """What an approval produced."""

    candidate: CandidateService
    entry: DirectoryEntry
    overridden_checks: list[VerificationCheck] = Field(default_factory=list)

    @property
    def overridden(self) -> bool:
        return bool(self.overridden_checks)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


class AuditRecord(BaseModel):
    """Append-only record of a moderation action."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    action: AuditAction
    entity_type: str = "candidate"
    entity_id: str
    actor_id: str
    old_data: dict[str, Any] | None = None
    new_data: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=_utcnow)
