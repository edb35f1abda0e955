from __future__ import annotations

from enum import StrEnum


class ServiceCategory(StrEnum):
    __slots__ = ()

    FIRE = "fire"
    MEDICAL = "medical"
    POLICE = "police"
    RESCUE = "rescue"
    DISASTER = "disaster"
    OTHER = "other"

    @property
    def label(self) -> str:
        """Human-readable label shown to moderators."""
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS: dict[ServiceCategory, str] = {
    ServiceCategory.FIRE: "Fire Station",
    ServiceCategory.MEDICAL: "Medical / Hospital",
    ServiceCategory.POLICE: "Police Station",
    ServiceCategory.RESCUE: "Rescue Services",
    ServiceCategory.DISASTER: "Disaster Response",
    ServiceCategory.OTHER: "Other",
}


class CandidateStatus(StrEnum):
    """Moderation lifecycle of a submitted service.

    ``approved`` and ``rejected`` are terminal.
    """

    __slots__ = ()

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not CandidateStatus.PENDING


class VerificationCheck(StrEnum):
    """Individual checks making up a verdict, in reporting order."""

    __slots__ = ()

    PHONE = "phone"
    ADDRESS = "address"
    COORDINATES = "coordinates"
    DUPLICATE = "duplicate"


class DuplicateReason(StrEnum):
    __slots__ = ()

    NAME = "name"
    PHONE = "phone"
    PROXIMITY = "proximity"


class AuditAction(StrEnum):
    __slots__ = ()

    SUBMITTED = "candidate.submitted"
    APPROVED = "candidate.approved"
    REJECTED = "candidate.rejected"
