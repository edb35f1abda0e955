"""Domain errors raised by the admission and moderation services.

Field-level verification failures are never raised; they are reported
as ``False`` checks on a verdict.  Everything here aborts the operation
that raised it and is translated to an HTTP response at the API edge.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sagip.models.enums import CandidateStatus
    from sagip.services.admission import AdmissionResult


class SagipError(Exception):
    """Base class for errors reported back to the caller."""

    code: str = "sagip_error"


class AdmissionDenied(SagipError):
    """The caller exhausted its budget for the current window."""

    code = "rate_limited"

    def __init__(self, identifier: str, result: AdmissionResult, retry_after: int) -> None:
        self.identifier = identifier
        self.result = result
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit '{result.limit.name}' exceeded for {identifier}; retry in {retry_after}s"
        )


class CandidateNotFound(SagipError):
    code = "candidate_not_found"

    def __init__(self, candidate_id: str) -> None:
        self.candidate_id = candidate_id
        super().__init__(f"Candidate '{candidate_id}' does not exist")


class TransitionConflict(SagipError):
    """Approve/reject attempted on a candidate that is no longer pending."""

    code = "transition_conflict"

    def __init__(self, candidate_id: str, current: CandidateStatus) -> None:
        self.candidate_id = candidate_id
        self.current = current
        super().__init__(f"Candidate '{candidate_id}' is already {current}")


class VerdictRequired(SagipError):
    """Approval requested before the candidate was verified."""

    code = "verdict_required"

    def __init__(self, candidate_id: str) -> None:
        self.candidate_id = candidate_id
        super().__init__(f"Candidate '{candidate_id}' has no current verdict; verify it first")


class ModeratorRequired(SagipError):
    code = "moderator_required"

    def __init__(self) -> None:
        super().__init__("An authenticated moderator identity is required")


class UpstreamUnavailable(SagipError):
    """The directory store could not be read or written."""

    code = "upstream_unavailable"

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        message = f"Directory store unavailable during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
