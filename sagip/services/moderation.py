"""Moderation workflow for community-submitted emergency services.

Drives each candidate through ``pending -> approved`` or
``pending -> rejected``.  Both end states are terminal: a second
approve/reject on the same candidate raises :class:`TransitionConflict`
instead of silently succeeding again.

Approval writes two records: the new :class:`DirectoryEntry` and the
candidate's status change.  The store offers no multi-record
transaction, so approval runs as an explicit two-phase commit: insert
the entry, compare-and-set the candidate to ``approved``, and delete
the entry again if the second phase fails.

Approving a candidate whose critical checks (phone, coordinates,
duplicate) failed is allowed, but the failing checks are recorded on
the candidate and in the audit trail as an override.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from sagip.models.directory import (
    ApprovalOutcome,
    AuditRecord,
    CandidateService,
    DirectoryEntry,
    PendingReview,
    ServiceSubmission,
)
from sagip.models.enums import AuditAction, CandidateStatus
from sagip.services.errors import (
    CandidateNotFound,
    ModeratorRequired,
    TransitionConflict,
    UpstreamUnavailable,
    VerdictRequired,
)

if TYPE_CHECKING:
    from sagip.models.directory import VerificationVerdict
    from sagip.services.directory_store import DirectoryStore
    from sagip.services.verdicts import VerdictStore
    from sagip.services.verification.engine import VerificationEngine

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

DEFAULT_REJECTION_REASON = "Did not meet directory requirements"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ModerationService:
    """State machine over the pending queue.

    Parameters
    ----------
    store:
        Directory / pending-queue storage.
    engine:
        Verification engine used to score candidates.
    verdicts:
        Session store holding the current verdict of each candidate.
    clock:
        Returns the current UTC time; injectable for tests.
    default_rejection_reason:
        Reason recorded when a moderator rejects without giving one.
    """

    def __init__(
        self,
        store: DirectoryStore,
        engine: VerificationEngine,
        verdicts: VerdictStore,
        clock: Callable[[], datetime] = _utcnow,
        default_rejection_reason: str = DEFAULT_REJECTION_REASON,
    ) -> None:
        self._store = store
        self._engine = engine
        self._verdicts = verdicts
        self._clock = clock
        self._default_reason = default_rejection_reason
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_holders: Counter[str] = Counter()

    # ------------------------------------------------------------------
    # Submission and review queue
    # ------------------------------------------------------------------

    async def submit(self, submission: ServiceSubmission, submitted_by: str) -> CandidateService:
        """Persist a new ``pending`` candidate."""
        candidate = CandidateService(
            **submission.model_dump(),
            submitted_by=submitted_by,
            submitted_at=self._clock(),
        )
        await self._store.add_candidate(candidate)
        await self._audit(
            AuditAction.SUBMITTED,
            candidate.id,
            submitted_by,
            new_data=candidate.model_dump(mode="json"),
        )
        logger.info(
            "moderation.submitted",
            candidate_id=candidate.id,
            category=candidate.category,
            submitted_by=submitted_by,
        )
        return candidate

    async def get_candidate(self, candidate_id: str) -> CandidateService:
        candidate = await self._store.get_candidate(candidate_id)
        if candidate is None:
            raise CandidateNotFound(candidate_id)
        return candidate

    async def list_pending(self, verify: bool = True) -> list[PendingReview]:
        """Pending queue, newest first, scored on load when *verify* is set."""
        candidates = await self._store.list_candidates(CandidateStatus.PENDING)
        reviews: list[PendingReview] = []
        for candidate in candidates:
            if verify:
                verdict = await self._score(candidate)
            else:
                verdict = await self._verdicts.get(candidate.id)
            reviews.append(PendingReview(candidate=candidate, verdict=verdict))
        return reviews

    async def verify(self, candidate_id: str) -> VerificationVerdict:
        """Recompute and store the current verdict for a pending candidate.

        Decided candidates raise :class:`TransitionConflict`; an approved
        one would otherwise match its own directory entry.
        """
        candidate = await self._load_pending(candidate_id)
        return await self._score(candidate)

    async def current_verdict(self, candidate_id: str) -> VerificationVerdict | None:
        return await self._verdicts.get(candidate_id)

    async def audit_trail(self, candidate_id: str) -> list[AuditRecord]:
        await self.get_candidate(candidate_id)
        return await self._store.list_audit(candidate_id)

    async def _score(self, candidate: CandidateService) -> VerificationVerdict:
        verdict = await self._engine.verify(candidate)
        await self._verdicts.put(verdict)
        return verdict

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _candidate_lock(self, candidate_id: str) -> AsyncIterator[None]:
        """Serialise transitions of one candidate.

        The lock is dropped from the map once its last holder or waiter
        leaves, so ids that never resolve leave nothing behind.
        """
        lock = self._locks.get(candidate_id)
        if lock is None:
            lock = self._locks[candidate_id] = asyncio.Lock()
        self._lock_holders[candidate_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[candidate_id] -= 1
            if self._lock_holders[candidate_id] <= 0:
                del self._lock_holders[candidate_id]
                del self._locks[candidate_id]

    async def _load_pending(self, candidate_id: str) -> CandidateService:
        candidate = await self.get_candidate(candidate_id)
        if candidate.status != CandidateStatus.PENDING:
            logger.warning(
                "moderation.transition_conflict",
                candidate_id=candidate_id,
                status=candidate.status,
            )
            raise TransitionConflict(candidate_id, candidate.status)
        return candidate

    async def approve(self, candidate_id: str, moderator_id: str) -> ApprovalOutcome:
        """Admit a pending candidate into the public directory."""
        if not moderator_id or not moderator_id.strip():
            raise ModeratorRequired()

        async with self._candidate_lock(candidate_id):
            candidate = await self._load_pending(candidate_id)

            verdict = await self._verdicts.get(candidate_id)
            if verdict is None:
                raise VerdictRequired(candidate_id)

            overridden = verdict.failed_critical_checks
            if overridden:
                logger.warning(
                    "moderation.approval_override",
                    candidate_id=candidate_id,
                    moderator_id=moderator_id,
                    overridden_checks=[str(check) for check in overridden],
                    notes=verdict.notes,
                )

            now = self._clock()
            entry = DirectoryEntry.from_candidate(candidate, created_at=now)

            # Phase 1: directory entry.
            await self._store.insert_entry(entry)

            # Phase 2: candidate status; undo phase 1 on failure or cancellation.
            try:
                approved = await self._store.transition_candidate(
                    candidate_id,
                    expected=CandidateStatus.PENDING,
                    status=CandidateStatus.APPROVED,
                    reviewed_by=moderator_id,
                    reviewed_at=now,
                    overridden_checks=overridden,
                    directory_entry_id=entry.id,
                )
            except BaseException as exc:
                await asyncio.shield(self._rollback_entry(entry, candidate_id, exc))
                raise

            await self._verdicts.discard(candidate_id)

        await self._audit(
            AuditAction.APPROVED,
            candidate_id,
            moderator_id,
            old_data={"status": str(candidate.status)},
            new_data={
                "status": str(approved.status),
                "directory_entry_id": entry.id,
                "overridden_checks": [str(check) for check in overridden],
                "verification_notes": verdict.notes,
            },
        )
        logger.info(
            "moderation.approved",
            candidate_id=candidate_id,
            entry_id=entry.id,
            moderator_id=moderator_id,
            overridden=bool(overridden),
        )
        return ApprovalOutcome(candidate=approved, entry=entry, overridden_checks=overridden)

    async def _rollback_entry(self, entry: DirectoryEntry, candidate_id: str, cause: BaseException) -> None:
        logger.error(
            "moderation.approval_rollback",
            candidate_id=candidate_id,
            entry_id=entry.id,
            cause=repr(cause),
        )
        try:
            await self._store.delete_entry(entry.id)
        except UpstreamUnavailable as exc:
            logger.error(
                "moderation.rollback_failed",
                candidate_id=candidate_id,
                entry_id=entry.id,
                exc_info=True,
            )
            raise UpstreamUnavailable(
                "approval rollback",
                f"directory entry {entry.id} left without approved candidate {candidate_id}",
            ) from exc

    async def reject(
        self,
        candidate_id: str,
        moderator_id: str,
        reason: str | None = None,
    ) -> CandidateService:
        """Close a pending candidate without adding it to the directory."""
        if not moderator_id or not moderator_id.strip():
            raise ModeratorRequired()

        reason = (reason or "").strip() or self._default_reason

        async with self._candidate_lock(candidate_id):
            candidate = await self._load_pending(candidate_id)
            rejected = await self._store.transition_candidate(
                candidate_id,
                expected=CandidateStatus.PENDING,
                status=CandidateStatus.REJECTED,
                reviewed_by=moderator_id,
                reviewed_at=self._clock(),
                rejection_reason=reason,
            )
            await self._verdicts.discard(candidate_id)

        await self._audit(
            AuditAction.REJECTED,
            candidate_id,
            moderator_id,
            old_data={"status": str(candidate.status)},
            new_data={"status": str(rejected.status), "reason": reason},
        )
        logger.info(
            "moderation.rejected",
            candidate_id=candidate_id,
            moderator_id=moderator_id,
            reason=reason,
        )
        return rejected

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    async def _audit(
        self,
        action: AuditAction,
        candidate_id: str,
        actor_id: str,
        old_data: dict | None = None,
        new_data: dict | None = None,
    ) -> None:
        # The transition itself already carries reviewer and timestamp;
        # a lost audit row is logged, not fatal.
        record = AuditRecord(
            action=action,
            entity_id=candidate_id,
            actor_id=actor_id,
            old_data=old_data,
            new_data=new_data,
            created_at=self._clock(),
        )
        try:
            await self._store.append_audit(record)
        except UpstreamUnavailable:
            logger.error(
                "moderation.audit_write_failed",
                action=str(action),
                candidate_id=candidate_id,
                exc_info=True,
            )
