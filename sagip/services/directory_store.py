"""Directory and pending-queue storage for Sagip.

The moderation core talks to storage only through the async
:class:`DirectoryStore` protocol.  :class:`InMemoryDirectoryStore` is
the process-local implementation used by default and in tests; a
production deployment plugs a database-backed store into the same
interface.

Candidate status changes go through :meth:`transition_candidate`, a
compare-and-set on the current status, so two moderators acting on the
same candidate can never both succeed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

import orjson
import structlog

from sagip.models.directory import AuditRecord, CandidateService, DirectoryEntry
from sagip.models.enums import CandidateStatus, VerificationCheck
from sagip.services.errors import CandidateNotFound, TransitionConflict, UpstreamUnavailable

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class DirectoryStore(Protocol):
    """Async storage contract consumed by the moderation core.

    Implementations raise :class:`UpstreamUnavailable` when the backing
    store cannot be reached.
    """

    # -- Candidates ------------------------------------------------------------

    async def add_candidate(self, candidate: CandidateService) -> CandidateService: ...

    async def get_candidate(self, candidate_id: str) -> CandidateService | None: ...

    async def list_candidates(self, status: CandidateStatus | None = None) -> list[CandidateService]: ...

    async def transition_candidate(
        self,
        candidate_id: str,
        *,
        expected: CandidateStatus,
        status: CandidateStatus,
        reviewed_by: str,
        reviewed_at: datetime,
        rejection_reason: str | None = None,
        overridden_checks: list[VerificationCheck] | None = None,
        directory_entry_id: str | None = None,
    ) -> CandidateService: ...

    # -- Directory -------------------------------------------------------------

    async def list_entries(self) -> list[DirectoryEntry]: ...

    async def insert_entry(self, entry: DirectoryEntry) -> DirectoryEntry: ...

    async def delete_entry(self, entry_id: str) -> None: ...

    # -- Audit -----------------------------------------------------------------

    async def append_audit(self, record: AuditRecord) -> None: ...

    async def list_audit(self, entity_id: str | None = None) -> list[AuditRecord]: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryDirectoryStore:
    """Dict-backed store guarded by a single :class:`asyncio.Lock`.

    Every method copies in and out (models are frozen), so callers
    never share mutable state with the store.
    """

    __slots__ = ("_audit", "_candidates", "_entries", "_lock")

    def __init__(self, entries: list[DirectoryEntry] | None = None) -> None:
        self._candidates: dict[str, CandidateService] = {}
        self._entries: dict[str, DirectoryEntry] = {entry.id: entry for entry in entries or []}
        self._audit: list[AuditRecord] = []
        self._lock = asyncio.Lock()

    # -- Candidates ------------------------------------------------------------

    async def add_candidate(self, candidate: CandidateService) -> CandidateService:
        async with self._lock:
            self._candidates[candidate.id] = candidate
        return candidate

    async def get_candidate(self, candidate_id: str) -> CandidateService | None:
        async with self._lock:
            return self._candidates.get(candidate_id)

    async def list_candidates(self, status: CandidateStatus | None = None) -> list[CandidateService]:
        async with self._lock:
            candidates = list(self._candidates.values())
        if status is not None:
            candidates = [c for c in candidates if c.status == status]
        return sorted(candidates, key=lambda c: c.submitted_at, reverse=True)

    async def transition_candidate(
        self,
        candidate_id: str,
        *,
        expected: CandidateStatus,
        status: CandidateStatus,
        reviewed_by: str,
        reviewed_at: datetime,
        rejection_reason: str | None = None,
        overridden_checks: list[VerificationCheck] | None = None,
        directory_entry_id: str | None = None,
    ) -> CandidateService:
        async with self._lock:
            current = self._candidates.get(candidate_id)
            if current is None:
                raise CandidateNotFound(candidate_id)
            if current.status != expected:
                raise TransitionConflict(candidate_id, current.status)

            updated = current.model_copy(
                update={
                    "status": status,
                    "reviewed_by": reviewed_by,
                    "reviewed_at": reviewed_at,
                    "rejection_reason": rejection_reason,
                    "overridden_checks": list(overridden_checks or []),
                    "directory_entry_id": directory_entry_id,
                }
            )
            self._candidates[candidate_id] = updated
            return updated

    # -- Directory -------------------------------------------------------------

    async def list_entries(self) -> list[DirectoryEntry]:
        async with self._lock:
            return list(self._entries.values())

    async def insert_entry(self, entry: DirectoryEntry) -> DirectoryEntry:
        async with self._lock:
            self._entries[entry.id] = entry
        return entry

    async def delete_entry(self, entry_id: str) -> None:
        async with self._lock:
            self._entries.pop(entry_id, None)

    # -- Audit -----------------------------------------------------------------

    async def append_audit(self, record: AuditRecord) -> None:
        async with self._lock:
            self._audit.append(record)

    async def list_audit(self, entity_id: str | None = None) -> list[AuditRecord]:
        async with self._lock:
            records = list(self._audit)
        if entity_id is not None:
            records = [r for r in records if r.entity_id == entity_id]
        return records


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


def load_seed_entries(path: str | Path) -> list[DirectoryEntry]:
    """Read approved directory entries from a JSON array file.

    Used to preload national hotlines and previously approved services
    into a fresh in-memory store.
    """
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise UpstreamUnavailable("seed", str(exc)) from exc

    try:
        rows = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise UpstreamUnavailable("seed", f"invalid JSON in {path}") from exc

    entries = [DirectoryEntry.model_validate(row) for row in rows]
    logger.info("directory.seed_loaded", path=str(path), count=len(entries))
    return entries
