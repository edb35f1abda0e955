"""Near-duplicate detection against the approved directory.

Three independent predicates are checked against one snapshot of the
approved entries; any single one flags a likely duplicate:

1. **name** -- the candidate name occurs, case-insensitively, inside an
   existing entry's name;
2. **phone** -- exact match after phone normalisation;
3. **proximity** -- both latitude and longitude differ by less than a
   fixed threshold (0.001 degrees, roughly 100 m).

Results are advisory for a moderator, so false positives (a different
service right next door) are acceptable.  Matches are reported in the
order above; the overall answer is their logical OR and does not
depend on that order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from sagip.models.directory import DirectoryEntry, DuplicateMatch
from sagip.models.enums import DuplicateReason
from sagip.services.errors import UpstreamUnavailable
from sagip.services.verification.validators import normalize_phone

if TYPE_CHECKING:
    from sagip.services.directory_store import DirectoryStore

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_PROXIMITY_DEGREES = 0.001  # ~100 m
DEFAULT_READ_ATTEMPTS = 3


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def name_matches(candidate_name: str, entry: DirectoryEntry) -> bool:
    needle = candidate_name.strip().casefold()
    if not needle:
        return False
    return needle in entry.name.casefold()


def phone_matches(candidate_phone: str, entry: DirectoryEntry) -> bool:
    normalized = normalize_phone(candidate_phone)
    if not normalized:
        return False
    return normalized == normalize_phone(entry.phone)


def is_nearby(lat: float, lng: float, entry: DirectoryEntry, threshold: float) -> bool:
    return abs(entry.latitude - lat) < threshold and abs(entry.longitude - lng) < threshold


# ---------------------------------------------------------------------------
# DuplicateDetector
# ---------------------------------------------------------------------------


class DuplicateDetector:
    """Checks a candidate against the approved directory.

    Parameters
    ----------
    store:
        Directory store providing the approved entries.
    proximity_degrees:
        Per-axis coordinate threshold for the proximity predicate.
    read_attempts:
        Attempts made to read the directory before giving up with
        :class:`UpstreamUnavailable`.
    """

    def __init__(
        self,
        store: DirectoryStore,
        proximity_degrees: float = DEFAULT_PROXIMITY_DEGREES,
        read_attempts: int = DEFAULT_READ_ATTEMPTS,
    ) -> None:
        self._store = store
        self._proximity = proximity_degrees
        self._read_attempts = read_attempts

    async def _load_entries(self) -> list[DirectoryEntry]:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(UpstreamUnavailable),
            stop=stop_after_attempt(self._read_attempts),
            wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
            reraise=True,
        ):
            with attempt:
                return await self._store.list_entries()
        return []  # pragma: no cover - AsyncRetrying either returns or reraises

    async def find_matches(
        self,
        name: str,
        phone: str,
        latitude: float,
        longitude: float,
    ) -> list[DuplicateMatch]:
        """Return every match, grouped by predicate in priority order.

        Raises :class:`UpstreamUnavailable` if the directory cannot be
        read; callers must not treat that as "no duplicate".
        """
        entries = await self._load_entries()
        if not entries:
            return []

        by_name: list[DuplicateMatch] = []
        by_phone: list[DuplicateMatch] = []
        by_location: list[DuplicateMatch] = []

        for entry in entries:
            if name_matches(name, entry):
                by_name.append(_match(DuplicateReason.NAME, entry))
            if phone_matches(phone, entry):
                by_phone.append(_match(DuplicateReason.PHONE, entry))
            if is_nearby(latitude, longitude, entry, self._proximity):
                by_location.append(_match(DuplicateReason.PROXIMITY, entry))

        matches = by_name + by_phone + by_location
        if matches:
            logger.info(
                "duplicates.found",
                name=name,
                name_matches=len(by_name),
                phone_matches=len(by_phone),
                proximity_matches=len(by_location),
            )
        return matches

    async def find_duplicate(
        self,
        name: str,
        phone: str,
        latitude: float,
        longitude: float,
    ) -> bool:
        """True when at least one existing entry looks like the candidate."""
        return bool(await self.find_matches(name, phone, latitude, longitude))


def _match(reason: DuplicateReason, entry: DirectoryEntry) -> DuplicateMatch:
    return DuplicateMatch(reason=reason, entry_id=entry.id, entry_name=entry.name)
