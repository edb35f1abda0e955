"""Verification engine for community-submitted emergency services.

Scores a :class:`CandidateService` on four independent checks and
returns a :class:`VerificationVerdict` for the moderator:

+-------------------------+------------------------------------------+
| Check                   | Passes when                              |
+-------------------------+------------------------------------------+
| ``phone_valid``         | national mobile or landline format       |
| ``address_plausible``   | address present and not a placeholder    |
| ``coordinates_in_bounds`` | inside the region's bounding box       |
| ``no_duplicate_found``  | no name, phone or proximity match        |
+-------------------------+------------------------------------------+

All four fields share one polarity (``True`` = passed).  The duplicate
detector answers the opposite question, so its result goes through
:func:`no_duplicate_from_detection` exactly once.

Determinism
-----------
The verdict depends only on the candidate and the directory snapshot;
it carries no timestamps, so scoring the same candidate twice against
an unchanged directory yields equal verdicts.

Failure policy
--------------
``verify`` never raises.  If the directory cannot be read, the
duplicate check fails (it is never reported as "no duplicate").  Any
other unexpected error produces a verdict with every check failed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from config.regions import PHILIPPINES, RegionConfig
from sagip.models.directory import DuplicateMatch, VerificationVerdict
from sagip.models.enums import VerificationCheck
from sagip.services.errors import UpstreamUnavailable
from sagip.services.verification.validators import (
    DEFAULT_ADDRESS_MIN_LENGTH,
    is_address_plausible,
    validate_coordinates,
    validate_phone,
)

if TYPE_CHECKING:
    from sagip.models.directory import CandidateService
    from sagip.services.verification.duplicates import DuplicateDetector

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------

ALL_PASSED_NOTE = "All checks passed"
VERIFICATION_FAILED_NOTE = "Verification failed"
DUPLICATE_UNAVAILABLE_NOTE = "Duplicate check unavailable"
_NOTE_SEPARATOR = "; "


def no_duplicate_from_detection(duplicate_found: bool | None) -> bool:
    """Flip the detector's answer into verdict polarity.

    ``None`` means the detector could not run; that is a failed check,
    never a pass.
    """
    if duplicate_found is None:
        return False
    return not duplicate_found


def build_notes(
    verdict_checks: dict[VerificationCheck, bool],
    region: RegionConfig,
    duplicate_checked: bool = True,
) -> str:
    """Name every failing check in the stable phone/address/coordinates/duplicate order."""
    messages = {
        VerificationCheck.PHONE: "Invalid phone format",
        VerificationCheck.ADDRESS: "Address incomplete or missing",
        VerificationCheck.COORDINATES: f"Coordinates outside {region.name}",
        VerificationCheck.DUPLICATE: (
            "Possible duplicate found" if duplicate_checked else DUPLICATE_UNAVAILABLE_NOTE
        ),
    }
    failing = [messages[check] for check in VerificationCheck if not verdict_checks[check]]
    if not failing:
        return ALL_PASSED_NOTE
    return _NOTE_SEPARATOR.join(failing)


# ---------------------------------------------------------------------------
# VerificationEngine
# ---------------------------------------------------------------------------


class VerificationEngine:
    """Composes the field checks and the duplicate detector into a verdict.

    Parameters
    ----------
    detector:
        Duplicate detector bound to the approved directory.
    region:
        Deployment region (phone conventions and bounding box).
    address_min_length:
        Addresses must be strictly longer than this to be plausible.
    """

    def __init__(
        self,
        detector: DuplicateDetector,
        region: RegionConfig = PHILIPPINES,
        address_min_length: int = DEFAULT_ADDRESS_MIN_LENGTH,
    ) -> None:
        self._detector = detector
        self._region = region
        self._address_min_length = address_min_length

    @property
    def region(self) -> RegionConfig:
        return self._region

    async def verify(self, candidate: CandidateService) -> VerificationVerdict:
        """Score *candidate*; always returns a verdict."""
        try:
            return await self._score(candidate)
        except Exception:
            logger.error(
                "verification.failed",
                candidate_id=getattr(candidate, "id", None),
                exc_info=True,
            )
            return VerificationVerdict(
                candidate_id=str(getattr(candidate, "id", "")),
                phone_valid=False,
                address_plausible=False,
                coordinates_in_bounds=False,
                no_duplicate_found=False,
                notes=VERIFICATION_FAILED_NOTE,
            )

    async def _score(self, candidate: CandidateService) -> VerificationVerdict:
        phone_valid = validate_phone(candidate.phone, self._region)
        address_plausible = is_address_plausible(candidate.address, self._address_min_length)
        coordinates_in_bounds = validate_coordinates(
            candidate.latitude, candidate.longitude, self._region.bounds
        )

        matches: list[DuplicateMatch] = []
        duplicate_found: bool | None
        try:
            matches = await self._detector.find_matches(
                candidate.name,
                candidate.phone,
                candidate.latitude,
                candidate.longitude,
            )
            duplicate_found = bool(matches)
        except UpstreamUnavailable:
            logger.warning(
                "verification.duplicate_check_unavailable",
                candidate_id=candidate.id,
                exc_info=True,
            )
            duplicate_found = None

        checks = {
            VerificationCheck.PHONE: phone_valid,
            VerificationCheck.ADDRESS: address_plausible,
            VerificationCheck.COORDINATES: coordinates_in_bounds,
            VerificationCheck.DUPLICATE: no_duplicate_from_detection(duplicate_found),
        }
        verdict = VerificationVerdict(
            candidate_id=candidate.id,
            phone_valid=phone_valid,
            address_plausible=address_plausible,
            coordinates_in_bounds=coordinates_in_bounds,
            no_duplicate_found=checks[VerificationCheck.DUPLICATE],
            notes=build_notes(checks, self._region, duplicate_checked=duplicate_found is not None),
            duplicate_matches=matches,
        )

        logger.info(
            "verification.complete",
            candidate_id=candidate.id,
            failed_checks=[str(check) for check in verdict.failed_checks],
        )
        return verdict
