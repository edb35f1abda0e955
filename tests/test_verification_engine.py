"""Tests for the VerificationEngine.

Covers verdict polarity, note composition, determinism, and the
behaviour when the directory cannot be read or scoring blows up.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from config.regions import PHILIPPINES, GeoBounds, RegionConfig
from sagip.models.directory import CandidateService, DirectoryEntry
from sagip.models.enums import DuplicateReason, ServiceCategory, VerificationCheck
from sagip.services.directory_store import InMemoryDirectoryStore
from sagip.services.errors import UpstreamUnavailable
from sagip.services.verification.duplicates import DuplicateDetector
from sagip.services.verification.engine import (
    ALL_PASSED_NOTE,
    DUPLICATE_UNAVAILABLE_NOTE,
    VERIFICATION_FAILED_NOTE,
    VerificationEngine,
    build_notes,
    no_duplicate_from_detection,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _candidate(**overrides: object) -> CandidateService:
    fields: dict[str, object] = {
        "name": "City Hospital",
        "category": ServiceCategory.MEDICAL,
        "phone": "09171234567",
        "address": "123 Rizal Avenue, Manila",
        "city": "Manila",
        "latitude": 14.5995,
        "longitude": 120.9842,
        "submitted_by": "user-1",
    }
    fields.update(overrides)
    return CandidateService(**fields)


def _entry(**overrides: object) -> DirectoryEntry:
    fields: dict[str, object] = {
        "name": "Philippine General Hospital",
        "category": ServiceCategory.MEDICAL,
        "phone": "0285548400",
        "address": "Taft Avenue, Ermita, Manila",
        "city": "Manila",
        "latitude": 14.5780,
        "longitude": 120.9856,
    }
    fields.update(overrides)
    return DirectoryEntry(**fields)


def _engine(*entries: DirectoryEntry) -> VerificationEngine:
    return VerificationEngine(DuplicateDetector(InMemoryDirectoryStore(entries=list(entries))))


# ---------------------------------------------------------------------------
# Polarity
# ---------------------------------------------------------------------------


class TestPolarity:
    def test_detection_maps_to_pass_fail(self) -> None:
        assert no_duplicate_from_detection(False) is True
        assert no_duplicate_from_detection(True) is False

    def test_unknown_detection_is_a_failure(self) -> None:
        assert no_duplicate_from_detection(None) is False, "An unchecked duplicate must never pass"

    async def test_no_duplicate_passes_check(self) -> None:
        verdict = await _engine().verify(_candidate())
        assert verdict.no_duplicate_found is True

    async def test_duplicate_fails_check(self) -> None:
        verdict = await _engine(_entry(name="Manila City Hospital")).verify(_candidate())
        assert verdict.no_duplicate_found is False
        assert [m.reason for m in verdict.duplicate_matches] == [DuplicateReason.NAME]


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


class TestNotes:
    def test_all_passed(self) -> None:
        checks = {check: True for check in VerificationCheck}
        assert build_notes(checks, PHILIPPINES) == ALL_PASSED_NOTE == "All checks passed"

    def test_failures_in_fixed_order(self) -> None:
        checks = {check: False for check in VerificationCheck}
        assert build_notes(checks, PHILIPPINES) == (
            "Invalid phone format; Address incomplete or missing; "
            "Coordinates outside Philippines; Possible duplicate found"
        )

    def test_unchecked_duplicate_note(self) -> None:
        checks = {check: True for check in VerificationCheck}
        checks[VerificationCheck.DUPLICATE] = False
        assert build_notes(checks, PHILIPPINES, duplicate_checked=False) == DUPLICATE_UNAVAILABLE_NOTE

    def test_region_name_in_coordinates_note(self) -> None:
        region = RegionConfig(
            code="XX",
            name="Elsewhere",
            calling_code="+99",
            bounds=GeoBounds(min_lat=0, max_lat=1, min_lng=0, max_lng=1),
        )
        checks = {check: True for check in VerificationCheck}
        checks[VerificationCheck.COORDINATES] = False
        assert build_notes(checks, region) == "Coordinates outside Elsewhere"


# ---------------------------------------------------------------------------
# VerificationEngine.verify
# ---------------------------------------------------------------------------


class TestVerify:
    async def test_clean_candidate_passes_everything(self) -> None:
        verdict = await _engine(_entry()).verify(_candidate())
        assert verdict.all_passed is True
        assert verdict.notes == ALL_PASSED_NOTE
        assert verdict.candidate_id

    async def test_bad_phone_and_short_address(self) -> None:
        verdict = await _engine().verify(_candidate(phone="12345", address="Manila"))
        assert verdict.phone_valid is False
        assert verdict.address_plausible is False
        assert verdict.coordinates_in_bounds is True
        assert verdict.no_duplicate_found is True
        assert verdict.notes == "Invalid phone format; Address incomplete or missing"

    async def test_missing_address(self) -> None:
        verdict = await _engine().verify(_candidate(address=None))
        assert verdict.address_plausible is False
        assert verdict.failed_checks == [VerificationCheck.ADDRESS]
        assert verdict.failed_critical_checks == [], "Address is not a critical check"

    async def test_coordinates_outside_region(self) -> None:
        verdict = await _engine().verify(_candidate(latitude=35.6762, longitude=139.6503))
        assert verdict.coordinates_in_bounds is False
        assert verdict.notes == "Coordinates outside Philippines"
        assert verdict.failed_critical_checks == [VerificationCheck.COORDINATES]

    async def test_end_to_end_duplicate_phone(self) -> None:
        existing = _entry(name="St. Luke's", phone="0917 123 4567", latitude=10.0, longitude=123.0)
        verdict = await _engine(existing).verify(_candidate())
        assert verdict.no_duplicate_found is False
        assert verdict.notes == "Possible duplicate found"
        assert verdict.duplicate_matches[0].entry_id == existing.id

    async def test_verdict_is_deterministic(self) -> None:
        engine = _engine(_entry())
        candidate = _candidate(phone="bad")
        first = await engine.verify(candidate)
        second = await engine.verify(candidate)
        assert first == second, "Same candidate and directory should yield equal verdicts"

    def test_region_property(self) -> None:
        assert _engine().region is PHILIPPINES


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestVerifyFailures:
    async def test_unreadable_directory_fails_duplicate_check_only(self) -> None:
        detector = AsyncMock(spec=DuplicateDetector)
        detector.find_matches.side_effect = UpstreamUnavailable("list_entries")
        engine = VerificationEngine(detector)

        verdict = await engine.verify(_candidate())

        assert verdict.phone_valid is True
        assert verdict.address_plausible is True
        assert verdict.coordinates_in_bounds is True
        assert verdict.no_duplicate_found is False, "Unavailable duplicate check must not pass"
        assert verdict.notes == DUPLICATE_UNAVAILABLE_NOTE

    async def test_unexpected_error_fails_every_check(self) -> None:
        detector = AsyncMock(spec=DuplicateDetector)
        detector.find_matches.side_effect = RuntimeError("boom")
        engine = VerificationEngine(detector)

        verdict = await engine.verify(_candidate())

        assert verdict.check_results == {check: False for check in VerificationCheck}
        assert verdict.notes == VERIFICATION_FAILED_NOTE

    @pytest.mark.parametrize("phone", ["", "not a phone", "+63 917 123 4567 8"])
    async def test_malformed_phone_never_raises(self, phone: str) -> None:
        verdict = await _engine().verify(_candidate(phone=phone))
        assert verdict.phone_valid is False
