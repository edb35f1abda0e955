"""Tests for near-duplicate detection against the approved directory."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from sagip.models.directory import DirectoryEntry
from sagip.models.enums import DuplicateReason, ServiceCategory
from sagip.services.directory_store import InMemoryDirectoryStore
from sagip.services.errors import UpstreamUnavailable
from sagip.services.verification.duplicates import (
    DuplicateDetector,
    is_nearby,
    name_matches,
    phone_matches,
)


def _entry(
    name: str = "Manila City Fire Station",
    phone: str = "02-8527-3627",
    latitude: float = 14.5995,
    longitude: float = 120.9842,
) -> DirectoryEntry:
    return DirectoryEntry(
        name=name,
        category=ServiceCategory.FIRE,
        phone=phone,
        address="Sta. Cruz, Manila",
        city="Manila",
        latitude=latitude,
        longitude=longitude,
    )


def _detector(*entries: DirectoryEntry) -> DuplicateDetector:
    return DuplicateDetector(InMemoryDirectoryStore(entries=list(entries)))


# -----------------------------------------------------------------------
# Predicates
# -----------------------------------------------------------------------


class TestPredicates:
    def test_name_is_case_insensitive_substring(self) -> None:
        entry = _entry(name="Manila City Fire Station")
        assert name_matches("city fire", entry) is True
        assert name_matches("MANILA CITY FIRE STATION", entry) is True

    def test_name_match_is_one_directional(self) -> None:
        entry = _entry(name="Fire Station")
        assert name_matches("Manila City Fire Station", entry) is False, (
            "Only an existing name containing the candidate name counts"
        )

    def test_blank_name_never_matches(self) -> None:
        assert name_matches("   ", _entry()) is False

    def test_phone_matches_after_normalisation(self) -> None:
        entry = _entry(phone="0917-123-4567")
        assert phone_matches("0917 123 4567", entry) is True
        assert phone_matches("09171234568", entry) is False

    def test_empty_phone_never_matches(self) -> None:
        assert phone_matches("", _entry(phone="")) is False

    def test_proximity_is_strict_per_axis(self) -> None:
        entry = _entry(latitude=14.0, longitude=121.0)
        assert is_nearby(14.0005, 121.0005, entry, 0.001) is True
        assert is_nearby(14.002, 121.0, entry, 0.001) is False
        assert is_nearby(14.0, 121.002, entry, 0.001) is False
        assert is_nearby(14.0, 121.0 + 0.0015, entry, 0.001) is False


# -----------------------------------------------------------------------
# DuplicateDetector
# -----------------------------------------------------------------------


class TestDuplicateDetector:
    async def test_empty_directory_has_no_duplicates(self) -> None:
        detector = _detector()
        assert await detector.find_duplicate("Anything", "09171234567", 14.6, 121.0) is False

    async def test_name_alone_flags_duplicate(self) -> None:
        detector = _detector(_entry())
        matches = await detector.find_matches("Fire Station", "09998887777", 10.0, 123.0)
        assert [m.reason for m in matches] == [DuplicateReason.NAME]

    async def test_phone_alone_flags_duplicate(self) -> None:
        detector = _detector(_entry(phone="02 8527 3627"))
        matches = await detector.find_matches("Totally Different", "02-8527-3627", 10.0, 123.0)
        assert [m.reason for m in matches] == [DuplicateReason.PHONE]

    async def test_proximity_alone_flags_duplicate(self) -> None:
        detector = _detector(_entry(latitude=14.5995, longitude=120.9842))
        matches = await detector.find_matches("Other Clinic", "09998887777", 14.5999, 120.9840)
        assert [m.reason for m in matches] == [DuplicateReason.PROXIMITY]

    async def test_no_predicate_means_no_duplicate(self) -> None:
        detector = _detector(_entry())
        assert await detector.find_duplicate("Cebu Rescue", "09998887777", 10.3157, 123.8854) is False

    async def test_matches_are_reported_in_priority_order(self) -> None:
        near = _entry(name="Barangay Health Center", phone="0321234567", latitude=10.0, longitude=123.0)
        same_phone = _entry(name="Clinic", phone="09171234567", latitude=5.0, longitude=117.0)
        same_name = _entry(name="Cebu Rescue Unit", phone="0329999999", latitude=20.0, longitude=126.0)
        detector = _detector(near, same_phone, same_name)

        matches = await detector.find_matches("Rescue", "0917-123-4567", 10.0002, 123.0002)

        assert [m.reason for m in matches] == [
            DuplicateReason.NAME,
            DuplicateReason.PHONE,
            DuplicateReason.PROXIMITY,
        ]
        assert [m.entry_id for m in matches] == [same_name.id, same_phone.id, near.id]

    async def test_one_entry_can_match_several_predicates(self) -> None:
        entry = _entry()
        detector = _detector(entry)
        matches = await detector.find_matches(entry.name, entry.phone, entry.latitude, entry.longitude)
        assert len(matches) == 3
        assert {m.entry_id for m in matches} == {entry.id}

    async def test_result_does_not_depend_on_directory_order(self) -> None:
        a = _entry(name="Alpha Hospital", phone="0321111111", latitude=9.0, longitude=122.0)
        b = _entry(name="Beta Hospital", phone="0322222222", latitude=11.0, longitude=124.0)
        forward = await _detector(a, b).find_duplicate("Beta", "000", 0.0, 0.0)
        backward = await _detector(b, a).find_duplicate("Beta", "000", 0.0, 0.0)
        assert forward is backward is True


class TestDuplicateDetectorUpstream:
    async def test_transient_failure_is_retried(self) -> None:
        store = AsyncMock()
        store.list_entries.side_effect = [UpstreamUnavailable("list_entries"), [_entry()]]
        detector = DuplicateDetector(store, read_attempts=3)

        assert await detector.find_duplicate("Fire Station", "000", 0.0, 0.0) is True
        assert store.list_entries.await_count == 2

    async def test_persistent_failure_raises(self) -> None:
        store = AsyncMock()
        store.list_entries.side_effect = UpstreamUnavailable("list_entries", "connection refused")
        detector = DuplicateDetector(store, read_attempts=2)

        with pytest.raises(UpstreamUnavailable):
            await detector.find_duplicate("Fire Station", "000", 0.0, 0.0)
        assert store.list_entries.await_count == 2, "Should give up after the configured attempts"

    async def test_other_errors_are_not_retried(self) -> None:
        store = AsyncMock()
        store.list_entries.side_effect = RuntimeError("bug")
        detector = DuplicateDetector(store, read_attempts=3)

        with pytest.raises(RuntimeError):
            await detector.find_duplicate("Fire Station", "000", 0.0, 0.0)
        assert store.list_entries.await_count == 1
