"""Candidate verification for the Sagip directory.

Combines structural field checks (phone format, address plausibility,
regional bounding box) with near-duplicate detection against the
approved directory into a single advisory verdict.

Public API::

    from sagip.services.verification import (
        DuplicateDetector,
        VerificationEngine,
        validate_coordinates,
        validate_phone,
    )
"""

from __future__ import annotations

from sagip.services.verification.duplicates import DuplicateDetector
from sagip.services.verification.engine import VerificationEngine, no_duplicate_from_detection
from sagip.services.verification.validators import (
    is_address_plausible,
    normalize_phone,
    validate_coordinates,
    validate_phone,
)

__all__ = [
    "DuplicateDetector",
    "VerificationEngine",
    "is_address_plausible",
    "no_duplicate_from_detection",
    "normalize_phone",
    "validate_coordinates",
    "validate_phone",
]
