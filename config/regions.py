"""Deployment regions for directory verification.

A ``RegionConfig`` bundles the national conventions the field checks
depend on: the country calling code used by phone numbers and the
bounding box that every directory coordinate must fall inside.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

__all__ = [
    "GeoBounds",
    "RegionConfig",
    "REGIONS",
    "PHILIPPINES",
    "get_region",
]


@dataclass(frozen=True, slots=True)
class GeoBounds:
    """Inclusive latitude/longitude box."""

    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float


@dataclass(frozen=True, slots=True)
class RegionConfig:
    """Immutable descriptor for a deployment region."""

    code: str
    """ISO 3166-1 alpha-2 code."""

    name: str
    """Display name used in moderator-facing notes."""

    calling_code: str
    """Country calling code including the leading ``+``."""

    bounds: GeoBounds
    """Box enclosing the whole national territory."""


# ---------------------------------------------------------------------------
# Region registry
# ---------------------------------------------------------------------------

PHILIPPINES: Final = RegionConfig(
    code="PH",
    name="Philippines",
    calling_code="+63",
    bounds=GeoBounds(min_lat=4.5, max_lat=21.5, min_lng=116.0, max_lng=127.0),
)

REGIONS: Final[dict[str, RegionConfig]] = {
    PHILIPPINES.code: PHILIPPINES,
}


def get_region(code: str) -> RegionConfig:
    """Look up a region by code (case-insensitive).

    Raises ``KeyError`` for unknown codes so a misconfigured deployment
    fails at startup instead of silently validating against the wrong box.
    """
    return REGIONS[code.upper()]
