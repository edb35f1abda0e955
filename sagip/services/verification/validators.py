"""Structural field checks for candidate directory entries.

Every function here is total: any input, including ``None``, non-string
values, NaN or infinities, yields ``False`` rather than an exception.
"""

from __future__ import annotations

import math
import re
from functools import lru_cache

from config.regions import PHILIPPINES, GeoBounds, RegionConfig

DEFAULT_REGION: RegionConfig = PHILIPPINES
DEFAULT_ADDRESS_MIN_LENGTH = 10

_PHONE_SEPARATORS = re.compile(r"[\s-]")


def normalize_phone(raw: object) -> str:
    """Strip whitespace and hyphens; non-strings normalise to ``""``."""
    if not isinstance(raw, str):
        return ""
    return _PHONE_SEPARATORS.sub("", raw)


@lru_cache(maxsize=8)
def _phone_patterns(calling_code: str) -> tuple[re.Pattern[str], re.Pattern[str]]:
    prefix = f"(?:{re.escape(calling_code)}|0)?"
    mobile = re.compile(rf"{prefix}9[0-9]{{9}}")
    landline = re.compile(rf"{prefix}[2-9][0-9]{{7,8}}")
    return mobile, landline


def validate_phone(raw: object, region: RegionConfig = DEFAULT_REGION) -> bool:
    """Accept mobile or landline numbers in the region's national format.

    Mobile: optional country code or trunk ``0``, then a 9-prefixed
    10-digit subscriber number.  Landline: optional prefix, area code
    2–9, then 7–8 digits.
    """
    phone = normalize_phone(raw)
    if not phone:
        return False
    mobile, landline = _phone_patterns(region.calling_code)
    return bool(mobile.fullmatch(phone) or landline.fullmatch(phone))


def _as_coordinate(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


def validate_coordinates(
    lat: object,
    lng: object,
    bounds: GeoBounds = DEFAULT_REGION.bounds,
) -> bool:
    """True when both values fall inside *bounds* (inclusive on every edge)."""
    latitude = _as_coordinate(lat)
    longitude = _as_coordinate(lng)
    if latitude is None or longitude is None:
        return False
    return (
        bounds.min_lat <= latitude <= bounds.max_lat
        and bounds.min_lng <= longitude <= bounds.max_lng
    )


def is_address_plausible(address: object, min_length: int = DEFAULT_ADDRESS_MIN_LENGTH) -> bool:
    # Rejects empty and placeholder addresses only; no geocoding.
    if not isinstance(address, str):
        return False
    return len(address.strip()) > min_length
