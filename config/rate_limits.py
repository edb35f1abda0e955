"""Named admission-control classes shared across the deployment.

Each ``RateLimit`` describes how many requests a single caller may make
within one fixed window.  Classes are selected per endpoint, never per
request payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

__all__ = [
    "RateLimit",
    "RATE_LIMITS",
    "EMERGENCY",
    "STANDARD",
    "AUTH",
    "READONLY",
    "get_rate_limit",
]


@dataclass(frozen=True, slots=True)
class RateLimit:
    """Immutable budget for one class of endpoints."""

    name: str
    """Class name; also namespaces the limiter's counters."""

    max_requests: int
    """Requests admitted per window for a single identifier."""

    window_seconds: float
    """Length of the fixed admission window."""


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

# Strict limit for emergency submission endpoints
EMERGENCY: Final = RateLimit(name="emergency", max_requests=10, window_seconds=60.0)
# Standard limit for authenticated endpoints
STANDARD: Final = RateLimit(name="standard", max_requests=60, window_seconds=60.0)
# Strict limit for auth-related endpoints
AUTH: Final = RateLimit(name="auth", max_requests=5, window_seconds=300.0)
# Lenient limit for read-only endpoints
READONLY: Final = RateLimit(name="readonly", max_requests=200, window_seconds=60.0)

RATE_LIMITS: Final[dict[str, RateLimit]] = {
    limit.name: limit for limit in (EMERGENCY, STANDARD, AUTH, READONLY)
}


def get_rate_limit(name: str) -> RateLimit:
    """Return the named class, falling back to ``standard`` for unknown names."""
    return RATE_LIMITS.get(name, STANDARD)
