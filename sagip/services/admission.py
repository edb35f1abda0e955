"""Fixed-window admission limiter for write-heavy endpoints.

Each ``(rate-limit class, identifier)`` pair owns one counter that
resets when its window expires.  This trades the smoothness of a
sliding log for O(1) memory per caller and O(1) checks, which is enough
for low-stakes submission and moderation paths.

The limiter is an explicitly constructed object (owned by the app
lifespan) with an injectable clock, so tests can drive windows
deterministically.  A background sweep evicts expired counters so
memory stays bounded regardless of how many distinct callers have
ever been seen.
"""

from __future__ import annotations

import asyncio
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from config.rate_limits import RateLimit
from sagip.services.errors import AdmissionDenied

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# Keys examined per lock acquisition during a sweep.
_SWEEP_BATCH_SIZE = 500


@dataclass(slots=True)
class RateLimitEntry:
    """Counter state for one identifier within one window."""

    count: int
    reset_at: float


@dataclass(frozen=True, slots=True)
class AdmissionResult:
    """Outcome of a single admission check."""

    allowed: bool
    remaining: int
    reset_at: float
    limit: RateLimit


class AdmissionLimiter:
    """Per-identifier fixed-window request counter.

    Parameters
    ----------
    clock:
        Returns the current time in epoch seconds.  Defaults to
        :func:`time.time`; tests inject a controllable clock.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[tuple[str, str], RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def size(self) -> int:
        """Number of live counters (including expired ones not yet swept)."""
        return len(self._entries)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def check(self, identifier: str, limit: RateLimit) -> AdmissionResult:
        """Count one request for *identifier* against *limit*.

        A denied request leaves the counter untouched and reports the
        existing ``reset_at`` so the caller can compute a retry delay.
        """
        key = (limit.name, identifier)

        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is None or entry.reset_at < now:
                entry = RateLimitEntry(count=1, reset_at=now + limit.window_seconds)
                self._entries[key] = entry
                return AdmissionResult(
                    allowed=True,
                    remaining=limit.max_requests - 1,
                    reset_at=entry.reset_at,
                    limit=limit,
                )

            if entry.count >= limit.max_requests:
                return AdmissionResult(
                    allowed=False,
                    remaining=0,
                    reset_at=entry.reset_at,
                    limit=limit,
                )

            entry.count += 1
            return AdmissionResult(
                allowed=True,
                remaining=limit.max_requests - entry.count,
                reset_at=entry.reset_at,
                limit=limit,
            )

    def enforce(self, identifier: str, limit: RateLimit) -> AdmissionResult:
        """Like :meth:`check` but raises :class:`AdmissionDenied` on denial."""
        result = self.check(identifier, limit)
        if not result.allowed:
            retry_after = self.retry_after(result)
            logger.warning(
                "admission.denied",
                identifier=identifier,
                rate_class=limit.name,
                max_requests=limit.max_requests,
                retry_after=retry_after,
            )
            raise AdmissionDenied(identifier, result, retry_after)
        return result

    def retry_after(self, result: AdmissionResult) -> int:
        """Whole seconds until the window of *result* resets (at least 1)."""
        return max(1, math.ceil(result.reset_at - self._clock()))

    # ------------------------------------------------------------------
    # Reclamation
    # ------------------------------------------------------------------

    def sweep(self) -> int:
        """Evict every counter whose window has already expired.

        Keys are examined in batches, re-acquiring the lock for each
        batch so concurrent checks never wait on a full scan.
        """
        with self._lock:
            keys = list(self._entries)

        removed = 0
        for start in range(0, len(keys), _SWEEP_BATCH_SIZE):
            batch = keys[start:start + _SWEEP_BATCH_SIZE]
            with self._lock:
                now = self._clock()
                for key in batch:
                    entry = self._entries.get(key)
                    if entry is not None and entry.reset_at < now:
                        del self._entries[key]
                        removed += 1

        if removed:
            logger.debug("admission.sweep", removed=removed, remaining=len(self._entries))
        return removed

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep every *interval_seconds* until cancelled."""
        logger.info("admission.sweeper_started", interval_seconds=interval_seconds)
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                self.sweep()
        except asyncio.CancelledError:
            logger.info("admission.sweeper_cancelled")
            raise

    def start_sweeper(self, interval_seconds: float) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self.run_sweeper(interval_seconds))

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to finish."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await asyncio.wait_for(self._sweeper, timeout=5.0)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
        self._sweeper = None
        logger.info("admission.sweeper_stopped")
