"""Tests for the fixed-window admission limiter and rate-limit registry."""

from __future__ import annotations

import asyncio
import threading

import pytest

from config.rate_limits import AUTH, EMERGENCY, READONLY, STANDARD, RateLimit, get_rate_limit
from sagip.services.admission import AdmissionLimiter
from sagip.services.errors import AdmissionDenied


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> AdmissionLimiter:
    return AdmissionLimiter(clock=clock)


# -----------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------


class TestRateLimitRegistry:
    def test_named_classes(self) -> None:
        assert (EMERGENCY.max_requests, EMERGENCY.window_seconds) == (10, 60.0)
        assert (STANDARD.max_requests, STANDARD.window_seconds) == (60, 60.0)
        assert (AUTH.max_requests, AUTH.window_seconds) == (5, 300.0)
        assert (READONLY.max_requests, READONLY.window_seconds) == (200, 60.0)

    def test_lookup_by_name(self) -> None:
        assert get_rate_limit("auth") is AUTH

    def test_unknown_name_falls_back_to_standard(self) -> None:
        assert get_rate_limit("nope") is STANDARD, "Unknown classes should use the standard budget"


# -----------------------------------------------------------------------
# check()
# -----------------------------------------------------------------------


class TestCheck:
    def test_first_request_opens_window(self, limiter: AdmissionLimiter, clock: FakeClock) -> None:
        result = limiter.check("10.0.0.1", EMERGENCY)
        assert result.allowed is True
        assert result.remaining == EMERGENCY.max_requests - 1
        assert result.reset_at == clock.now + EMERGENCY.window_seconds

    def test_remaining_strictly_decreases_to_zero(self, limiter: AdmissionLimiter) -> None:
        remaining = [limiter.check("10.0.0.1", EMERGENCY).remaining for _ in range(10)]
        assert remaining == list(range(9, -1, -1)), "Each admitted request should consume one slot"

    def test_request_over_budget_is_denied(self, limiter: AdmissionLimiter) -> None:
        for _ in range(10):
            assert limiter.check("10.0.0.1", EMERGENCY).allowed is True
        denied = limiter.check("10.0.0.1", EMERGENCY)
        assert denied.allowed is False
        assert denied.remaining == 0

    def test_denial_does_not_move_reset_at(self, limiter: AdmissionLimiter, clock: FakeClock) -> None:
        first = limiter.check("10.0.0.1", AUTH)
        for _ in range(4):
            limiter.check("10.0.0.1", AUTH)
        clock.advance(30)
        for _ in range(3):
            denied = limiter.check("10.0.0.1", AUTH)
            assert denied.allowed is False
            assert denied.reset_at == first.reset_at, "Denied requests must not extend the window"

    def test_window_is_still_open_at_reset_instant(self, limiter: AdmissionLimiter, clock: FakeClock) -> None:
        limit = RateLimit(name="tiny", max_requests=1, window_seconds=10.0)
        limiter.check("a", limit)
        clock.advance(10.0)
        assert limiter.check("a", limit).allowed is False, "Expiry requires now to pass reset_at"

    def test_new_window_after_reset(self, limiter: AdmissionLimiter, clock: FakeClock) -> None:
        for _ in range(11):
            limiter.check("10.0.0.1", EMERGENCY)
        clock.advance(EMERGENCY.window_seconds + 1)
        result = limiter.check("10.0.0.1", EMERGENCY)
        assert result.allowed is True
        assert result.remaining == EMERGENCY.max_requests - 1
        assert result.reset_at == clock.now + EMERGENCY.window_seconds

    def test_identifiers_are_independent(self, limiter: AdmissionLimiter) -> None:
        for _ in range(10):
            limiter.check("10.0.0.1", EMERGENCY)
        assert limiter.check("10.0.0.1", EMERGENCY).allowed is False
        assert limiter.check("10.0.0.2", EMERGENCY).allowed is True

    def test_classes_are_independent(self, limiter: AdmissionLimiter) -> None:
        for _ in range(10):
            limiter.check("10.0.0.1", EMERGENCY)
        result = limiter.check("10.0.0.1", STANDARD)
        assert result.allowed is True, "Exhausting one class must not affect another"
        assert result.remaining == STANDARD.max_requests - 1

    def test_concurrent_checks_admit_exactly_max(self, clock: FakeClock) -> None:
        limiter = AdmissionLimiter(clock=clock)
        allowed: list[bool] = []
        record = threading.Lock()
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            for _ in range(25):
                result = limiter.check("shared", STANDARD)
                with record:
                    allowed.append(result.allowed)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(allowed) == 200
        assert allowed.count(True) == STANDARD.max_requests, (
            "Concurrent callers must never be admitted past the budget"
        )


# -----------------------------------------------------------------------
# enforce() / retry_after()
# -----------------------------------------------------------------------


class TestEnforce:
    def test_enforce_returns_result_when_allowed(self, limiter: AdmissionLimiter) -> None:
        result = limiter.enforce("10.0.0.1", AUTH)
        assert result.allowed is True
        assert result.remaining == 4

    def test_enforce_raises_when_denied(self, limiter: AdmissionLimiter, clock: FakeClock) -> None:
        for _ in range(5):
            limiter.enforce("10.0.0.1", AUTH)
        clock.advance(100.5)
        with pytest.raises(AdmissionDenied) as exc_info:
            limiter.enforce("10.0.0.1", AUTH)
        exc = exc_info.value
        assert exc.identifier == "10.0.0.1"
        assert exc.result.allowed is False
        assert exc.retry_after == 200, "Retry delay should round the remaining window up"
        assert exc.code == "rate_limited"

    def test_retry_after_is_at_least_one(self, limiter: AdmissionLimiter, clock: FakeClock) -> None:
        result = limiter.check("10.0.0.1", EMERGENCY)
        clock.advance(EMERGENCY.window_seconds)
        assert limiter.retry_after(result) == 1


# -----------------------------------------------------------------------
# Reclamation
# -----------------------------------------------------------------------


class TestSweep:
    def test_sweep_removes_only_expired(self, limiter: AdmissionLimiter, clock: FakeClock) -> None:
        limiter.check("old", EMERGENCY)
        clock.advance(61)
        limiter.check("fresh", EMERGENCY)
        assert limiter.size == 2

        removed = limiter.sweep()

        assert removed == 1
        assert limiter.size == 1
        assert limiter.check("fresh", EMERGENCY).remaining == 8, "Live counters must survive a sweep"

    def test_sweep_handles_many_keys(self, limiter: AdmissionLimiter, clock: FakeClock) -> None:
        for i in range(1_234):
            limiter.check(f"10.0.{i // 256}.{i % 256}", READONLY)
        clock.advance(READONLY.window_seconds + 1)
        assert limiter.sweep() == 1_234
        assert limiter.size == 0

    def test_sweep_on_empty_limiter(self, limiter: AdmissionLimiter) -> None:
        assert limiter.sweep() == 0

    async def test_background_sweeper_runs_and_stops(self, clock: FakeClock) -> None:
        limiter = AdmissionLimiter(clock=clock)
        limiter.check("old", EMERGENCY)
        clock.advance(61)

        limiter.start_sweeper(0.01)
        for _ in range(50):
            if limiter.size == 0:
                break
            await asyncio.sleep(0.01)
        await limiter.stop()

        assert limiter.size == 0, "Background sweep should evict expired counters"

    async def test_stop_without_sweeper_is_noop(self, limiter: AdmissionLimiter) -> None:
        await limiter.stop()
