"""
Tests for fixed-window rate limiting.

Tests cover:
- Admission up to max_requests, denial afterwards
- retry_after counts down to the window end
- Window reset after expiry
- Rejections do not extend the window
- check() does not count
- Per-key isolation and concurrent admission
- RateLimiters built from configuration

Window expiry is driven by patching time.time, which the limits
MemoryStorage reads for its expirations.
"""
from __future__ import annotations

import threading
import time

import pytest

from speechmagic.core.config import RateLimitConfig, RateLimitsConfig
from speechmagic.tts.ratelimit import RateLimiter, RateLimiters


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(time, "time", fake)
    return fake


class TestRateLimiter:
    """Tests for RateLimiter.admit() and check()."""

    def test_fifty_allowed_fifty_first_denied(self, clock):
        """Requests 1-50 pass, the 51st in the same window is denied."""
        limiter = RateLimiter("generate", window_seconds=3600, max_requests=50)
        decisions = [limiter.admit("alice") for _ in range(50)]
        assert all(d.allowed for d in decisions)
        assert decisions[0].remaining == 49
        assert decisions[-1].remaining == 0

        denied = limiter.admit("alice")
        assert denied.allowed is False
        assert denied.retry_after == 3600
        assert denied.remaining == 0
        assert denied.limit == 50

    def test_retry_after_counts_down(self, clock):
        """retry_after is the time left in the window."""
        limiter = RateLimiter("t", window_seconds=100, max_requests=1)
        limiter.admit("k")
        clock.advance(30.5)
        assert limiter.admit("k").retry_after == 70

    def test_retry_after_at_least_one(self, clock):
        limiter = RateLimiter("t", window_seconds=100, max_requests=1)
        limiter.admit("k")
        clock.advance(99.5)
        assert limiter.admit("k").retry_after == 1

    def test_window_resets(self, clock):
        """After the window expires the key starts afresh."""
        limiter = RateLimiter("t", window_seconds=60, max_requests=2)
        limiter.admit("k")
        limiter.admit("k")
        assert limiter.admit("k").allowed is False
        clock.advance(61)
        decision = limiter.admit("k")
        assert decision.allowed is True
        assert decision.remaining == 1

    def test_rejections_do_not_extend_window(self, clock):
        """Denied requests leave the window end where it was."""
        limiter = RateLimiter("t", window_seconds=60, max_requests=1)
        limiter.admit("k")
        for _ in range(10):
            clock.advance(5)
            limiter.admit("k")
        clock.advance(11)
        assert limiter.admit("k").allowed is True
        stats = limiter.stats()
        assert stats.total_admitted == 2
        assert stats.total_rejected == 10

    def test_check_does_not_count(self, clock):
        limiter = RateLimiter("t", window_seconds=60, max_requests=1)
        for _ in range(5):
            assert limiter.check("k").allowed is True
        assert limiter.admit("k").allowed is True
        blocked = limiter.check("k")
        assert blocked.allowed is False
        assert blocked.retry_after == 60

    def test_keys_are_independent(self, clock):
        limiter = RateLimiter("t", window_seconds=60, max_requests=1)
        assert limiter.admit("alice").allowed is True
        assert limiter.admit("bob").allowed is True
        assert limiter.admit("alice").allowed is False

    def test_reset(self, clock):
        limiter = RateLimiter("t", window_seconds=60, max_requests=1)
        limiter.admit("k")
        limiter.reset("k")
        assert limiter.admit("k").allowed is True
        limiter.admit("j")
        limiter.reset()
        assert limiter.admit("k").allowed is True
        assert limiter.admit("j").allowed is True

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            RateLimiter("t", window_seconds=0, max_requests=1)
        with pytest.raises(ValueError):
            RateLimiter("t", window_seconds=1, max_requests=0)

    def test_concurrent_admission_never_exceeds_limit(self):
        """Concurrent callers cannot push a key past max_requests."""
        limiter = RateLimiter("t", window_seconds=3600, max_requests=50)
        results = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                decision = limiter.admit("shared")
                with lock:
                    results.append(decision.allowed)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(results) == 50
        assert len(results) == 160


class TestRateLimiters:
    """Tests for the configured limiter trio."""

    def test_defaults(self):
        limiters = RateLimiters()
        assert limiters.enabled is True
        assert limiters.generate.max_requests == 50
        assert limiters.generate.window_seconds == 3600
        assert limiters.api.max_requests == 100
        assert limiters.auth.max_requests == 5
        assert set(limiters.all()) == {"generate", "api", "auth"}

    def test_from_config(self):
        config = RateLimitsConfig(
            enabled=False,
            generate=RateLimitConfig(window_seconds=10, max_requests=2),
        )
        limiters = RateLimiters(config)
        assert limiters.enabled is False
        assert limiters.generate.window_seconds == 10
        assert limiters.generate.max_requests == 2

    def test_limiters_do_not_share_counts(self):
        """The same key is counted separately by each limiter."""
        config = RateLimitsConfig(
            generate=RateLimitConfig(window_seconds=60, max_requests=1),
            api=RateLimitConfig(window_seconds=60, max_requests=1),
        )
        limiters = RateLimiters(config)
        assert limiters.generate.admit("k").allowed is True
        assert limiters.api.admit("k").allowed is True

    def test_reset_all(self):
        config = RateLimitsConfig(generate=RateLimitConfig(window_seconds=60, max_requests=1))
        limiters = RateLimiters(config)
        limiters.generate.admit("a")
        assert limiters.generate.admit("a").allowed is False
        limiters.reset()
        assert limiters.generate.admit("a").allowed is True
