"""
Tests for the fixed-window rate limiter.
"""

import sys
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from analyst.errors import RateLimitExceeded
from analyst.rate_limit import FixedWindowRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestFixedWindow:
    """Test window counting and reset."""

    def test_allows_up_to_limit(self, clock):
        limiter = FixedWindowRateLimiter(3, 60, clock=clock)
        assert [limiter.allow("1.2.3.4") for _ in range(4)] == [True, True, True, False]

    def test_window_reset(self, clock):
        limiter = FixedWindowRateLimiter(1, 60, clock=clock)
        assert limiter.allow("a")
        assert not limiter.allow("a")
        clock.now += 60
        assert limiter.allow("a")

    def test_keys_are_independent(self, clock):
        limiter = FixedWindowRateLimiter(1, 60, clock=clock)
        assert limiter.allow("a")
        assert limiter.allow("b")
        assert not limiter.allow("a")

    def test_check_raises_with_limit(self, clock):
        limiter = FixedWindowRateLimiter(2, 30, clock=clock)
        limiter.check("a")
        limiter.check("a")
        with pytest.raises(RateLimitExceeded) as info:
            limiter.check("a")
        assert info.value.limit == 2
        assert info.value.window_seconds == 30
        assert info.value.kind == "rate_limit"

    @pytest.mark.parametrize("requests,window", [(0, 60), (1, 0)])
    def test_invalid_configuration(self, requests, window):
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(requests, window)
