"""Test configuration and fixtures."""

import pytest

from throttle import make_throttler


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_000_000):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock():
    """Create a manual clock for testing."""
    return ManualClock()


@pytest.fixture
def test_throttler(clock):
    """Create a small, fast throttler for testing."""
    return make_throttler(
        "test",
        initial_delay_ms=5,
        attempts_threshold=3,
        delay_exponent=2,
        attempt_ttl_ms=25,
        clock=clock,
    )
