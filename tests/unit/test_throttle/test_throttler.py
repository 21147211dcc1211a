"""Tests for throttler check and configuration."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from throttle import (
    GLOBAL_KEY,
    RateLimited,
    Throttler,
    ThrottlerConfig,
    ThrottlerConfigurationException,
    check,
    make_throttler,
)

THROTTLED_MESSAGE = "Too many attempts! You must wait 0 seconds before trying again."


class TestMakeThrottler:
    """Test throttler construction."""

    def test_defaults(self):
        """Unset options take their defaults."""
        throttler = make_throttler("email")

        assert isinstance(throttler, Throttler)
        assert throttler.label == "email"
        assert throttler.attempt_ttl_ms == 3_600_000
        assert throttler.attempts_threshold == 10
        assert throttler.initial_delay_ms == 15_000
        assert throttler.delay_exponent == 1.5
        assert throttler.ledger_size() == 0

    def test_options_mapping_and_overrides(self):
        """Keyword overrides win over the options mapping."""
        throttler = make_throttler(
            "email", {"attempts_threshold": 3, "delay_exponent": 2}, attempts_threshold=5
        )
        assert throttler.attempts_threshold == 5
        assert throttler.delay_exponent == 2

    def test_config_instance(self):
        """A ThrottlerConfig can be passed as options."""
        config = ThrottlerConfig(initial_delay_ms=100)
        throttler = make_throttler("email", config)
        assert throttler.config == config

    @pytest.mark.parametrize(
        "options",
        [
            {"attempt_ttl_ms": 0},
            {"attempt_ttl_ms": -1},
            {"attempts_threshold": -1},
            {"initial_delay_ms": 0},
            {"delay_exponent": -0.5},
            {"max_attempts": 3},
        ],
    )
    def test_invalid_options_fail_fast(self, options):
        """Malformed configuration is rejected at construction."""
        with pytest.raises(ThrottlerConfigurationException) as exc_info:
            make_throttler("email", options)

        assert exc_info.value.label == "email"
        assert exc_info.value.errors

    def test_config_is_immutable(self):
        """Configuration cannot change after construction."""
        throttler = make_throttler("email")
        with pytest.raises(Exception):
            throttler.config.attempts_threshold = 100


class TestCheck:
    """Test throttler.check behaviour, one millisecond between attempts."""

    @pytest.fixture
    def attempt(self, test_throttler, clock):
        """Make ``n`` attempts for a key, returning each outcome."""

        def _attempt(n, key=None):
            key = key if key is not None else object()
            results = []
            for _ in range(n):
                clock.advance(1)
                try:
                    check(test_throttler, key)
                    results.append("success")
                except RateLimited as e:
                    results.append(e.errors["test"])
            return results

        return _attempt

    def test_a_couple_of_attempts(self, attempt):
        """A couple of quick attempts do not trigger the throttler."""
        assert attempt(2) == ["success", "success"]

    def test_threshold_attempts(self, attempt):
        """Neither do as many as the threshold."""
        assert attempt(3) == ["success"] * 3

    def test_one_over_threshold(self, attempt):
        """Four in quick succession trigger it; the wait rounds down to 0 s."""
        assert attempt(4) == ["success"] * 3 + [THROTTLED_MESSAGE]

    def test_allowed_again_after_delay(self, attempt, clock):
        """Throttling lets the key try again once the delay has passed."""
        assert attempt(4, "a") == ["success"] * 3 + [THROTTLED_MESSAGE]
        clock.advance(6)
        assert attempt(1, "a") == ["success"]

    def test_next_attempt_throttled(self, attempt, clock):
        """The attempt after that is throttled again."""
        attempt(4, "b")
        clock.advance(6)
        assert attempt(2, "b") == ["success", THROTTLED_MESSAGE]

    def test_delay_grows(self, attempt, clock):
        """Waiting the initial delay is no longer enough after more attempts."""
        attempt(4, "c")
        clock.advance(6)
        attempt(2, "c")
        clock.advance(6)
        assert attempt(1, "c") == [THROTTLED_MESSAGE]

    def test_allowed_after_grown_delay(self, attempt, clock):
        """Waiting out the grown delay works."""
        attempt(4, "d")
        clock.advance(6)
        attempt(2, "d")
        clock.advance(21)
        assert attempt(1, "d") == ["success"]

    def test_rejections_are_not_recorded(self, attempt, test_throttler):
        """The ledger does not keep growing once throttling starts."""
        attempt(5)
        assert test_throttler.ledger_size() == 3

    def test_attempts_clear_after_ttl(self, attempt, test_throttler, clock):
        """Attempts expire after the TTL."""
        attempt(3)
        assert test_throttler.ledger_size() == 3
        clock.advance(25)
        attempt(1)
        assert test_throttler.ledger_size() == 1

    def test_keys_are_independent(self, attempt):
        """Attempts for one key do not count against another."""
        assert attempt(3, "x") == ["success"] * 3
        assert attempt(3, "y") == ["success"] * 3

    def test_global_key(self, test_throttler, clock):
        """The global key counts every caller together."""
        for _ in range(3):
            test_throttler.check(GLOBAL_KEY)
        with pytest.raises(RateLimited):
            test_throttler.check(GLOBAL_KEY)

    def test_rejection_leaves_ledger_pruned(self, test_throttler, clock):
        """A rejection still prunes expired attempts."""
        test_throttler.check("old")
        clock.advance(26)
        for _ in range(3):
            test_throttler.check("k")
        with pytest.raises(RateLimited):
            test_throttler.check("k")
        assert test_throttler.ledger_size() == 3


class TestRateLimitedDetails:
    """Test the contents of RateLimited raised by check."""

    def test_wait_seconds_for_one_over_threshold(self, clock):
        """One attempt over the threshold waits initial_delay_ms."""
        throttler = make_throttler("email", attempts_threshold=2, clock=clock)
        throttler.check("cam@example.com")
        throttler.check("cam@example.com")

        with pytest.raises(RateLimited) as exc_info:
            throttler.check("cam@example.com")

        error = exc_info.value
        assert error.label == "email"
        assert error.wait_seconds == 15
        assert error.message == (
            "Too many attempts! You must wait 15 seconds before trying again."
        )
        assert str(error) == error.message
        assert error.errors == {"email": error.message}
        assert error.status_code == 400

    def test_wait_seconds_are_floored(self, clock):
        """Partially elapsed delays round down to whole seconds."""
        throttler = make_throttler("email", attempts_threshold=1, clock=clock)
        throttler.check("k")
        clock.advance(1)

        with pytest.raises(RateLimited) as exc_info:
            throttler.check("k")

        assert exc_info.value.wait_seconds == 14

    def test_to_error_detail(self, clock):
        """RateLimited converts to an ErrorDetail payload."""
        throttler = make_throttler("email", attempts_threshold=1, clock=clock)
        throttler.check("k")

        with pytest.raises(RateLimited) as exc_info:
            throttler.check("k")

        detail = exc_info.value.to_error_detail()
        assert detail.code == "rate_limit_error"
        assert detail.retry_after == 15
        assert detail.details == {"field": "email"}

    def test_fallback_message(self):
        """Without a delay the message carries no wait time."""
        error = RateLimited.from_delay("email", None)
        assert error.wait_seconds is None
        assert error.message == "Too many attempts! Please try again later."


class TestIntrospection:
    """Test read-only helpers on the throttler."""

    def test_remaining_attempts_and_delay(self, test_throttler, clock):
        """Remaining attempts count down and a delay appears past the threshold."""
        assert test_throttler.remaining_attempts("k") == 3
        assert test_throttler.delay_ms("k") is None

        for _ in range(3):
            clock.advance(1)
            test_throttler.check("k")

        assert test_throttler.remaining_attempts("k") == 0
        assert test_throttler.delay_ms("k") == 5
        assert len(test_throttler.attempts("k")) == 3

    def test_record_failure(self, test_throttler):
        """record_failure appends without evaluating."""
        for _ in range(5):
            test_throttler.record_failure("k")
        assert test_throttler.ledger_size() == 5

    def test_reset_and_clear(self, test_throttler):
        """reset forgets one key, clear forgets all."""
        test_throttler.check("a")
        test_throttler.check("b")

        test_throttler.reset("a")
        assert test_throttler.attempts("a") == []
        assert len(test_throttler.attempts("b")) == 1

        test_throttler.clear()
        assert test_throttler.ledger_size() == 0

    def test_reset_global_key_keeps_other_keys(self, test_throttler):
        """Resetting GLOBAL_KEY forgets only global attempts; clear forgets all."""
        test_throttler.check("a")
        test_throttler.check(GLOBAL_KEY)

        test_throttler.reset(GLOBAL_KEY)
        assert test_throttler.attempts(GLOBAL_KEY) == []
        assert test_throttler.ledger_size() == 1

        test_throttler.clear()
        assert test_throttler.ledger_size() == 0

    def test_get_stats(self, test_throttler):
        """Stats include the label, ledger size and configuration."""
        test_throttler.check("a")
        stats = test_throttler.get_stats()
        assert stats["label"] == "test"
        assert stats["attempts"] == 1
        assert stats["attempts_threshold"] == 3


class TestConcurrentCheck:
    """Test that check is atomic under concurrent callers."""

    def test_threshold_never_exceeded(self):
        """Racing callers cannot all slip under the threshold."""
        throttler = make_throttler(
            "race", attempts_threshold=5, initial_delay_ms=60_000, clock=lambda: 1_000
        )
        barrier = threading.Barrier(16)
        outcomes = []
        lock = threading.Lock()

        def worker(_: int) -> None:
            barrier.wait()
            for _ in range(10):
                try:
                    throttler.check("same-key")
                    result = "success"
                except RateLimited:
                    result = "rejected"
                with lock:
                    outcomes.append(result)

        with ThreadPoolExecutor(max_workers=16) as executor:
            list(executor.map(worker, range(16)))

        assert outcomes.count("success") == 5
        assert outcomes.count("rejected") == 155
        assert throttler.ledger_size() == 5


class TestUnboundedBackoff:
    """Test throttlers whose backoff exceeds float range."""

    @pytest.fixture
    def steep_throttler(self, clock):
        """Create throttler with a very steep exponent."""
        return make_throttler(
            "steep",
            attempts_threshold=0,
            delay_exponent=1000,
            initial_delay_ms=1,
            clock=clock,
        )

    def test_check_rejects_without_wait_time(self, steep_throttler):
        """check raises RateLimited with the fallback message."""
        for _ in range(3):
            steep_throttler.record_failure("k")

        with pytest.raises(RateLimited) as exc_info:
            steep_throttler.check("k")

        assert exc_info.value.wait_seconds is None
        assert exc_info.value.message == "Too many attempts! Please try again later."
        assert steep_throttler.delay_ms("k") == float("inf")

    def test_from_infinite_delay(self):
        """An infinite delay falls back to the message without a number."""
        error = RateLimited.from_delay("steep", float("inf"))
        assert error.wait_seconds is None
