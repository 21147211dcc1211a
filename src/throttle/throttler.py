"""Throttler: per-key attempt tracking with exponential backoff."""

from collections.abc import Hashable, Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from .clock import Clock, system_clock
from .config import ThrottlerConfig
from .delay import calculate_delay, remaining_attempts
from .exceptions import RateLimited, ThrottlerConfigurationException
from .ledger import AttemptLedger

logger = structlog.get_logger()

# Key that counts every attempt regardless of who made it.
GLOBAL_KEY = None


class Throttler:
    """Tracks recent attempts per key and rejects keys that exceed the threshold.

    Use ``make_throttler`` to build one. A throttler lives for the life of the
    service; its only mutable state is the attempt ledger, and every
    read-modify-write of that ledger happens inside one ledger transaction.
    """

    def __init__(
        self,
        label: Hashable,
        config: ThrottlerConfig,
        clock: Clock = system_clock,
    ):
        """Initialize throttler.

        Args:
            label: Identifier attached to rejections so the caller can route them
            config: Throttler configuration
            clock: Source of the current time in milliseconds
        """
        self.label = label
        self.config = config
        self._clock = clock
        self._ledger = AttemptLedger(config.attempt_ttl_ms)
        self.logger = logger.bind(throttler=str(label))

    @property
    def attempt_ttl_ms(self) -> int:
        return self.config.attempt_ttl_ms

    @property
    def attempts_threshold(self) -> int:
        return self.config.attempts_threshold

    @property
    def initial_delay_ms(self) -> int:
        return self.config.initial_delay_ms

    @property
    def delay_exponent(self) -> float:
        return self.config.delay_exponent

    def now(self) -> int:
        """Current time according to this throttler's clock."""
        return self._clock()

    def check(self, key: Hashable) -> None:
        """Record an attempt for ``key`` unless it must wait first.

        Raises:
            RateLimited: If ``key`` is still inside its backoff delay. The
                rejected attempt is not recorded.
        """
        with self._ledger.transaction() as ledger:
            now_ms = self.now()
            ledger.prune(now_ms)
            attempts = ledger.attempts_for(key)
            delay_ms = calculate_delay(self.config, attempts, now_ms)
            if delay_ms is not None:
                error = RateLimited.from_delay(self.label, delay_ms)
                self.logger.warning(
                    "Attempt rejected",
                    attempts=len(attempts),
                    wait_seconds=error.wait_seconds,
                )
                raise error
            ledger.append(key, now_ms)

    def ensure_available(self, key: Hashable) -> None:
        """Reject ``key`` if it has used up its attempts. Records nothing.

        Raises:
            RateLimited: If no attempts remain for ``key``
        """
        with self._ledger.transaction() as ledger:
            now_ms = self.now()
            ledger.prune(now_ms)
            attempts = ledger.attempts_for(key)
            if remaining_attempts(self.config, attempts) > 0:
                return
            error = RateLimited.from_delay(
                self.label, calculate_delay(self.config, attempts, now_ms)
            )
        self.logger.warning(
            "Attempts exhausted",
            attempts=len(attempts),
            wait_seconds=error.wait_seconds,
        )
        raise error

    def record_failure(self, key: Hashable) -> None:
        """Record a failed attempt for ``key`` without evaluating it."""
        with self._ledger.transaction() as ledger:
            now_ms = self.now()
            ledger.prune(now_ms)
            ledger.append(key, now_ms)
        self.logger.debug("Recorded failed attempt")

    def remaining_attempts(self, key: Hashable) -> int:
        """Attempts ``key`` may still make before throttling applies."""
        with self._ledger.transaction() as ledger:
            ledger.prune(self.now())
            return max(0, remaining_attempts(self.config, ledger.attempts_for(key)))

    def delay_ms(self, key: Hashable) -> float | None:
        """Milliseconds ``key`` must wait before its next attempt, if any."""
        with self._ledger.transaction() as ledger:
            now_ms = self.now()
            ledger.prune(now_ms)
            return calculate_delay(self.config, ledger.attempts_for(key), now_ms)

    def attempts(self, key: Hashable) -> list[int]:
        """Timestamps currently counted for ``key``, newest first."""
        with self._ledger.transaction() as ledger:
            ledger.prune(self.now())
            return ledger.attempts_for(key)

    def ledger_size(self) -> int:
        """Number of attempts held for all keys, as of the last prune."""
        return len(self._ledger)

    def reset(self, key: Hashable) -> None:
        """Forget the attempts recorded for ``key``."""
        self._ledger.clear(key)
        self.logger.info("Reset attempts for key")

    def clear(self) -> None:
        """Forget the attempts recorded for every key."""
        self._ledger.clear()
        self.logger.info("Cleared all attempts")

    def get_stats(self) -> dict[str, Any]:
        """Get throttler statistics."""
        return {
            "label": self.label,
            "attempts": self.ledger_size(),
            **self.config.model_dump(),
        }

    def __repr__(self) -> str:
        return f"Throttler(label={self.label!r}, config={self.config!r})"


def make_throttler(
    label: Hashable,
    options: ThrottlerConfig | Mapping[str, Any] | None = None,
    *,
    clock: Clock | None = None,
    **overrides: Any,
) -> Throttler:
    """Create a new throttler.

    Unset options take their defaults; ``overrides`` win over ``options``.

        email_throttler = make_throttler("email", attempts_threshold=10)

    Raises:
        ThrottlerConfigurationException: If an option is unknown or out of range
    """
    if isinstance(options, ThrottlerConfig):
        values = options.model_dump()
    else:
        values = dict(options or {})
    values.update(overrides)

    try:
        config = ThrottlerConfig(**values)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ThrottlerConfigurationException(label, errors) from e

    return Throttler(label, config, clock or system_clock)


def check(throttler: Throttler, key: Hashable) -> None:
    """Check and record an attempt for ``key`` on ``throttler``.

    Raises:
        RateLimited: If ``key`` must wait before trying again
    """
    throttler.check(key)
