"""Exponential backoff delay calculation.

Both functions are pure: they work on the timestamps already recorded for a
key (newest first) and an explicit ``now_ms``, and never read the clock.
"""

import math
from collections.abc import Sequence

from .config import ThrottlerConfig


def calculate_delay(
    config: ThrottlerConfig, attempts: Sequence[int], now_ms: int
) -> float | None:
    """Milliseconds the caller must still wait, or ``None`` if it may proceed.

    The attempt being evaluated has not been recorded yet, so it is counted on
    top of ``attempts``. Once that total passes ``attempts_threshold`` the
    delay since the most recent attempt is
    ``initial_delay_ms * over ** delay_exponent``.

    Args:
        config: Throttler configuration
        attempts: Recorded timestamps for one key, newest first
        now_ms: Current time in milliseconds

    Returns:
        Remaining delay in milliseconds (``math.inf`` when the backoff is too
        large to represent), or None
    """
    if not attempts:
        return None

    over_threshold = (len(attempts) + 1) - config.attempts_threshold
    if over_threshold <= 0:
        return None

    try:
        delay_ms = config.initial_delay_ms * over_threshold**config.delay_exponent
    except OverflowError:
        delay_ms = math.inf
    remaining_ms = (attempts[0] + delay_ms) - now_ms
    if remaining_ms > 0:
        return remaining_ms
    return None


def remaining_attempts(config: ThrottlerConfig, attempts: Sequence[int]) -> int:
    """Attempts left before the threshold is reached (may be negative)."""
    return config.attempts_threshold - len(attempts)
