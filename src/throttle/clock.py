"""Wall-clock capability injected into throttlers."""

import time
from collections.abc import Callable

# Zero-argument callable returning milliseconds since the epoch. It should not
# step backwards; the ledger clamps timestamps that do.
Clock = Callable[[], int]


def system_clock() -> int:
    """Current time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000
