"""In-process throttling with exponential backoff.

A throttler counts recent attempts per key inside a sliding TTL window. Once a
key passes the configured threshold, further attempts are rejected with
``RateLimited`` until a delay that grows exponentially with the number of
attempts over the threshold has elapsed.
"""

from .clock import Clock, system_clock
from .config import ThrottlerConfig, ThrottleSettings, get_settings
from .delay import calculate_delay
from .exceptions import RateLimited, ThrottleException, ThrottlerConfigurationException
from .ledger import AttemptLedger
from .models import ErrorCode, ErrorDetail
from .registry import ThrottlerRegistry
from .throttler import GLOBAL_KEY, Throttler, check, make_throttler
from .wrapper import throttled, with_throttling, with_throttling_async

__all__ = [
    "Throttler",
    "make_throttler",
    "check",
    "with_throttling",
    "with_throttling_async",
    "throttled",
    "GLOBAL_KEY",
    "ThrottlerConfig",
    "ThrottleSettings",
    "get_settings",
    "ThrottlerRegistry",
    "AttemptLedger",
    "calculate_delay",
    "Clock",
    "system_clock",
    "ThrottleException",
    "RateLimited",
    "ThrottlerConfigurationException",
    "ErrorCode",
    "ErrorDetail",
]
