"""Throttle-specific exceptions."""

import math
from collections.abc import Hashable
from typing import Any

from .models import ErrorCode, ErrorDetail

WAIT_MESSAGE = "Too many attempts! You must wait {seconds} seconds before trying again."
FALLBACK_MESSAGE = "Too many attempts! Please try again later."


class ThrottleException(Exception):
    """Base exception for the throttle package."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ThrottlerConfigurationException(ThrottleException):
    """Invalid throttler options."""

    def __init__(self, label: Hashable, errors: list[str]):
        super().__init__(
            f"Invalid configuration for throttler {label!r}: {'; '.join(errors)}",
            ErrorCode.CONFIGURATION_ERROR,
            {"label": label, "errors": errors},
        )
        self.label = label
        self.errors = errors


class RateLimited(ThrottleException):
    """Too many recent attempts for a key.

    ``label`` identifies the throttler that rejected the attempt so the caller
    can attach ``message`` to the right field. ``wait_seconds`` is the delay
    floored to whole seconds, or ``None`` when no delay could be computed.
    """

    status_code = 400

    def __init__(self, label: Hashable, wait_seconds: int | None = None):
        if wait_seconds is None:
            message = FALLBACK_MESSAGE
        else:
            message = WAIT_MESSAGE.format(seconds=wait_seconds)
        super().__init__(
            message,
            ErrorCode.RATE_LIMIT_ERROR,
            {"label": label, "wait_seconds": wait_seconds},
        )
        self.label = label
        self.wait_seconds = wait_seconds

    @classmethod
    def from_delay(cls, label: Hashable, delay_ms: float | None) -> "RateLimited":
        """Build the exception from a delay in milliseconds.

        A delay too large to represent gets the message without a wait time.
        """
        if delay_ms is None or not math.isfinite(delay_ms):
            return cls(label)
        return cls(label, max(0, int(delay_ms // 1000)))

    @property
    def errors(self) -> dict[Hashable, str]:
        """Message keyed by the throttler label."""
        return {self.label: self.message}

    def to_error_detail(self) -> ErrorDetail:
        """Convert to the error payload used by the API layer."""
        return ErrorDetail(
            code=self.error_code,
            message=self.message,
            details={"field": str(self.label)},
            retry_after=self.wait_seconds,
        )
