"""Registry of named throttlers."""

import threading
from collections.abc import Hashable, Mapping
from typing import Any

import structlog

from .clock import Clock
from .config import ThrottlerConfig, ThrottleSettings, get_settings
from .throttler import Throttler, make_throttler

logger = structlog.get_logger()


class ThrottlerRegistry:
    """Holds one throttler per label, e.g. one per guarded endpoint."""

    def __init__(self, defaults: ThrottlerConfig | None = None) -> None:
        """Initialize throttler registry.

        Args:
            defaults: Options used for throttlers added without explicit options
        """
        self.defaults = defaults or ThrottlerConfig()
        self.throttlers: dict[Hashable, Throttler] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: ThrottleSettings | None = None) -> "ThrottlerRegistry":
        """Create a registry whose defaults come from environment settings."""
        settings = settings or get_settings()
        return cls(settings.get_throttler_config())

    def add_throttler(
        self,
        label: Hashable,
        options: ThrottlerConfig | Mapping[str, Any] | None = None,
        *,
        clock: Clock | None = None,
        **overrides: Any,
    ) -> Throttler:
        """Create and register a throttler, replacing any with the same label.

        Options not given fall back to the registry defaults.
        """
        values = self.defaults.model_dump()
        if isinstance(options, ThrottlerConfig):
            values.update(options.model_dump())
        elif options:
            values.update(options)
        values.update(overrides)

        throttler = make_throttler(label, values, clock=clock)
        self.register(throttler)
        return throttler

    def register(self, throttler: Throttler) -> None:
        """Register an existing throttler under its label."""
        with self._lock:
            self.throttlers[throttler.label] = throttler

        logger.info(
            "Registered throttler",
            throttler=str(throttler.label),
            attempts_threshold=throttler.attempts_threshold,
            attempt_ttl_ms=throttler.attempt_ttl_ms,
        )

    def get_throttler(self, label: Hashable) -> Throttler | None:
        """Get the throttler registered under ``label``."""
        return self.throttlers.get(label)

    def remove_throttler(self, label: Hashable) -> None:
        """Remove the throttler registered under ``label``."""
        with self._lock:
            removed = self.throttlers.pop(label, None)
        if removed is not None:
            logger.info("Removed throttler", throttler=str(label))
        else:
            logger.warning("Throttler not found", throttler=str(label))

    def reset_all(self) -> None:
        """Forget recorded attempts on every registered throttler."""
        for throttler in self.get_all_throttlers().values():
            throttler.clear()

    def get_all_throttlers(self) -> dict[Hashable, Throttler]:
        """Get all registered throttlers."""
        with self._lock:
            return self.throttlers.copy()

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        throttlers = self.get_all_throttlers()
        return {
            "total_throttlers": len(throttlers),
            "throttlers": {
                str(label): throttler.get_stats()
                for label, throttler in throttlers.items()
            },
        }

    def clear(self) -> None:
        """Remove every registered throttler."""
        with self._lock:
            self.throttlers.clear()
        logger.info("Cleared all throttlers")
