"""Throttler configuration models and settings."""

from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .observability.logging import LogFormat, LogLevel, setup_logging

DEFAULT_ATTEMPT_TTL_MS = 60 * 60 * 1000
DEFAULT_ATTEMPTS_THRESHOLD = 10
DEFAULT_INITIAL_DELAY_MS = 15 * 1000
DEFAULT_DELAY_EXPONENT = 1.5


class ThrottlerConfig(BaseModel):
    """Options for one throttler. Fixed for the throttler's lifetime."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    attempt_ttl_ms: int = Field(
        default=DEFAULT_ATTEMPT_TTL_MS,
        gt=0,
        description="Age in milliseconds after which an attempt is no longer counted",
    )
    attempts_threshold: int = Field(
        default=DEFAULT_ATTEMPTS_THRESHOLD,
        ge=0,
        description="Attempts allowed within the window before delays apply",
    )
    initial_delay_ms: int = Field(
        default=DEFAULT_INITIAL_DELAY_MS,
        gt=0,
        description="Delay in milliseconds for the first attempt over the threshold",
    )
    delay_exponent: float = Field(
        default=DEFAULT_DELAY_EXPONENT,
        ge=0,
        description="Growth exponent applied to the number of attempts over the threshold",
    )


class ThrottleSettings(BaseSettings):
    """Process-wide throttling defaults, overridable from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="THROTTLE_", env_file=".env", extra="ignore"
    )

    attempt_ttl_ms: int = DEFAULT_ATTEMPT_TTL_MS
    attempts_threshold: int = DEFAULT_ATTEMPTS_THRESHOLD
    initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS
    delay_exponent: float = DEFAULT_DELAY_EXPONENT

    log_level: LogLevel = LogLevel.INFO
    log_format: LogFormat = LogFormat.JSON

    def get_throttler_config(self) -> ThrottlerConfig:
        """Get throttler configuration from these settings."""
        return ThrottlerConfig(
            attempt_ttl_ms=self.attempt_ttl_ms,
            attempts_threshold=self.attempts_threshold,
            initial_delay_ms=self.initial_delay_ms,
            delay_exponent=self.delay_exponent,
        )

    def configure_logging(self) -> None:
        """Setup structured logging from these settings."""
        setup_logging(level=self.log_level, format_type=self.log_format)


@lru_cache
def get_settings() -> ThrottleSettings:
    """Return cached settings instance."""
    return ThrottleSettings()
