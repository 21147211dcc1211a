"""Shared models for throttling errors."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Standardized error codes."""

    RATE_LIMIT_ERROR = "rate_limit_error"
    CONFIGURATION_ERROR = "configuration_error"
    INTERNAL_ERROR = "internal_error"


class ErrorDetail(BaseModel):
    """Detailed error information for the API layer to render."""

    code: ErrorCode
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    retry_after: int | None = None
