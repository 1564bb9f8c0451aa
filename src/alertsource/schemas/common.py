from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from alertsource.datasource.types import DialectTag
from alertsource.errors import UnknownDialectError


class HealthResponse(BaseModel):
    """Response model for health endpoints."""

    status: str = Field(..., description="High-level health status string (e.g., 'ok').")
    message: str = Field(..., description="Human-readable status message.")
    timestamp: datetime = Field(..., description="UTC timestamp at time of response.")


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    detail: str = Field(..., description="Human-readable error details.")
    code: Optional[str] = Field(default=None, description="Optional machine-readable error code.")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Optional metadata for debugging.")


# PUBLIC_INTERFACE
def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
def decode_dialect(value: Any) -> Any:
    """pydantic before-validator turning configuration text into a DialectTag."""
    if isinstance(value, DialectTag):
        return value
    if value is None:
        # Absent type: the zero value, resolved to the default at query time.
        return DialectTag()
    if not isinstance(value, str):
        raise ValueError("datasource type must be a string")
    try:
        return DialectTag.decode(value)
    except UnknownDialectError as err:
        # pydantic only reports ValueError/AssertionError as validation errors.
        raise ValueError(str(err)) from err
