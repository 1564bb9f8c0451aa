from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from alertsource.datasource.types import DialectTag, Metric
from alertsource.schemas.common import decode_dialect


class _TypedExpr(BaseModel):
    type: Optional[DialectTag] = Field(
        default=None,
        description="Datasource type (prometheus|graphite|vlogs|sql); defaults to the configured type.",
    )
    expr: str = Field(..., min_length=1, description="Query expression in the datasource's language.")

    _decode_type = field_validator("type", mode="before")(decode_dialect)


class ValidateRequest(_TypedExpr):
    """Request body for validating an expression."""


class ValidateResponse(BaseModel):
    """Outcome of a successful validation."""

    ok: bool = Field(..., description="True when the expression was accepted.")
    type: str = Field(..., description="Effective datasource type used for validation.")
    local: bool = Field(..., description="Whether validation ran locally (False means a remote round-trip).")


class InstantQueryRequest(_TypedExpr):
    """Request body for an instant query."""

    time: Optional[datetime] = Field(default=None, description="Evaluation time; defaults to now (UTC).")
    timeout_sec: Optional[float] = Field(default=None, gt=0, le=600, description="Per-request deadline.")


class RangeQueryRequest(_TypedExpr):
    """Request body for a range query."""

    start: datetime = Field(..., description="Range start (inclusive).")
    end: datetime = Field(..., description="Range end (inclusive).")
    timeout_sec: Optional[float] = Field(default=None, gt=0, le=600, description="Per-request deadline.")


class SeriesOut(BaseModel):
    """One normalized time series."""

    labels: Dict[str, str] = Field(default_factory=dict, description="Series label set.")
    timestamps: List[int] = Field(default_factory=list, description="Sample timestamps, index-aligned with values.")
    values: List[float] = Field(default_factory=list, description="Sample values.")

    @classmethod
    def from_metric(cls, m: Metric) -> "SeriesOut":
        return cls(labels=dict(m.labels), timestamps=list(m.timestamps), values=list(m.values))


class QueryResponse(BaseModel):
    """Normalized query result."""

    type: str = Field(..., description="Effective datasource type that served the query.")
    series: List[SeriesOut] = Field(..., description="Series in backend response order.")
    total: int = Field(..., ge=0, description="Number of series returned.")
