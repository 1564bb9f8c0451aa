from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from fastapi import Request

from alertsource.datasource.client import QueryClient
from alertsource.datasource.dialects import Dialect, resolve_dialect
from alertsource.datasource.types import DialectTag, HeaderSpec, QueryResult
from alertsource.schemas.common import utc_now
from alertsource.schemas.query import (
    InstantQueryRequest,
    QueryResponse,
    RangeQueryRequest,
    SeriesOut,
    ValidateRequest,
    ValidateResponse,
)
from alertsource.state import AppState, get_state

logger = logging.getLogger(__name__)


def effective_tag(state: AppState, tag: Optional[DialectTag]) -> DialectTag:
    """An unset tag falls back to the configured default (itself possibly unset)."""
    if tag is None or not tag.name:
        return state.config.default_type
    return tag


# PUBLIC_INTERFACE
def dialect_for(
    state: AppState,
    tag: Optional[DialectTag],
    headers: Tuple[HeaderSpec, ...] = (),
    params: Optional[Dict[str, str]] = None,
) -> Dialect:
    """Bind the dialect capability set for tag, with optional per-group headers/params."""
    cfg = state.config.with_overrides(headers=headers, extra_params=tuple((params or {}).items()))
    return resolve_dialect(effective_tag(state, tag), cfg, state.validator)


# PUBLIC_INTERFACE
def client_for(state: AppState, dialect: Dialect) -> QueryClient:
    """QueryClient sharing the app-wide async HTTP client."""
    return QueryClient(dialect, state.http)


def _to_response(dialect: Dialect, result: QueryResult) -> QueryResponse:
    series = [SeriesOut.from_metric(m) for m in result.series]
    return QueryResponse(type=dialect.name, series=series, total=len(series))


# PUBLIC_INTERFACE
def validate_expression(request: Request, payload: ValidateRequest) -> ValidateResponse:
    """Validate an expression; blocking for sql (remote round-trip)."""
    state = get_state(request.app)
    tag = effective_tag(state, payload.type)
    state.validator.validate(tag, payload.expr)
    return ValidateResponse(ok=True, type=tag.effective(), local=state.validator.is_local(tag))


# PUBLIC_INTERFACE
async def instant_query(request: Request, payload: InstantQueryRequest) -> QueryResponse:
    """Run an instant query at payload.time (now when omitted)."""
    state = get_state(request.app)
    dialect = dialect_for(state, payload.type)
    ts = payload.time or utc_now()
    result = await client_for(state, dialect).query(payload.expr, ts, timeout=payload.timeout_sec)
    return _to_response(dialect, result)


# PUBLIC_INTERFACE
async def range_query(request: Request, payload: RangeQueryRequest) -> QueryResponse:
    """Run a range query over [payload.start, payload.end]."""
    state = get_state(request.app)
    dialect = dialect_for(state, payload.type)
    result = await client_for(state, dialect).query_range(
        payload.expr, payload.start, payload.end, timeout=payload.timeout_sec
    )
    return _to_response(dialect, result)
