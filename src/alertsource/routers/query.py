from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from alertsource.errors import (
    DatasourceError,
    DecodeError,
    FormatError,
    QueryError,
    RemoteValidationError,
    UnknownDialectError,
    UnsupportedQueryError,
    ValidationError,
)
from alertsource.schemas.common import ErrorResponse
from alertsource.schemas.query import (
    InstantQueryRequest,
    QueryResponse,
    RangeQueryRequest,
    ValidateRequest,
    ValidateResponse,
)
from alertsource.services import datasource_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Datasource"])

_ERROR_RESPONSES = {400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}}


# PUBLIC_INTERFACE
def to_http_exception(err: DatasourceError) -> HTTPException:
    """Map datasource errors to HTTP status codes: caller mistakes 400, backend failures 502."""
    if isinstance(err, (ValidationError, RemoteValidationError, UnknownDialectError, FormatError, UnsupportedQueryError)):
        return HTTPException(status_code=400, detail=str(err))
    if isinstance(err, (QueryError, DecodeError)):
        return HTTPException(status_code=502, detail=str(err))
    return HTTPException(status_code=500, detail=str(err))


@router.post(
    "/validate",
    response_model=ValidateResponse,
    responses=_ERROR_RESPONSES,
    summary="Validate expression",
    description="Validate an expression against its datasource type. sql expressions are validated by the backend.",
    operation_id="validate_expression",
)
def validate_expression(request: Request, payload: ValidateRequest) -> ValidateResponse:
    """Validate an expression."""
    try:
        return datasource_service.validate_expression(request, payload)
    except DatasourceError as err:
        raise to_http_exception(err) from err


@router.post(
    "/query",
    response_model=QueryResponse,
    responses=_ERROR_RESPONSES,
    summary="Instant query",
    description="Evaluate an expression at a single instant and return normalized series.",
    operation_id="instant_query",
)
async def instant_query(request: Request, payload: InstantQueryRequest) -> QueryResponse:
    """Run an instant query."""
    try:
        return await datasource_service.instant_query(request, payload)
    except DatasourceError as err:
        logger.warning("Instant query failed: %s", err)
        raise to_http_exception(err) from err


@router.post(
    "/query_range",
    response_model=QueryResponse,
    responses=_ERROR_RESPONSES,
    summary="Range query",
    description="Evaluate an expression over [start, end] and return normalized series.",
    operation_id="range_query",
)
async def range_query(request: Request, payload: RangeQueryRequest) -> QueryResponse:
    """Run a range query."""
    try:
        return await datasource_service.range_query(request, payload)
    except ValueError as err:
        raise HTTPException(status_code=400, detail=str(err)) from err
    except DatasourceError as err:
        logger.warning("Range query failed: %s", err)
        raise to_http_exception(err) from err
