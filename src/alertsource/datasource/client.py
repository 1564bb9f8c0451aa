from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from alertsource.datasource.dialects import Dialect
from alertsource.datasource.request import redacted
from alertsource.datasource.types import QueryResult
from alertsource.errors import QueryError

logger = logging.getLogger(__name__)

# Cap on how much of an unexpected response body is quoted in errors.
_MAX_ERROR_BODY = 512


def _aware(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


def _error_detail(response: httpx.Response) -> str:
    """Prefer the backend's `error`/`message` field; fall back to a truncated body."""
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None
    if isinstance(body, dict):
        for key in ("error", "message"):
            if body.get(key):
                return str(body[key])
    return response.text[:_MAX_ERROR_BODY]


class QueryClient:
    """
    Instant and range queries against one dialect's backend.

    Holds no mutable state besides the shared httpx client, so one instance can
    serve any number of concurrent evaluations. Deadlines travel on each
    request (timeout extension); cancellation is the caller's task cancellation.
    """

    def __init__(self, dialect: Dialect, http: httpx.AsyncClient):
        self.dialect = dialect
        self._http = http

    # PUBLIC_INTERFACE
    async def query(self, expr: str, ts: datetime, timeout: Optional[float] = None) -> QueryResult:
        """Evaluate expr at ts."""
        request = self.dialect.build_instant(expr, ts, timeout=timeout)
        return await self._do(request)

    # PUBLIC_INTERFACE
    async def query_range(
        self, expr: str, start: datetime, end: datetime, timeout: Optional[float] = None
    ) -> QueryResult:
        """Evaluate expr over [start, end]."""
        if _aware(start) > _aware(end):
            raise ValueError(f"start ({start.isoformat()}) must not be after end ({end.isoformat()})")
        request = self.dialect.build_range(expr, start, end, timeout=timeout)
        return await self._do(request)

    async def _do(self, request: httpx.Request) -> QueryResult:
        context = redacted(request)
        try:
            response = await self._http.send(request)
        except httpx.HTTPError as err:
            raise QueryError(context, str(err) or type(err).__name__) from err

        if not response.is_success:
            raise QueryError(context, _error_detail(response), status_code=response.status_code)

        result = self.dialect.parse_response(request, response.content)
        logger.debug("%s query %s returned %d series", self.dialect.name, context, len(result.series))
        return result
