from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Generator, List, Optional, Tuple

import httpx

from alertsource.config import DatasourceConfig
from alertsource.datasource.types import GRAPHITE, PROMETHEUS, SQL, VLOGS
from alertsource.errors import UnsupportedQueryError

# Query params whose values must never show up in logs or error text.
_SENSITIVE_PARAMS = frozenset(
    {"password", "passwd", "token", "access_token", "auth", "authkey", "api_key", "apikey", "secret"}
)

Params = List[Tuple[str, str]]


class BearerAuth(httpx.Auth):
    """Attach a static bearer token to every request."""

    def __init__(self, token: str):
        self._token = token

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


def _utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


# PUBLIC_INTERFACE
def format_rfc3339(ts: datetime) -> str:
    """Format a timestamp as RFC3339 with second precision (`Z` for UTC, naive treated as UTC)."""
    ts = _utc(ts).replace(microsecond=0)
    if ts.utcoffset() == timedelta(0):
        return ts.strftime("%Y-%m-%dT%H:%M:%SZ")
    return ts.isoformat(timespec="seconds")


def _unix(ts: datetime) -> str:
    return str(int(_utc(ts).timestamp()))


# PUBLIC_INTERFACE
def redacted(request: httpx.Request) -> str:
    """Describe a request for diagnostics without userinfo or credential-like query values."""
    url = request.url
    params = [
        (k, "xxxxx" if k.lower() in _SENSITIVE_PARAMS else v) for k, v in url.params.multi_items()
    ]
    return str(url.copy_with(username=None, password=None, params=params))


class RequestBuilder:
    """
    Builds the HTTP request for one dialect from an explicit DatasourceConfig.

    Path shape is <base>[<type_prefix>][<suffix>]: the prefix is appended only
    when append_type_prefix is set, the suffix only when disable_path_append is
    not set, and always in that order.
    """

    dialect: str = ""
    type_prefix: str = ""
    instant_suffix: str = ""
    range_suffix: str = ""

    def __init__(self, config: DatasourceConfig):
        self.config = config
        self._base = httpx.URL(config.url)
        self._auth: Optional[httpx.Auth] = None
        if config.basic_auth_username is not None:
            self._auth = httpx.BasicAuth(config.basic_auth_username, config.basic_auth_password or "")
        elif config.bearer_token:
            self._auth = BearerAuth(config.bearer_token)

    # PUBLIC_INTERFACE
    def build_instant(self, expr: str, ts: datetime, timeout: Optional[float] = None) -> httpx.Request:
        """Request evaluating expr at a single instant."""
        params = self._instant_params(ts)
        return self._new_request(self.instant_suffix, expr, params, timeout)

    # PUBLIC_INTERFACE
    def build_range(
        self, expr: str, start: datetime, end: datetime, timeout: Optional[float] = None
    ) -> httpx.Request:
        """Request evaluating expr over [start, end]."""
        params = self._range_params(start, end)
        return self._new_request(self.range_suffix, expr, params, timeout)

    def _instant_params(self, ts: datetime) -> Params:
        return [("time", format_rfc3339(ts))]

    def _range_params(self, start: datetime, end: datetime) -> Params:
        return [("start", format_rfc3339(start)), ("end", format_rfc3339(end))]

    def _step_params(self) -> Params:
        step = self.config.query_step_sec
        return [("step", f"{step}s")] if step > 0 else []

    def _query_param(self) -> str:
        return "query"

    def _path(self, suffix: str, always_append: bool = False) -> str:
        path = self._base.path
        extra = ""
        if self.config.append_type_prefix and self.type_prefix:
            extra += self.type_prefix
        if suffix and (always_append or not self.config.disable_path_append):
            extra += suffix
        if not extra:
            return path
        return path.rstrip("/") + extra

    def _new_request(
        self,
        suffix: str,
        expr: str,
        params: Params,
        timeout: Optional[float],
        method: Optional[str] = None,
        always_append: bool = False,
    ) -> httpx.Request:
        merged = list(self._base.params.multi_items())
        merged.extend(params)
        merged.extend(self.config.extra_params)
        merged.append((self._query_param(), expr))

        url = self._base.copy_with(path=self._path(suffix, always_append), params=merged)
        headers = [(h.key, h.value) for h in self.config.headers if h]
        deadline = self.config.timeout_sec if timeout is None else timeout
        request = httpx.Request(
            method or self.config.query_method,
            url,
            headers=headers,
            extensions={"timeout": httpx.Timeout(deadline).as_dict()},
        )
        if self._auth is not None:
            request = next(self._auth.sync_auth_flow(request))
        return request


class PrometheusRequestBuilder(RequestBuilder):
    dialect = PROMETHEUS
    type_prefix = "/prometheus"
    instant_suffix = "/api/v1/query"
    range_suffix = "/api/v1/query_range"

    def _instant_params(self, ts: datetime) -> Params:
        if self.config.lookback_sec > 0:
            ts = ts - timedelta(seconds=self.config.lookback_sec)
        return [("time", format_rfc3339(ts))] + self._step_params()

    def _range_params(self, start: datetime, end: datetime) -> Params:
        return [("start", _unix(start)), ("end", _unix(end))] + self._step_params()


class VLogsRequestBuilder(RequestBuilder):
    # VictoriaLogs APIs carry no type prefix.
    dialect = VLOGS
    instant_suffix = "/select/logsql/stats_query"
    range_suffix = "/select/logsql/stats_query_range"

    def _range_params(self, start: datetime, end: datetime) -> Params:
        return super()._range_params(start, end) + self._step_params()


class GraphiteRequestBuilder(RequestBuilder):
    dialect = GRAPHITE
    type_prefix = "/graphite"
    instant_suffix = "/render"

    def _query_param(self) -> str:
        return "target"

    def build_instant(self, expr: str, ts: datetime, timeout: Optional[float] = None) -> httpx.Request:
        frm = "-5min"
        if self.config.lookback_sec > 0:
            frm = _unix(ts - timedelta(seconds=self.config.lookback_sec))
        params = [("format", "json"), ("from", frm), ("until", "now")]
        # The render endpoint is part of the graphite API itself, not an appendable suffix.
        return self._new_request(self.instant_suffix, expr, params, timeout, always_append=True)

    def build_range(
        self, expr: str, start: datetime, end: datetime, timeout: Optional[float] = None
    ) -> httpx.Request:
        raise UnsupportedQueryError(self.dialect, "range")


class SQLRequestBuilder(RequestBuilder):
    dialect = SQL
    type_prefix = "/sql"
    instant_suffix = "/api/v1/query"
    range_suffix = "/api/v1/query_range"
    validate_suffix = "/api/v1/sql_validate"

    # PUBLIC_INTERFACE
    def build_validate(self, expr: str, timeout: Optional[float] = None) -> httpx.Request:
        """POST request asking the backend to validate expr."""
        return self._new_request(self.validate_suffix, expr, [], timeout, method="POST")
