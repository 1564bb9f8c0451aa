from __future__ import annotations

from typing import Optional


class DatasourceError(Exception):
    """Base class for every error raised by the datasource layer."""


class UnknownDialectError(DatasourceError):
    """Raised when a dialect name is not one of the recognized datasource types."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"unknown datasource type={name!r}, want prometheus, graphite, vlogs or sql")


class ValidationError(DatasourceError):
    """A dialect parser rejected the expression (syntax or semantic rule)."""

    def __init__(self, dialect: str, expr: str, cause: object):
        self.dialect = dialect
        self.expr = expr
        self.cause = cause
        super().__init__(f"bad {dialect} expr: {expr!r}, err: {cause}")


class RemoteValidationError(DatasourceError):
    """Remote (sql) validation failed: transport error, non-success status or undecodable body."""

    def __init__(self, expr: str, detail: str):
        self.expr = expr
        self.detail = detail
        super().__init__(f"bad sql expr: {expr!r}, err: {detail}")


class FormatError(DatasourceError):
    """Header text is not in the `key: value` form."""

    def __init__(self, text: str):
        self.text = text
        super().__init__(f"missing ':' in header {text!r}; expecting \"key: value\" format")


class DecodeError(DatasourceError):
    """A backend response body could not be decoded into series."""

    def __init__(self, context: str, cause: object):
        self.context = context
        self.cause = cause
        super().__init__(f"error parsing response for {context}: {cause}")


class QueryError(DatasourceError):
    """The query round-trip failed at the transport level or returned a non-success status."""

    def __init__(self, context: str, detail: str, status_code: Optional[int] = None):
        self.context = context
        self.detail = detail
        self.status_code = status_code
        if status_code is None:
            msg = f"query {context} failed: {detail}"
        else:
            msg = f"unexpected response code {status_code} for {context}: {detail}"
        super().__init__(msg)


class UnsupportedQueryError(DatasourceError):
    """The dialect cannot serve the requested kind of query (e.g. graphite range queries)."""

    def __init__(self, dialect: str, operation: str):
        self.dialect = dialect
        self.operation = operation
        super().__init__(f"{operation} query is not supported for {dialect}")
