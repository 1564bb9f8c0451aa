from __future__ import annotations

from typing import Dict, Optional

from alertsource.datasource.parsers import ExpressionParser, ParseError, ParserSet
from alertsource.datasource.remote import RemoteValidator
from alertsource.datasource.types import GRAPHITE, PROMETHEUS, SQL, VLOGS, DialectTag
from alertsource.errors import UnknownDialectError, ValidationError

# Grouping by the time bucket turns every bucket into its own label value.
TIME_BUCKET_FIELD = "_time"


class _ParserCheck:
    def __init__(self, dialect: str, parser: Optional[ExpressionParser]):
        self.dialect = dialect
        self.parser = parser

    def __call__(self, expr: str) -> None:
        self._parse(expr)

    def _parse(self, expr: str):
        if self.parser is None:
            raise ValidationError(self.dialect, expr, "no parser configured")
        try:
            return self.parser.parse(expr)
        except ParseError as err:
            raise ValidationError(self.dialect, expr, err) from err


class _LogsQLCheck(_ParserCheck):
    def __call__(self, expr: str) -> None:
        parsed = self._parse(expr)
        if TIME_BUCKET_FIELD in parsed.by_fields:
            raise ValidationError(
                self.dialect, expr, "cannot contain time buckets stats pipe `stats by (_time:step)`"
            )


class ExpressionValidator:
    """
    Gatekeeper run before an expression is registered for periodic evaluation.

    prometheus, graphite and vlogs are checked locally by parsers; sql is
    delegated to a RemoteValidator and therefore blocks on network I/O.
    """

    def __init__(self, parsers: Optional[ParserSet] = None, remote: Optional[RemoteValidator] = None):
        parsers = parsers or ParserSet.default()
        self._remote = remote
        self._local: Dict[str, _ParserCheck] = {
            PROMETHEUS: _ParserCheck(PROMETHEUS, parsers.get(PROMETHEUS)),
            GRAPHITE: _ParserCheck(GRAPHITE, parsers.get(GRAPHITE)),
            VLOGS: _LogsQLCheck(VLOGS, parsers.get(VLOGS)),
        }

    def is_local(self, tag: DialectTag) -> bool:
        return tag.effective() in self._local

    # PUBLIC_INTERFACE
    def validate(self, tag: DialectTag, expr: str) -> None:
        """Raise ValidationError/RemoteValidationError/UnknownDialectError if expr is unacceptable."""
        name = tag.effective()
        check = self._local.get(name)
        if check is not None:
            check(expr)
            return
        if name == SQL:
            if self._remote is None:
                raise ValidationError(SQL, expr, "no remote validator configured")
            self._remote.validate(expr)
            return
        raise UnknownDialectError(tag.name)
