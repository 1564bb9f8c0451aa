"""Query-language parser adapters.

The datasource layer never owns a grammar. It talks to parsers through the
ExpressionParser protocol; the adapters below are shallow lexical checks used
when no real parser is injected (unbalanced brackets, unterminated strings,
empty expressions). Deployments that have a full parser bind it through
ParserSet.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Protocol, Tuple

from alertsource.datasource.types import GRAPHITE, PROMETHEUS, VLOGS


class ParseError(Exception):
    """Raised by parsers when an expression is rejected."""


@dataclass(frozen=True)
class ParsedExpr:
    """Minimal view of a parsed expression needed by validation."""

    expr: str
    # Fields of the final stats pipe grouping, e.g. ("host", "_time") for `stats by (host, _time:5m)`.
    by_fields: Tuple[str, ...] = ()


class ExpressionParser(Protocol):
    def parse(self, expr: str) -> ParsedExpr:
        ...


_PAIRS = {")": "(", "]": "[", "}": "{"}
_QUOTES = ("'", '"', "`")


def _check_lexical(expr: str) -> None:
    if not expr.strip():
        raise ParseError("empty expression")
    stack = []
    quote: Optional[str] = None
    escaped = False
    for pos, ch in enumerate(expr):
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in _QUOTES:
            quote = ch
        elif ch in "([{":
            stack.append((ch, pos))
        elif ch in _PAIRS:
            if not stack or stack[-1][0] != _PAIRS[ch]:
                raise ParseError(f"unexpected {ch!r} at position {pos}")
            stack.pop()
    if quote:
        raise ParseError(f"unterminated string literal starting with {quote}")
    if stack:
        ch, pos = stack[-1]
        raise ParseError(f"unclosed {ch!r} at position {pos}")


class LexicalParser:
    """Bracket/quote balance check for expression languages without a bound parser."""

    def parse(self, expr: str) -> ParsedExpr:
        _check_lexical(expr)
        return ParsedExpr(expr=expr)


_STATS_PIPE = re.compile(r"(?:^|\|)\s*stats\b(?P<rest>[^|]*)$")
_STATS_BY = re.compile(r"^\s*(?:by\s*)?\((?P<fields>[^)]*)\)")


class LogsQLStatsParser:
    """
    Lexical check for stats queries: the last pipe must be `stats`.

    Grouping fields are extracted from `stats [by] (f1, f2:step, ...)`; a bucketed
    field like `_time:5m` is reported by its name only.
    """

    def parse(self, expr: str) -> ParsedExpr:
        _check_lexical(expr)
        m = _STATS_PIPE.search(expr)
        if m is None:
            raise ParseError("missing `| stats ...` pipe at the end of the query")
        by = _STATS_BY.match(m.group("rest"))
        fields: Tuple[str, ...] = ()
        if by:
            fields = tuple(
                f.split(":", 1)[0].strip() for f in by.group("fields").split(",") if f.strip()
            )
        return ParsedExpr(expr=expr, by_fields=fields)


@dataclass(frozen=True)
class ParserSet:
    """Parsers bound per dialect name."""

    parsers: Mapping[str, ExpressionParser] = field(default_factory=dict)

    # PUBLIC_INTERFACE
    @classmethod
    def default(cls) -> "ParserSet":
        """Lexical adapters for every locally validated dialect."""
        return cls(
            parsers={
                PROMETHEUS: LexicalParser(),
                GRAPHITE: LexicalParser(),
                VLOGS: LogsQLStatsParser(),
            }
        )

    def get(self, dialect: str) -> Optional[ExpressionParser]:
        return self.parsers.get(dialect)

    def bind(self, dialect: str, parser: ExpressionParser) -> "ParserSet":
        merged: Dict[str, ExpressionParser] = dict(self.parsers)
        merged[dialect] = parser
        return ParserSet(parsers=merged)
