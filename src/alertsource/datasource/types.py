from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from alertsource.errors import FormatError, UnknownDialectError

PROMETHEUS = "prometheus"
GRAPHITE = "graphite"
VLOGS = "vlogs"
SQL = "sql"

DEFAULT_DIALECT = PROMETHEUS
KNOWN_DIALECTS: Tuple[str, ...] = (PROMETHEUS, GRAPHITE, VLOGS, SQL)


@dataclass(frozen=True)
class DialectTag:
    """
    Names the query language/backend an expression belongs to.

    The zero value (empty name) is the unset state and behaves as the default
    dialect. Dispatch must always go through effective(), never through name.
    """

    name: str = ""

    @classmethod
    def prometheus(cls) -> "DialectTag":
        return cls(PROMETHEUS)

    @classmethod
    def graphite(cls) -> "DialectTag":
        return cls(GRAPHITE)

    @classmethod
    def vlogs(cls) -> "DialectTag":
        return cls(VLOGS)

    @classmethod
    def sql(cls) -> "DialectTag":
        return cls(SQL)

    @classmethod
    def raw(cls, name: str) -> "DialectTag":
        """Build a tag from an arbitrary string without validation."""
        return cls(name)

    # PUBLIC_INTERFACE
    @classmethod
    def decode(cls, text: str) -> "DialectTag":
        """Decode a tag from configuration text; only recognized names are accepted."""
        if text not in KNOWN_DIALECTS:
            raise UnknownDialectError(text)
        return cls(text)

    def encode(self) -> str:
        return self.name

    def effective(self) -> str:
        return self.name or DEFAULT_DIALECT

    def replace(self, other: "DialectTag") -> "DialectTag":
        return DialectTag(other.name)

    def __str__(self) -> str:
        return self.effective()


@dataclass(frozen=True)
class HeaderSpec:
    """A single HTTP header. The zero value (empty key) must never be sent."""

    key: str = ""
    value: str = ""

    # PUBLIC_INTERFACE
    @classmethod
    def parse(cls, text: str) -> "HeaderSpec":
        """Parse `key: value`; the first colon splits, surrounding whitespace is trimmed."""
        if text == "":
            return cls()
        key, sep, value = text.partition(":")
        if not sep:
            raise FormatError(text)
        return cls(key=key.strip(), value=value.strip())

    def __bool__(self) -> bool:
        return bool(self.key)


# PUBLIC_INTERFACE
def parse_headers(text: str, sep: str = "^^") -> Tuple[HeaderSpec, ...]:
    """Parse a separator-joined list of headers, dropping empty entries."""
    if not text:
        return ()
    headers = [HeaderSpec.parse(part.strip()) for part in text.split(sep)]
    return tuple(h for h in headers if h)


@dataclass
class Metric:
    """One time series: a label set plus index-aligned timestamps and values."""

    labels: Dict[str, str] = field(default_factory=dict)
    timestamps: List[int] = field(default_factory=list)
    values: List[float] = field(default_factory=list)

    def add_label(self, key: str, value: str) -> None:
        self.labels[key] = value

    def add_sample(self, timestamp: int, value: float) -> None:
        self.timestamps.append(int(timestamp))
        self.values.append(float(value))

    def __len__(self) -> int:
        return len(self.timestamps)


@dataclass
class QueryResult:
    """Series decoded from one backend response, in backend order."""

    series: List[Metric] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.series)
