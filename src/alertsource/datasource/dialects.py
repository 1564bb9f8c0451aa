from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple, Union

import httpx

from alertsource.config import DatasourceConfig
from alertsource.datasource.request import (
    GraphiteRequestBuilder,
    PrometheusRequestBuilder,
    RequestBuilder,
    SQLRequestBuilder,
    VLogsRequestBuilder,
)
from alertsource.datasource.response import (
    GraphiteResponseNormalizer,
    PrometheusResponseNormalizer,
    ResponseNormalizer,
    SQLResponseNormalizer,
    VLogsResponseNormalizer,
)
from alertsource.datasource.types import GRAPHITE, PROMETHEUS, SQL, VLOGS, DialectTag, QueryResult
from alertsource.datasource.validation import ExpressionValidator
from alertsource.errors import UnknownDialectError

_Factory = Tuple[Callable[[DatasourceConfig], RequestBuilder], Callable[[DatasourceConfig], ResponseNormalizer]]

_REGISTRY: Dict[str, _Factory] = {
    PROMETHEUS: (PrometheusRequestBuilder, lambda cfg: PrometheusResponseNormalizer()),
    GRAPHITE: (GraphiteRequestBuilder, lambda cfg: GraphiteResponseNormalizer()),
    VLOGS: (VLogsRequestBuilder, lambda cfg: VLogsResponseNormalizer()),
    SQL: (SQLRequestBuilder, lambda cfg: SQLResponseNormalizer(cfg.sql_response_format)),
}


@dataclass(frozen=True)
class Dialect:
    """Everything dialect-specific about one backend, bound once at construction time."""

    tag: DialectTag
    builder: RequestBuilder
    normalizer: ResponseNormalizer
    validator: ExpressionValidator

    @property
    def name(self) -> str:
        return self.tag.effective()

    def validate(self, expr: str) -> None:
        self.validator.validate(self.tag, expr)

    def build_instant(self, expr: str, ts: datetime, timeout: Optional[float] = None) -> httpx.Request:
        return self.builder.build_instant(expr, ts, timeout=timeout)

    def build_range(
        self, expr: str, start: datetime, end: datetime, timeout: Optional[float] = None
    ) -> httpx.Request:
        return self.builder.build_range(expr, start, end, timeout=timeout)

    def parse_response(self, request: httpx.Request, body: Union[bytes, str]) -> QueryResult:
        return self.normalizer.parse(request, body)


# PUBLIC_INTERFACE
def resolve_dialect(
    tag: DialectTag,
    config: DatasourceConfig,
    validator: Optional[ExpressionValidator] = None,
) -> Dialect:
    """Select the capability set for tag; raises UnknownDialectError for unrecognized names."""
    factory = _REGISTRY.get(tag.effective())
    if factory is None:
        raise UnknownDialectError(tag.name)
    make_builder, make_normalizer = factory
    return Dialect(
        tag=tag,
        builder=make_builder(config),
        normalizer=make_normalizer(config),
        validator=validator or ExpressionValidator(),
    )
