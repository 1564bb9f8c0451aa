from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
import pydantic
from pydantic import AliasChoices, BaseModel, Field, TypeAdapter

from alertsource.datasource.request import redacted
from alertsource.datasource.types import Metric, QueryResult
from alertsource.errors import DecodeError

logger = logging.getLogger(__name__)


# ---- sql ----


class SQLPoint(BaseModel):
    timestamp: int
    value: float


class SQLTarget(BaseModel):
    labels: Dict[str, str] = Field(default_factory=dict)
    points: List[SQLPoint] = Field(
        default_factory=list,
        validation_alias=AliasChoices("points", "datapoints"),
    )


class SQLResponseV1Target(BaseModel):
    labels: Dict[str, str] = Field(default_factory=dict)
    points: List[SQLPoint] = Field(default_factory=list, alias="datapoints")


class SQLResponseV2(BaseModel):
    data: List[SQLTarget]
    error: Optional[str] = None
    message: Optional[str] = None


_sql_v1 = TypeAdapter(List[SQLResponseV1Target])


def _sql_metrics(targets: List[Union[SQLTarget, SQLResponseV1Target]]) -> List[Metric]:
    out: List[Metric] = []
    for target in targets:
        if not target.points:
            continue
        m = Metric()
        for p in target.points:
            m.add_sample(p.timestamp, p.value)
        for k, v in target.labels.items():
            m.add_label(k, v)
        out.append(m)
    return out


# ---- prometheus / vlogs ----

PromSample = Tuple[float, str]


class PromVectorItem(BaseModel):
    metric: Dict[str, str] = Field(default_factory=dict)
    value: PromSample


class PromMatrixItem(BaseModel):
    metric: Dict[str, str] = Field(default_factory=dict)
    values: List[PromSample] = Field(default_factory=list)


class PromData(BaseModel):
    result_type: str = Field(..., alias="resultType")
    result: Any = None


class PromResponse(BaseModel):
    status: str
    data: Optional[PromData] = None
    error_type: Optional[str] = Field(default=None, alias="errorType")
    error: Optional[str] = None


_prom_vector = TypeAdapter(List[PromVectorItem])
_prom_matrix = TypeAdapter(List[PromMatrixItem])
_prom_scalar = TypeAdapter(PromSample)


def _prom_metric(labels: Dict[str, str], samples: List[PromSample]) -> Metric:
    m = Metric(labels=dict(labels))
    for ts, val in samples:
        m.add_sample(int(ts), float(val))
    return m


def _prom_metrics(data: PromData) -> List[Metric]:
    if data.result_type == "vector":
        return [_prom_metric(item.metric, [item.value]) for item in _prom_vector.validate_python(data.result or [])]
    if data.result_type == "matrix":
        return [
            _prom_metric(item.metric, item.values)
            for item in _prom_matrix.validate_python(data.result or [])
            if item.values
        ]
    if data.result_type == "scalar":
        return [_prom_metric({}, [_prom_scalar.validate_python(data.result)])]
    raise ValueError(f"unknown result type {data.result_type!r}")


# ---- graphite ----


class GraphiteTarget(BaseModel):
    target: str = ""
    tags: Dict[str, str] = Field(default_factory=dict)
    datapoints: List[Tuple[Optional[float], float]] = Field(default_factory=list)


_graphite = TypeAdapter(List[GraphiteTarget])


def _graphite_metrics(targets: List[GraphiteTarget]) -> List[Metric]:
    out: List[Metric] = []
    for target in targets:
        points = [(val, ts) for val, ts in target.datapoints if val is not None]
        if not points:
            continue
        # Only the latest datapoint of the render window is an evaluation result.
        val, ts = points[-1]
        m = Metric(labels=dict(target.tags))
        m.add_sample(int(ts), val)
        out.append(m)
    return out


# ---- normalizers ----


class ResponseNormalizer:
    """Decodes a backend response body into a QueryResult."""

    dialect: str = ""

    # PUBLIC_INTERFACE
    def parse(self, request: httpx.Request, body: Union[bytes, str]) -> QueryResult:
        """Decode body; any decoding failure is raised as DecodeError with a redacted request context."""
        try:
            series = self._decode(body)
        except (pydantic.ValidationError, ValueError, TypeError) as err:
            context = redacted(request)
            logger.debug("Failed decoding %s response for %s: %s", self.dialect, context, err)
            raise DecodeError(context, err) from err
        return QueryResult(series=series)

    def _decode(self, body: Union[bytes, str]) -> List[Metric]:
        raise NotImplementedError


class SQLResponseNormalizer(ResponseNormalizer):
    """
    sql backends have shipped two wire revisions:

      v1: [{"labels": {...}, "datapoints": [{"timestamp": 1, "value": 1.0}]}]
      v2: {"data": [{"labels": {...}, "points": [...]}], "error": ""}

    Neither is authoritative, so the revision is selected explicitly.
    v2 also accepts "datapoints" as the sample list key.
    """

    dialect = "sql"

    def __init__(self, version: str = "v2"):
        if version not in ("v1", "v2"):
            raise ValueError(f"unknown sql response format {version!r}")
        self.version = version

    def _decode(self, body: Union[bytes, str]) -> List[Metric]:
        if self.version == "v1":
            return _sql_metrics(_sql_v1.validate_json(body))
        return _sql_metrics(SQLResponseV2.model_validate_json(body).data)


class PrometheusResponseNormalizer(ResponseNormalizer):
    dialect = "prometheus"

    def _decode(self, body: Union[bytes, str]) -> List[Metric]:
        resp = PromResponse.model_validate_json(body)
        if resp.status != "success":
            raise ValueError(f"response error, errorType: {resp.error_type!r}, error: {resp.error!r}")
        if resp.data is None:
            raise ValueError("missing data in successful response")
        return _prom_metrics(resp.data)


class VLogsResponseNormalizer(PrometheusResponseNormalizer):
    # stats_query endpoints answer in the Prometheus querying API format.
    dialect = "vlogs"


class GraphiteResponseNormalizer(ResponseNormalizer):
    dialect = "graphite"

    def _decode(self, body: Union[bytes, str]) -> List[Metric]:
        return _graphite_metrics(_graphite.validate_json(body))
