from __future__ import annotations

import json
import math

import httpx
import pytest

from alertsource.datasource.response import (
    GraphiteResponseNormalizer,
    PrometheusResponseNormalizer,
    SQLResponseNormalizer,
    VLogsResponseNormalizer,
)
from alertsource.errors import DecodeError

REQ = httpx.Request("GET", "http://ds/sql/api/v1/query?query=select+1&time=2024-05-01T00%3A00%3A00Z")


def _dump(body) -> bytes:
    return json.dumps(body).encode()


def test_sql_single_item_flattens_points(sql_v2_body):
    result = SQLResponseNormalizer().parse(REQ, _dump(sql_v2_body))
    assert len(result.series) == 1
    m = result.series[0]
    assert m.labels == {"job": "x"}
    assert m.timestamps == [10, 20]
    assert m.values == [1.5, 2.5]


def test_sql_item_without_samples_is_dropped():
    body = {"data": [{"labels": {"job": "x"}, "points": []}]}
    assert SQLResponseNormalizer().parse(REQ, _dump(body)).series == []


def test_sql_zero_items_is_empty_not_error():
    assert SQLResponseNormalizer().parse(REQ, _dump({"data": []})).series == []


def test_sql_preserves_item_order_and_labels_verbatim():
    body = {
        "data": [
            {"labels": {"b": "2", "weird label!": "v"}, "points": [{"timestamp": 1, "value": 1}]},
            {"labels": {}, "points": []},
            {"labels": {"a": "1"}, "points": [{"timestamp": 2, "value": 2}]},
        ]
    }
    series = SQLResponseNormalizer().parse(REQ, _dump(body)).series
    assert [m.labels for m in series] == [{"b": "2", "weird label!": "v"}, {"a": "1"}]


@pytest.mark.parametrize("payload", [b"{not json", b"", b'{"data": [{"labels": {}, "points": [{"timestamp": "x"}]}]}'])
def test_sql_malformed_body_raises_decode_error(payload):
    with pytest.raises(DecodeError) as exc:
        SQLResponseNormalizer().parse(REQ, payload)
    assert "/sql/api/v1/query" in exc.value.context


def test_decode_error_context_is_redacted():
    req = httpx.Request("GET", "http://u:pw@ds/sql/api/v1/query?query=q&token=abc")
    with pytest.raises(DecodeError) as exc:
        SQLResponseNormalizer().parse(req, b"[")
    assert "pw" not in str(exc.value)
    assert "abc" not in str(exc.value)


# Two sql wire revisions have been observed and neither is authoritative:
#   v1: bare array of {labels, datapoints}
#   v2: {data: [{labels, points|datapoints}], error}
# The normalizer requires the revision to be selected explicitly; these tests
# pin both shapes and show that a mismatched selection is a decode error
# rather than a silent empty result.


def test_sql_wire_v1_bare_array_with_datapoints():
    body = [
        {"labels": {"instance": "localhost:5001", "job": "sql"}, "datapoints": [{"timestamp": 100, "value": 42.5}]},
        {"labels": {"job": "empty"}, "datapoints": []},
    ]
    series = SQLResponseNormalizer("v1").parse(REQ, _dump(body)).series
    assert len(series) == 1
    assert series[0].labels == {"instance": "localhost:5001", "job": "sql"}
    assert series[0].timestamps == [100]
    assert series[0].values == [42.5]


def test_sql_wire_v2_accepts_datapoints_key():
    body = {"error": "", "data": [{"labels": {"job": "sql"}, "datapoints": [{"timestamp": 1, "value": 2.0}]}]}
    series = SQLResponseNormalizer("v2").parse(REQ, _dump(body)).series
    assert series[0].values == [2.0]


def test_sql_wire_revision_mismatch_is_decode_error(sql_v2_body):
    with pytest.raises(DecodeError):
        SQLResponseNormalizer("v1").parse(REQ, _dump(sql_v2_body))
    with pytest.raises(DecodeError):
        SQLResponseNormalizer("v2").parse(REQ, _dump([{"labels": {}, "datapoints": []}]))


def test_sql_unknown_wire_revision_rejected():
    with pytest.raises(ValueError):
        SQLResponseNormalizer("v3")


def test_prometheus_vector():
    body = {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [
                {"metric": {"__name__": "up", "job": "a"}, "value": [1700000000.5, "1"]},
                {"metric": {"__name__": "up", "job": "b"}, "value": [1700000000.5, "NaN"]},
            ],
        },
    }
    series = PrometheusResponseNormalizer().parse(REQ, _dump(body)).series
    assert [m.labels["job"] for m in series] == ["a", "b"]
    assert series[0].timestamps == [1700000000]
    assert series[0].values == [1.0]
    assert math.isnan(series[1].values[0])


def test_prometheus_matrix_drops_empty_series():
    body = {
        "status": "success",
        "data": {
            "resultType": "matrix",
            "result": [
                {"metric": {"job": "a"}, "values": [[10, "1"], [20, "+Inf"]]},
                {"metric": {"job": "b"}, "values": []},
            ],
        },
    }
    series = PrometheusResponseNormalizer().parse(REQ, _dump(body)).series
    assert len(series) == 1
    assert series[0].timestamps == [10, 20]
    assert series[0].values[0] == 1.0
    assert math.isinf(series[0].values[1])


def test_prometheus_scalar():
    body = {"status": "success", "data": {"resultType": "scalar", "result": [30, "5"]}}
    series = PrometheusResponseNormalizer().parse(REQ, _dump(body)).series
    assert series[0].labels == {}
    assert series[0].values == [5.0]


def test_prometheus_error_status_is_decode_error():
    body = {"status": "error", "errorType": "bad_data", "error": "parse error at char 3"}
    with pytest.raises(DecodeError) as exc:
        PrometheusResponseNormalizer().parse(REQ, _dump(body))
    assert "parse error at char 3" in str(exc.value)


def test_prometheus_unknown_result_type():
    body = {"status": "success", "data": {"resultType": "string", "result": [1, "x"]}}
    with pytest.raises(DecodeError):
        PrometheusResponseNormalizer().parse(REQ, _dump(body))


def test_vlogs_uses_prometheus_envelope():
    body = {
        "status": "success",
        "data": {"resultType": "vector", "result": [{"metric": {"level": "error"}, "value": [5, "12"]}]},
    }
    series = VLogsResponseNormalizer().parse(REQ, _dump(body)).series
    assert series[0].labels == {"level": "error"}
    assert series[0].values == [12.0]


def test_graphite_keeps_latest_non_null_point():
    body = [
        {"target": "a.b", "tags": {"name": "a.b"}, "datapoints": [[1.0, 100], [2.0, 160], [None, 220]]},
        {"target": "c.d", "tags": {"name": "c.d"}, "datapoints": [[None, 100]]},
    ]
    series = GraphiteResponseNormalizer().parse(REQ, _dump(body)).series
    assert len(series) == 1
    assert series[0].labels == {"name": "a.b"}
    assert series[0].timestamps == [160]
    assert series[0].values == [2.0]
