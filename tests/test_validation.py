from __future__ import annotations

import httpx
import pytest

from alertsource.datasource.parsers import LogsQLStatsParser, ParsedExpr, ParseError, ParserSet
from alertsource.datasource.remote import SQLRemoteValidator
from alertsource.datasource.request import SQLRequestBuilder
from alertsource.datasource.types import DialectTag
from alertsource.datasource.validation import ExpressionValidator
from alertsource.errors import RemoteValidationError, UnknownDialectError, ValidationError


@pytest.fixture
def sql_validator(make_config, backend, transport) -> ExpressionValidator:
    builder = SQLRequestBuilder(make_config(append_type_prefix=True))
    remote = SQLRemoteValidator(builder, httpx.Client(transport=transport))
    return ExpressionValidator(remote=remote)


def test_prometheus_default_tag_validates_locally():
    v = ExpressionValidator()
    v.validate(DialectTag(), 'sum(rate(http_requests_total{code=~"5.."}[5m])) by (job)')
    assert v.is_local(DialectTag())


@pytest.mark.parametrize("expr", ["", "sum(rate(x[5m])", 'up{job="a}', "rate(x[5m]))"])
def test_prometheus_bad_expr_wrapped_in_validation_error(expr):
    with pytest.raises(ValidationError) as exc:
        ExpressionValidator().validate(DialectTag.prometheus(), expr)
    assert exc.value.dialect == "prometheus"
    assert exc.value.expr == expr
    assert isinstance(exc.value.cause, ParseError)
    assert isinstance(exc.value.__cause__, ParseError)


def test_graphite_validation():
    v = ExpressionValidator()
    v.validate(DialectTag.graphite(), "sumSeries(app.*.requests)")
    with pytest.raises(ValidationError):
        v.validate(DialectTag.graphite(), "sumSeries(app.*.requests")


def test_vlogs_rejects_time_bucket_grouping():
    v = ExpressionValidator()
    with pytest.raises(ValidationError) as exc:
        v.validate(DialectTag.vlogs(), "error | stats by (_time:5m, host) count() as errors")
    assert "_time" in str(exc.value)


@pytest.mark.parametrize(
    "expr",
    [
        "error | stats by (host, _time:5m) count()",
        "error | stats by (_time) count()",
        "error | stats (_time:5m, host) count() as errors",
    ],
)
def test_vlogs_rejects_time_bucket_with_or_without_by(expr):
    with pytest.raises(ValidationError, match="_time"):
        ExpressionValidator().validate(DialectTag.vlogs(), expr)


def test_vlogs_accepts_same_query_without_time_bucket():
    ExpressionValidator().validate(DialectTag.vlogs(), "error | stats by (host) count() as errors")


def test_vlogs_requires_stats_pipe():
    with pytest.raises(ValidationError):
        ExpressionValidator().validate(DialectTag.vlogs(), "error | fields host")


def test_logsql_parser_reports_by_fields():
    parsed = LogsQLStatsParser().parse("_time:5m error | stats by(host, _time:1m) count()")
    assert parsed.by_fields == ("host", "_time")
    assert LogsQLStatsParser().parse("error | stats (host) count()").by_fields == ("host",)
    assert LogsQLStatsParser().parse("error | stats count() as n").by_fields == ()


def test_unknown_dialect():
    with pytest.raises(UnknownDialectError) as exc:
        ExpressionValidator().validate(DialectTag.raw("loki"), "{app=\"x\"}")
    assert exc.value.name == "loki"
    assert not ExpressionValidator().is_local(DialectTag.raw("loki"))


def test_injected_parser_is_used():
    class RejectAll:
        def parse(self, expr: str) -> ParsedExpr:
            raise ParseError("nope")

    v = ExpressionValidator(parsers=ParserSet.default().bind("prometheus", RejectAll()))
    with pytest.raises(ValidationError, match="nope"):
        v.validate(DialectTag.prometheus(), "up")


def test_missing_parser_is_validation_error():
    v = ExpressionValidator(parsers=ParserSet())
    with pytest.raises(ValidationError, match="no parser configured"):
        v.validate(DialectTag.graphite(), "a.b")


def test_sql_without_remote_validator_fails():
    with pytest.raises(ValidationError, match="no remote validator"):
        ExpressionValidator().validate(DialectTag.sql(), "select 1")


def test_sql_remote_validation_success(sql_validator, backend):
    backend.reply("POST", "/sql/api/v1/sql_validate", 200, {"message": "ok"})
    sql_validator.validate(DialectTag.sql(), "select avg(v) from cpu")
    req = backend.last
    assert req.method == "POST"
    assert req.url.params["query"] == "select avg(v) from cpu"
    assert not sql_validator.is_local(DialectTag.sql())


def test_sql_remote_validation_surfaces_backend_message(sql_validator, backend):
    backend.reply("POST", "/sql/api/v1/sql_validate", 400, {"message": "unknown column v2"})
    with pytest.raises(RemoteValidationError) as exc:
        sql_validator.validate(DialectTag.sql(), "select v2 from cpu")
    assert exc.value.detail == "unknown column v2"
    assert "400" not in str(exc.value)


def test_sql_remote_validation_undecodable_error_body(sql_validator, backend):
    backend.reply("POST", "/sql/api/v1/sql_validate", 500, text="<html>oops</html>")
    with pytest.raises(RemoteValidationError, match="error parsing sql validate response"):
        sql_validator.validate(DialectTag.sql(), "select 1")


def test_sql_remote_validation_transport_error(sql_validator, backend):
    backend.raise_error = httpx.ConnectError("connection refused")
    with pytest.raises(RemoteValidationError, match="bad sql http client") as exc:
        sql_validator.validate(DialectTag.sql(), "select 1")
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


def test_sql_remote_validation_requires_exactly_200(sql_validator, backend):
    backend.reply("POST", "/sql/api/v1/sql_validate", 204, text="{}")
    with pytest.raises(RemoteValidationError, match="unexpected response code 204"):
        sql_validator.validate(DialectTag.sql(), "select 1")
