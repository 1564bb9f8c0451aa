from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from alertsource.datasource.types import DialectTag, HeaderSpec
from alertsource.errors import FormatError
from alertsource.schemas.common import decode_dialect
from alertsource.schemas.query import SeriesOut


def _decode_headers(value: Any) -> Any:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("headers must be a list of 'key: value' strings")
    out: List[HeaderSpec] = []
    for item in value:
        if isinstance(item, HeaderSpec):
            header = item
        elif isinstance(item, str):
            try:
                header = HeaderSpec.parse(item)
            except FormatError as err:
                raise ValueError(str(err)) from err
        else:
            raise ValueError(f"header must be a string, got {type(item).__name__}")
        # Empty entries parse to the zero header, which is never sent.
        if header:
            out.append(header)
    return out


class RuleConfig(BaseModel):
    """A single alerting or recording rule."""

    alert: Optional[str] = Field(default=None, description="Alert name (alerting rules).")
    record: Optional[str] = Field(default=None, description="Series name (recording rules).")
    expr: str = Field(..., min_length=1, description="Expression in the group's datasource language.")
    labels: Dict[str, str] = Field(default_factory=dict, description="Extra labels attached to results.")

    @model_validator(mode="after")
    def _alert_xor_record(self) -> "RuleConfig":
        if bool(self.alert) == bool(self.record):
            raise ValueError("exactly one of 'alert' or 'record' must be set")
        return self

    @property
    def name(self) -> str:
        return self.alert or self.record or ""


class GroupConfig(BaseModel):
    """A rule group: rules sharing one datasource type, headers and params."""

    name: str = Field(..., min_length=1, description="Group name (unique within the service).")
    type: DialectTag = Field(default_factory=DialectTag, description="Datasource type; unset means the default.")
    interval_sec: int = Field(60, ge=1, le=24 * 3600, description="Evaluation interval (seconds).")
    headers: List[HeaderSpec] = Field(default_factory=list, description="Extra HTTP headers ('key: value').")
    params: Dict[str, str] = Field(default_factory=dict, description="Extra query params for every request.")
    rules: List[RuleConfig] = Field(..., min_length=1, description="Rules in evaluation order.")

    _decode_type = field_validator("type", mode="before")(decode_dialect)
    _decode_headers = field_validator("headers", mode="before")(_decode_headers)

    @field_serializer("type")
    def _encode_type(self, tag: DialectTag) -> Optional[str]:
        return tag.encode() or None

    @field_serializer("headers")
    def _encode_headers(self, headers: List[HeaderSpec]) -> List[str]:
        return [f"{h.key}: {h.value}" for h in headers]


class RulesFile(BaseModel):
    """Top-level YAML document: `groups: [...]`."""

    groups: List[GroupConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_group_names(self) -> "RulesFile":
        seen = set()
        for g in self.groups:
            if g.name in seen:
                raise ValueError(f"duplicate group name {g.name!r}")
            seen.add(g.name)
        return self


class GroupListResponse(BaseModel):
    """Envelope for listing registered groups."""

    items: List[GroupConfig] = Field(..., description="Registered rule groups.")
    total: int = Field(..., ge=0, description="Total count of groups returned.")


class RuleEvaluation(BaseModel):
    """Outcome of evaluating one rule once."""

    rule: str = Field(..., description="Alert or record name.")
    series: List[SeriesOut] = Field(default_factory=list, description="Series returned by the datasource.")
    error: Optional[str] = Field(default=None, description="Error text when the evaluation failed.")


class GroupEvaluationResponse(BaseModel):
    """Outcome of evaluating every rule of a group at one instant."""

    group: str = Field(..., description="Group name.")
    type: str = Field(..., description="Effective datasource type of the group.")
    results: List[RuleEvaluation] = Field(..., description="Per-rule results in rule order.")
