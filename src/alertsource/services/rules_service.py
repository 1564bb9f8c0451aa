from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import yaml
from fastapi import Request

from alertsource.errors import DatasourceError
from alertsource.schemas.common import utc_now
from alertsource.schemas.query import SeriesOut
from alertsource.schemas.rules import (
    GroupConfig,
    GroupEvaluationResponse,
    RuleConfig,
    RuleEvaluation,
    RulesFile,
)
from alertsource.services.datasource_service import client_for, dialect_for, effective_tag
from alertsource.state import AppState, get_state

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def load_rules_file(path: str | Path) -> List[GroupConfig]:
    """Read rule groups from a YAML file (`groups: [...]`)."""
    raw = Path(path).read_text(encoding="utf-8")
    doc = yaml.safe_load(raw) or {}
    return RulesFile.model_validate(doc).groups


# PUBLIC_INTERFACE
def validate_group(state: AppState, group: GroupConfig) -> None:
    """Validate every rule expression; the first rejection propagates and the group is not registered."""
    tag = effective_tag(state, group.type)
    for rule in group.rules:
        try:
            state.validator.validate(tag, rule.expr)
        except DatasourceError as err:
            logger.warning("Rule %r in group %r rejected: %s", rule.name, group.name, err)
            raise


def _store(state: AppState, group: GroupConfig) -> None:
    with state.groups_lock:
        replaced = group.name in state.groups
        state.groups[group.name] = group
    logger.info(
        "Registered rule group %r (type=%s, rules=%d, replaced=%s)",
        group.name,
        effective_tag(state, group.type),
        len(group.rules),
        replaced,
    )


# PUBLIC_INTERFACE
def register_rules_file(state: AppState, path: str | Path) -> List[GroupConfig]:
    """Load and register all groups from a rules file; nothing is registered if any rule is rejected."""
    groups = load_rules_file(path)
    for group in groups:
        validate_group(state, group)
    for group in groups:
        _store(state, group)
    return groups


# PUBLIC_INTERFACE
def register_group(request: Request, group: GroupConfig) -> GroupConfig:
    """Validate and register (or replace) a rule group."""
    state = get_state(request.app)
    validate_group(state, group)
    _store(state, group)
    return group


# PUBLIC_INTERFACE
def list_groups(request: Request) -> List[GroupConfig]:
    """Return registered groups ordered by name."""
    state = get_state(request.app)
    with state.groups_lock:
        return [state.groups[name] for name in sorted(state.groups)]


# PUBLIC_INTERFACE
def get_group(request: Request, name: str) -> Optional[GroupConfig]:
    """Fetch a registered group by name; None if absent."""
    state = get_state(request.app)
    with state.groups_lock:
        return state.groups.get(name)


async def _evaluate_rule(client, rule: RuleConfig, ts: datetime) -> RuleEvaluation:
    try:
        result = await client.query(rule.expr, ts)
    except DatasourceError as err:
        # Per-tick failure: reported for this rule only, the next evaluation retries.
        logger.exception("Rule evaluation failed for rule=%r", rule.name)
        return RuleEvaluation(rule=rule.name, error=str(err))
    series = [SeriesOut.from_metric(m) for m in result.series]
    for s in series:
        s.labels.update(rule.labels)
    return RuleEvaluation(rule=rule.name, series=series)


# PUBLIC_INTERFACE
async def evaluate_group(request: Request, group: GroupConfig, ts: Optional[datetime] = None) -> GroupEvaluationResponse:
    """Evaluate every rule of a group concurrently at ts (now when omitted)."""
    state = get_state(request.app)
    dialect = dialect_for(state, group.type, headers=tuple(group.headers), params=group.params)
    client = client_for(state, dialect)
    when = ts or utc_now()
    results = await asyncio.gather(*(_evaluate_rule(client, rule, when) for rule in group.rules))
    return GroupEvaluationResponse(group=group.name, type=dialect.name, results=list(results))
