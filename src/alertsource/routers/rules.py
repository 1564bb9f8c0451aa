from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Path, Query, Request, status

from alertsource.errors import DatasourceError
from alertsource.routers.query import to_http_exception
from alertsource.schemas.common import ErrorResponse
from alertsource.schemas.rules import GroupConfig, GroupEvaluationResponse, GroupListResponse
from alertsource.services import rules_service

router = APIRouter(prefix="/api/rules", tags=["Rules"])


@router.get(
    "/groups",
    response_model=GroupListResponse,
    summary="List rule groups",
    description="List registered rule groups ordered by name.",
    operation_id="list_rule_groups",
)
def list_groups(request: Request) -> GroupListResponse:
    """List registered rule groups."""
    items = rules_service.list_groups(request)
    return GroupListResponse(items=items, total=len(items))


@router.post(
    "/groups",
    response_model=GroupConfig,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Register rule group",
    description=(
        "Validate every rule expression of the group against its datasource type and register it. "
        "A single rejected expression rejects the whole group. Registering an existing name replaces it."
    ),
    operation_id="register_rule_group",
)
def register_group(request: Request, payload: GroupConfig) -> GroupConfig:
    """Register a rule group."""
    try:
        return rules_service.register_group(request, payload)
    except DatasourceError as err:
        raise to_http_exception(err) from err


@router.post(
    "/groups/{name}/evaluate",
    response_model=GroupEvaluationResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Evaluate rule group",
    description="Evaluate every rule of a registered group once at the given time. Per-rule failures are reported inline.",
    operation_id="evaluate_rule_group",
)
async def evaluate_group(
    request: Request,
    name: str = Path(..., description="Group name."),
    time: Optional[datetime] = Query(default=None, description="Evaluation time; defaults to now (UTC)."),
) -> GroupEvaluationResponse:
    """Evaluate a registered group once."""
    group = rules_service.get_group(request, name)
    if group is None:
        raise HTTPException(status_code=404, detail="group not found")
    return await rules_service.evaluate_group(request, group, time)
