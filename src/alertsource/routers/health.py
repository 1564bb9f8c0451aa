from __future__ import annotations

from typing import List

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from alertsource.config import sanitize_url
from alertsource.schemas.common import HealthResponse, utc_now
from alertsource.state import get_state

router = APIRouter(tags=["Health"])


class DatasourceDiagnosticsResponse(BaseModel):
    """Diagnostics model describing how requests to the datasource are shaped."""

    url_sanitized: str = Field(..., description="Datasource base URL with credentials masked.")
    default_type: str = Field(..., description="Effective default datasource type.")
    append_type_prefix: bool = Field(..., description="Whether the dialect route segment is appended.")
    disable_path_append: bool = Field(..., description="Whether the fixed API suffix is skipped.")
    query_method: str = Field(..., description="HTTP method used for queries.")
    header_keys: List[str] = Field(default_factory=list, description="Configured extra header names (values hidden).")
    auth: str = Field(..., description="Configured auth kind: none|basic|bearer.")
    sql_response_format: str = Field(..., description="Selected sql wire revision (v1|v2).")
    timeout_sec: float = Field(..., description="Default per-request timeout (seconds).")
    timestamp: str = Field(..., description="UTC timestamp when the diagnostics were produced (ISO string).")


@router.get(
    "/",
    response_model=HealthResponse,
    summary="Health check",
    description="Basic service liveness check used by deployment and the rule loader.",
    operation_id="health_check",
)
def health_check() -> HealthResponse:
    """Return service liveness status."""
    return HealthResponse(status="ok", message="Healthy", timestamp=utc_now())


@router.get(
    "/api/health/datasource",
    response_model=DatasourceDiagnosticsResponse,
    summary="Datasource diagnostics",
    description="Reports datasource request-shaping configuration. Credentials and header values are never returned.",
    operation_id="datasource_diagnostics",
)
def datasource_diagnostics(request: Request) -> DatasourceDiagnosticsResponse:
    """Return datasource configuration diagnostics."""
    cfg = get_state(request.app).config
    auth = "none"
    if cfg.basic_auth_username is not None:
        auth = "basic"
    elif cfg.bearer_token:
        auth = "bearer"
    return DatasourceDiagnosticsResponse(
        url_sanitized=sanitize_url(cfg.url),
        default_type=cfg.default_type.effective(),
        append_type_prefix=cfg.append_type_prefix,
        disable_path_append=cfg.disable_path_append,
        query_method=cfg.query_method,
        header_keys=[h.key for h in cfg.headers],
        auth=auth,
        sql_response_format=cfg.sql_response_format,
        timeout_sec=float(cfg.timeout_sec),
        timestamp=utc_now().isoformat(),
    )
