from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock
from typing import Dict, Optional

import httpx
from fastapi import FastAPI

from alertsource.config import DatasourceConfig
from alertsource.datasource.parsers import ParserSet
from alertsource.datasource.remote import SQLRemoteValidator
from alertsource.datasource.request import SQLRequestBuilder
from alertsource.datasource.validation import ExpressionValidator
from alertsource.schemas.rules import GroupConfig


@dataclass
class AppState:
    """Typed app.state container for shared singletons."""

    config: DatasourceConfig
    validator: ExpressionValidator
    # Steady-state queries.
    http: httpx.AsyncClient
    # Blocking sql validation at rule load time.
    validate_http: httpx.Client
    groups: Dict[str, GroupConfig] = field(default_factory=dict)
    groups_lock: RLock = field(default_factory=RLock)


# PUBLIC_INTERFACE
def init_state(
    app: FastAPI,
    config: DatasourceConfig,
    transport: Optional[httpx.BaseTransport] = None,
    async_transport: Optional[httpx.AsyncBaseTransport] = None,
    parsers: Optional[ParserSet] = None,
) -> None:
    """Initialize app.state with HTTP clients, the expression validator and an empty group registry."""
    validate_http = httpx.Client(transport=transport, timeout=config.timeout_sec)
    http = httpx.AsyncClient(transport=async_transport, timeout=config.timeout_sec)
    remote = SQLRemoteValidator(SQLRequestBuilder(config), validate_http)
    app.state.state = AppState(
        config=config,
        validator=ExpressionValidator(parsers=parsers, remote=remote),
        http=http,
        validate_http=validate_http,
    )


# PUBLIC_INTERFACE
def get_state(app: FastAPI) -> AppState:
    """Fetch typed AppState from a FastAPI app."""
    return app.state.state  # type: ignore[attr-defined]
