from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx
from fastapi import FastAPI

from alertsource import __version__
from alertsource.config import DatasourceConfig, load_config
from alertsource.datasource.parsers import ParserSet
from alertsource.routers import health, query, rules
from alertsource.services.rules_service import register_rules_file
from alertsource.state import get_state, init_state

openapi_tags = [
    {"name": "Health", "description": "Service health and datasource diagnostics."},
    {"name": "Datasource", "description": "Expression validation and instant/range queries."},
    {"name": "Rules", "description": "Rule group registration (validated at load time) and one-shot evaluation."},
]

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def create_app(
    config: Optional[DatasourceConfig] = None,
    transport: Optional[httpx.BaseTransport] = None,
    async_transport: Optional[httpx.AsyncBaseTransport] = None,
    parsers: Optional[ParserSet] = None,
) -> FastAPI:
    """
    Build the service around one datasource.

    Run with `uvicorn --factory alertsource.main:create_app`; configuration is
    then read from the environment (see alertsource.config.load_config).
    """
    app = FastAPI(
        title="Alert Datasource API",
        description=(
            "Multi-backend query datasource used by the alerting engine. "
            "Validates rule expressions per datasource type (prometheus, graphite, vlogs, sql), "
            "shapes backend HTTP requests and normalizes responses into one series model."
        ),
        version=__version__,
        openapi_tags=openapi_tags,
    )

    cfg = config or load_config()
    init_state(app, cfg, transport=transport, async_transport=async_transport, parsers=parsers)

    @app.on_event("startup")
    async def _on_startup() -> None:
        """Startup hook: register rule groups from RULES_PATH; any rejected rule aborts startup."""
        state = get_state(app)
        if not state.config.rules_path:
            return
        try:
            # Blocking: sql expressions are validated by the backend.
            groups = await asyncio.to_thread(register_rules_file, state, state.config.rules_path)
        except Exception:
            logger.exception("Failed loading rules from %s", state.config.rules_path)
            raise
        logger.info("Loaded %d rule group(s) from %s", len(groups), state.config.rules_path)

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        """Shutdown hook: close datasource HTTP clients."""
        state = get_state(app)
        await state.http.aclose()
        state.validate_http.close()

    app.include_router(health.router)
    app.include_router(query.router)
    app.include_router(rules.router)
    return app
