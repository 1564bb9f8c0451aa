from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from alertsource.config import DatasourceConfig
from alertsource.main import create_app


@dataclass
class FakeBackend:
    """
    Stand-in for the datasource HTTP API.

    Routes are keyed by (method, path); unmatched requests get 404 with a
    JSON message. Every request is recorded for assertions.
    """

    routes: Dict[Tuple[str, str], Tuple[int, str]] = field(default_factory=dict)
    requests: List[httpx.Request] = field(default_factory=list)
    raise_error: Optional[Exception] = None

    def reply(self, method: str, path: str, status_code: int = 200, body: Any = None, text: Optional[str] = None) -> None:
        if text is None:
            text = json.dumps(body if body is not None else {})
        self.routes[(method, path)] = (status_code, text)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_error is not None:
            raise self.raise_error
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": f"no route for {request.url.path}"})
        status_code, text = route
        return httpx.Response(status_code, text=text, headers={"Content-Type": "application/json"})

    @property
    def last(self) -> httpx.Request:
        assert self.requests, "backend received no requests"
        return self.requests[-1]


@pytest.fixture
def anyio_backend() -> str:
    """The package is asyncio-based (asyncio.gather / asyncio.to_thread)."""
    return "asyncio"


@pytest.fixture
def backend() -> FakeBackend:
    """Recording fake datasource backend."""
    return FakeBackend()


@pytest.fixture
def transport(backend: FakeBackend) -> httpx.MockTransport:
    """httpx transport routing every request to the fake backend (usable by sync and async clients)."""
    return httpx.MockTransport(backend.handler)


@pytest.fixture
def make_config() -> Callable[..., DatasourceConfig]:
    """Factory for DatasourceConfig with test defaults."""

    def _make(**overrides: Any) -> DatasourceConfig:
        base = DatasourceConfig(url="http://datasource.test")
        return replace(base, **overrides)

    return _make


@pytest.fixture
def config(make_config) -> DatasourceConfig:
    """Default config: sql type prefix on, API suffix on."""
    return make_config(append_type_prefix=True)


@pytest.fixture
def app(config: DatasourceConfig, transport: httpx.MockTransport):
    """FastAPI app wired to the fake backend."""
    return create_app(config, transport=transport, async_transport=transport)


@pytest.fixture
async def async_client(app) -> AsyncIterator[httpx.AsyncClient]:
    """
    Async HTTP client bound to the FastAPI ASGI app.

    ASGITransport does not run lifespan events; rule files are exercised
    through the service functions directly.
    """
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sql_v2_body() -> Dict[str, Any]:
    return {
        "data": [
            {
                "labels": {"job": "x"},
                "points": [{"timestamp": 10, "value": 1.5}, {"timestamp": 20, "value": 2.5}],
            }
        ]
    }
