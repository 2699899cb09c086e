"""
Shared fixtures: an in-memory session store and a fake Graph API served
through httpx.MockTransport.
"""

import pytest
import httpx

from adwizard.config import Settings
from adwizard.store import MemorySessionStore

GRAPH_PREFIX = "/v18.0"


class FakeGraph:
    """Routes Graph API paths (without the version prefix) to canned responses."""

    def __init__(self):
        self.routes: dict[str, object] = {}
        self.requests: list[httpx.Request] = []

    def add(self, path: str, payload=None, status: int = 200, text: str | None = None):
        self.routes[path] = (status, payload, text)

    def fail(self, path: str, exc: Exception):
        self.routes[path] = exc

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix(GRAPH_PREFIX)
        route = self.routes.get(path)
        if route is None:
            return httpx.Response(404, json={"error": {"message": f"Unknown path {path}"}})
        if isinstance(route, Exception):
            raise route
        status, payload, text = route
        if text is not None:
            return httpx.Response(status, text=text)
        return httpx.Response(status, json=payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.removeprefix(GRAPH_PREFIX) == path]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(_env_file=None, public_base_url="http://wizard.test")


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def graph():
    return FakeGraph()
