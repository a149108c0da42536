"""Shared test fixtures for azdo-mcp tests."""
import json
from typing import Any, Callable, Optional

import httpx
import pytest
import pytest_asyncio

from azdo_mcp.config import Settings
from azdo_mcp.session import SessionContext

ORG_URL = "https://dev.azure.com/contoso"
ORG_PATH = "/contoso"
DEFAULT_PROJECT = "Contoso Project"

Route = Callable[[httpx.Request], httpx.Response]


class FakeAzureDevOps:
    """In-memory stand-in for the Azure DevOps REST API.

    Routes are keyed by (method, decoded path). Every request is recorded
    so tests can assert on what was sent and in which order.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Route] = {}

    def add(self, method: str, path: str, json_body: Any = None, status: int = 200,
            handler: Optional[Callable[[httpx.Request], httpx.Response]] = None) -> None:
        if handler is None:
            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status, json=json_body)
        self.routes[(method, ORG_PATH + path)] = handler

    def with_projects(self, *names: str) -> "FakeAzureDevOps":
        names = names or (DEFAULT_PROJECT,)
        self.add("GET", "/_apis/projects", {
            "count": len(names),
            "value": [{"id": f"proj-{i}", "name": name} for i, name in enumerate(names)],
        })
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": f"No route for {request.method} {request.url.path}"})
        return route(request)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == ORG_PATH + path]


def body_of(request: httpx.Request) -> Any:
    return json.loads(request.content)


@pytest.fixture
def settings() -> Settings:
    """Settings with small upload limits so chunking is easy to exercise."""
    return Settings(
        _env_file=None,
        org_url=ORG_URL + "/",
        pat="secret-pat",
        project=None,
        upload_chunk_size=4,
        upload_threshold=10,
    )


@pytest.fixture
def fake_api() -> FakeAzureDevOps:
    return FakeAzureDevOps()


@pytest_asyncio.fixture
async def session(settings: Settings, fake_api: FakeAzureDevOps):
    """SessionContext talking to the fake API."""
    ctx = SessionContext(settings, transport=httpx.MockTransport(fake_api.handler))
    yield ctx
    await ctx.aclose()
