"""Session context shared by every tool handler.

Holds the one authenticated HTTP client and the default project name for
the lifetime of the process. Both are built lazily on first use.
"""
import asyncio
import base64
import logging
from typing import Optional
from urllib.parse import quote

import httpx

from .config import Settings
from .errors import ConfigurationError, RemoteApiError

logger = logging.getLogger("azdo-mcp.session")
http_logger = logging.getLogger("azdo-mcp.http")


def basic_auth_header(pat: str) -> str:
    """Build the Basic auth header value Azure DevOps expects for a PAT."""
    token = base64.b64encode(f":{pat}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def quote_segment(value: str) -> str:
    """Percent-encode a single URL path segment (project names contain spaces)."""
    return quote(str(value), safe="")


async def _log_request(request: httpx.Request) -> None:
    http_logger.info(f"--> {request.method} {request.url}")


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    http_logger.info(f"<-- {response.status_code} {request.method} {request.url}")


class SessionContext:
    """Lazily-initialized client and default project.

    Args:
        settings: Loaded process settings
        transport: Optional httpx transport (tests pass a MockTransport)
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._project_name: Optional[str] = settings.project
        self._init_lock = asyncio.Lock()

    @property
    def org_url(self) -> str:
        return self.settings.org_url

    @property
    def api_version(self) -> str:
        return self.settings.api_version

    def params(self, **extra) -> dict:
        """Query parameters for a request, always including api-version."""
        params = {"api-version": self.api_version}
        params.update({k: v for k, v in extra.items() if v is not None})
        return params

    def get_client(self) -> httpx.AsyncClient:
        """Return the process-wide client, creating it on first call."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.org_url,
                timeout=self.settings.timeout,
                headers={
                    "Authorization": basic_auth_header(self.settings.pat),
                    "Content-Type": "application/json",
                },
                event_hooks={"request": [_log_request], "response": [_log_response]},
                transport=self._transport,
            )
            logger.debug(f"Created HTTP client for {self.org_url}")
        return self._client

    async def default_project(self) -> str:
        """Resolve the default project name, fetching it at most once.

        The first project returned by the organization's project list is
        used unless AZURE_DEVOPS_PROJECT is configured.

        Raises:
            RemoteApiError: If the project list cannot be fetched
            ConfigurationError: If the organization has no projects
        """
        if self._project_name is not None:
            return self._project_name

        async with self._init_lock:
            if self._project_name is None:
                logger.info("Fetching projects to determine the default project name...")
                client = self.get_client()
                try:
                    response = await client.get("/_apis/projects", params=self.params())
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    raise RemoteApiError.from_http_error(e) from e
                projects = response.json().get("value") or []
                if not projects or not projects[0].get("name"):
                    raise ConfigurationError("No projects found in the Azure DevOps organization")
                self._project_name = projects[0]["name"]
                logger.info(f"Using default project: {self._project_name}")

        return self._project_name

    async def resolve_project(self, override: Optional[str] = None) -> str:
        """Use the caller's project when given, otherwise the default project."""
        if override:
            return override
        return await self.default_project()

    def work_item_web_url(self, project: str, work_item_id: int) -> str:
        return f"{self.org_url}/{quote_segment(project)}/_workitems/edit/{work_item_id}"

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
