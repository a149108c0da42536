"""Error types raised by tool handlers and normalized at the dispatch boundary."""
from typing import Optional

import httpx
from mcp.types import ErrorData, INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND


class ConfigurationError(Exception):
    """Raised when the server cannot start (bad settings, no default project)."""
    pass


class ToolError(Exception):
    """Base class for errors reported back to the MCP caller."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_error_data(self) -> ErrorData:
        return ErrorData(code=self.code, message=self.message)


class InvalidArgumentError(ToolError):
    """Caller supplied a missing, malformed or out-of-range argument."""

    code = INVALID_PARAMS

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class UnknownToolError(ToolError):
    """No handler is registered under the requested tool name."""

    code = METHOD_NOT_FOUND

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class RemoteApiError(ToolError):
    """The Azure DevOps API rejected a request or could not be reached."""

    code = INTERNAL_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @classmethod
    def from_http_error(cls, error: httpx.HTTPError) -> "RemoteApiError":
        """Build from an httpx error, preferring the API's own ``message``."""
        if isinstance(error, httpx.HTTPStatusError):
            response = error.response
            detail = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    detail = body.get("message")
            except ValueError:
                pass
            detail = detail or response.text or str(error)
            return cls(
                f"Azure DevOps returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        return cls(f"Connection to Azure DevOps failed: {error}")
