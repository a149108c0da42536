"""Azure DevOps MCP Server - expose work tracking to AI assistants over stdio."""
import asyncio
import logging
import sys
import traceback
from typing import Any, Awaitable, Callable

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError
from mcp.types import ErrorData, INTERNAL_ERROR, TextContent, Tool
from pydantic import ValidationError

from . import handlers
from . import tools
from .config import get_settings
from .errors import ConfigurationError, RemoteApiError, ToolError, UnknownToolError
from .schemas import (
    AddCommentRequest,
    BatchUpdateWorkItemsRequest,
    CreateWorkItemRequest,
    DeleteAttachmentRequest,
    DeleteWorkItemRequest,
    GetProjectRequest,
    GetWorkItemRequest,
    GetWorkItemsBatchRequest,
    LinkCommitRequest,
    LinkParentRequest,
    ListAttachmentsRequest,
    ListProjectsRequest,
    SearchWorkItemsRequest,
    ToolRequest,
    UpdateWorkItemRequest,
    UploadAttachmentRequest,
    parse_arguments,
)
from .session import SessionContext

# Configure logging to stderr; stdout carries the MCP protocol
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
    force=True
)
logger = logging.getLogger("azdo-mcp")

Handler = Callable[[Any, SessionContext], Awaitable[list[TextContent]]]

# Map tool names to (request model, handler)
HANDLERS: dict[str, tuple[type[ToolRequest], Handler]] = {
    # Work item handlers
    "create_work_item": (CreateWorkItemRequest, handlers.handle_create_work_item),
    "get_work_item_details": (GetWorkItemRequest, handlers.handle_get_work_item_details),
    "update_work_item": (UpdateWorkItemRequest, handlers.handle_update_work_item),
    "delete_work_item": (DeleteWorkItemRequest, handlers.handle_delete_work_item),
    "get_work_items_batch": (GetWorkItemsBatchRequest, handlers.handle_get_work_items_batch),
    "batch_update_work_items": (BatchUpdateWorkItemsRequest, handlers.handle_batch_update_work_items),
    "search_work_items": (SearchWorkItemsRequest, handlers.handle_search_work_items),
    # Project handlers
    "list_projects": (ListProjectsRequest, handlers.handle_list_projects),
    "get_project_details": (GetProjectRequest, handlers.handle_get_project_details),
    # Link and comment handlers
    "link_commit_to_work_item": (LinkCommitRequest, handlers.handle_link_commit_to_work_item),
    "link_parent_work_item": (LinkParentRequest, handlers.handle_link_parent_work_item),
    "add_work_item_comment": (AddCommentRequest, handlers.handle_add_work_item_comment),
    # Attachment handlers
    "list_work_item_attachments": (ListAttachmentsRequest, handlers.handle_list_work_item_attachments),
    "upload_work_item_attachment": (UploadAttachmentRequest, handlers.handle_upload_work_item_attachment),
    "delete_work_item_attachment": (DeleteAttachmentRequest, handlers.handle_delete_work_item_attachment),
}


async def dispatch(name: str, arguments: Any, session: SessionContext) -> list[TextContent]:
    """Validate arguments, run the handler and normalize every failure.

    Raises:
        McpError: Carrying the error code and message for the caller
    """
    try:
        entry = HANDLERS.get(name)
        if entry is None:
            raise UnknownToolError(name)
        model, handler = entry
        request = parse_arguments(model, arguments)
        return await handler(request, session)

    except ToolError as e:
        logger.error(f"{type(e).__name__} during {name} call: {e.message}")
        raise McpError(e.to_error_data()) from e

    except httpx.HTTPStatusError as e:
        # Log detailed HTTP error information
        logger.error(f"HTTP error during {name} call:")
        logger.error(f"  Status: {e.response.status_code}")
        logger.error(f"  URL: {e.request.url}")
        logger.error(f"  Response text: {e.response.text}")
        raise McpError(RemoteApiError.from_http_error(e).to_error_data()) from e

    except httpx.RequestError as e:
        # Network/connection errors
        logger.error(f"Request error during {name} call:")
        logger.error(f"  Error type: {type(e).__name__}")
        logger.error(f"  Error message: {str(e)}")
        raise McpError(RemoteApiError.from_http_error(e).to_error_data()) from e

    except ConfigurationError as e:
        logger.error(f"Configuration error during {name} call: {e}")
        raise McpError(ErrorData(code=INTERNAL_ERROR, message=str(e))) from e

    except Exception as e:
        # Catch-all for unexpected errors
        logger.error(f"Unexpected error during {name} call:")
        logger.error(f"  Error type: {type(e).__name__}")
        logger.error(f"  Error message: {str(e)}")
        logger.error(f"  Traceback:\n{traceback.format_exc()}")
        raise McpError(ErrorData(code=INTERNAL_ERROR, message=f"{type(e).__name__}: {str(e)}")) from e


def create_server(session: SessionContext) -> Server:
    """Build the MCP server bound to ``session``."""
    app = Server("azdo-mcp")

    @app.list_tools()
    async def list_tools() -> list[Tool]:
        """List available MCP tools for Azure DevOps."""
        return tools.get_tools()

    @app.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        """Handle MCP tool calls by delegating to the dispatcher."""
        logger.info(f"Tool call: {name}")
        return await dispatch(name, arguments, session)

    return app


async def main():
    """Run the MCP server.

    Configuration and the default project are resolved before the
    transport starts; either failing aborts startup.
    """
    try:
        settings = get_settings()
    except ValidationError as e:
        raise ConfigurationError(
            "Missing or invalid configuration: set AZURE_DEVOPS_ORG_URL and AZURE_DEVOPS_PAT. "
            f"Details: {e}"
        ) from e

    logger.setLevel(settings.log_level)
    logger.info(f"MCP Server starting with AZURE_DEVOPS_ORG_URL: {settings.org_url}")

    session = SessionContext(settings)
    try:
        await session.default_project()
        app = create_server(session)
        async with stdio_server() as (read_stream, write_stream):
            await app.run(read_stream, write_stream, app.create_initialization_options())
    finally:
        await session.aclose()


def run():
    """Console entry point."""
    try:
        asyncio.run(main())
    except (ConfigurationError, RemoteApiError) as e:
        logger.error(f"Server failed to start: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
