"""Azure DevOps MCP Server - Model Context Protocol integration.

This package exposes Azure DevOps work items, attachments and projects
to AI assistants as MCP tools.

Modules:
- server: stdio MCP server and tool dispatcher
- session: lazily-initialized HTTP client and default project
- tools: MCP tool definitions
- handlers: Tool implementation handlers
- formatters: Response formatting utilities
- query_builder: WIQL construction for search
- uploads: single and chunked attachment upload
- batch: $batch request construction
"""

__version__ = "1.0.0"

from . import formatters
from . import tools
from . import handlers

__all__ = ["formatters", "tools", "handlers", "__version__"]
