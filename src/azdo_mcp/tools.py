"""MCP tool definitions for Azure DevOps.

This module is the single list of tools advertised to MCP clients. Input
validation happens against the request models in ``schemas``.
"""

from mcp.types import Tool

from .schemas import MAX_BATCH_IDS, MAX_BATCH_OPERATIONS, MAX_SEARCH_RESULTS

_PROJECT_NAME = {
    "type": "string",
    "description": "Project name (optional, defaults to the server's default project)"
}
_SUMMARIZE = {
    "type": "boolean",
    "description": "Return a short human-readable summary instead of the full JSON (default: false)"
}


def get_tools() -> list[Tool]:
    """Get the list of all MCP tools for Azure DevOps work tracking."""
    return [
        # ============================================================================
        # Work Item Tools
        # ============================================================================
        Tool(
            name="create_work_item",
            description="Create a new Azure DevOps work item (e.g. User Story, Bug, Task). "
                       "Area and iteration path default to the project name.",
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "description": "Work item type (e.g. 'User Story', 'Bug', 'Task')"
                    },
                    "title": {
                        "type": "string",
                        "description": "Work item title"
                    },
                    "description": {
                        "type": "string",
                        "description": "Description (HTML or plain text)"
                    },
                    "areaPath": {
                        "type": "string",
                        "description": "Area path (default: project name)"
                    },
                    "iterationPath": {
                        "type": "string",
                        "description": "Iteration path (default: project name)"
                    },
                    "assignedTo": {
                        "type": "string",
                        "description": "Display name or email of the assignee"
                    },
                    "tags": {
                        "type": "string",
                        "description": "Semicolon-separated tags"
                    },
                    "projectName": _PROJECT_NAME,
                    "additionalFields": {
                        "type": "object",
                        "description": "Extra fields keyed by reference name (e.g. {\"Microsoft.VSTS.Common.Priority\": 1})",
                        "additionalProperties": True
                    }
                },
                "required": ["type", "title"]
            }
        ),
        Tool(
            name="get_work_item_details",
            description="Get an Azure DevOps work item by ID, including relations.",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {
                        "type": "integer",
                        "description": "Work item ID"
                    },
                    "summarize": _SUMMARIZE,
                    "expand": {
                        "type": "string",
                        "enum": ["all", "relations", "fields", "links", "none"],
                        "description": "What to expand in the response (default: all)"
                    }
                },
                "required": ["id"]
            }
        ),
        Tool(
            name="update_work_item",
            description="Update fields of an existing work item (e.g. state, assignee). "
                       "Field names are reference names such as 'System.State'.",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {
                        "type": "integer",
                        "description": "Work item ID"
                    },
                    "updates": {
                        "type": "object",
                        "description": "Fields to set, e.g. {\"System.State\": \"Active\", \"System.AssignedTo\": \"user@example.com\"}",
                        "additionalProperties": True
                    },
                    "comment": {
                        "type": "string",
                        "description": "History comment recorded with the update"
                    }
                },
                "required": ["id", "updates"]
            }
        ),
        Tool(
            name="delete_work_item",
            description="Delete a work item. By default it moves to the recycle bin and can be restored; "
                       "destroy=true deletes it permanently.",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {
                        "type": "integer",
                        "description": "Work item ID"
                    },
                    "destroy": {
                        "type": "boolean",
                        "description": "Permanently delete instead of moving to the recycle bin (default: false)"
                    },
                    "projectName": _PROJECT_NAME
                },
                "required": ["id"]
            }
        ),
        Tool(
            name="get_work_items_batch",
            description=f"Get up to {MAX_BATCH_IDS} work items by ID in one request.",
            inputSchema={
                "type": "object",
                "properties": {
                    "ids": {
                        "type": "array",
                        "items": {"type": "integer"},
                        "description": f"Work item IDs (1-{MAX_BATCH_IDS})"
                    },
                    "fields": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Fields to return (default: all fields)"
                    },
                    "summarize": _SUMMARIZE
                },
                "required": ["ids"]
            }
        ),
        Tool(
            name="batch_update_work_items",
            description="Create, update and delete several work items in one batch request. "
                       "Returns how many operations succeeded and failed.",
            inputSchema={
                "type": "object",
                "properties": {
                    "operations": {
                        "type": "array",
                        "description": f"Operations (1-{MAX_BATCH_OPERATIONS}). PATCH and DELETE need workItemId, "
                                       "POST needs workItemType, PATCH and POST need fields.",
                        "items": {
                            "type": "object",
                            "properties": {
                                "method": {"type": "string", "enum": ["PATCH", "POST", "DELETE"]},
                                "workItemId": {"type": "integer"},
                                "workItemType": {"type": "string"},
                                "fields": {"type": "object", "additionalProperties": True}
                            }
                        }
                    },
                    "bypassRules": {
                        "type": "boolean",
                        "description": "Skip work item type rule validation (default: false)"
                    },
                    "suppressNotifications": {
                        "type": "boolean",
                        "description": "Do not send change notifications (default: false)"
                    },
                    "projectName": _PROJECT_NAME
                },
                "required": ["operations"]
            }
        ),
        Tool(
            name="search_work_items",
            description="Search work items with optional filters. Returns matching items with key fields. "
                       "All filters are combined with AND; tags match if any listed tag is present.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Text matched against title and description, or an exact ID if numeric"
                    },
                    "projectName": _PROJECT_NAME,
                    "workItemType": {
                        "type": "string",
                        "description": "Work item type, e.g. 'User Story', 'Bug'"
                    },
                    "state": {
                        "type": "string",
                        "description": "State, e.g. 'Active'"
                    },
                    "assignedTo": {
                        "type": "string",
                        "description": "Assignee display name or email"
                    },
                    "tags": {
                        "type": "string",
                        "description": "Semicolon-separated tags (matches any)"
                    },
                    "createdAfter": {
                        "type": "string",
                        "description": "ISO 8601 date; only items created on or after it"
                    },
                    "updatedAfter": {
                        "type": "string",
                        "description": "ISO 8601 date; only items changed on or after it"
                    },
                    "fields": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Fields to return (default: id, title, state, type, assignee, tags, dates)"
                    },
                    "orderBy": {
                        "type": "object",
                        "properties": {
                            "field": {"type": "string"},
                            "direction": {"type": "string", "enum": ["ASC", "DESC", "asc", "desc"]}
                        },
                        "required": ["field"],
                        "description": "Sort order (default: System.ChangedDate DESC)"
                    },
                    "top": {
                        "type": "integer",
                        "description": f"Maximum results (default: 50, max: {MAX_SEARCH_RESULTS})"
                    }
                }
            }
        ),
        # ============================================================================
        # Project Tools
        # ============================================================================
        Tool(
            name="list_projects",
            description="List all projects in the Azure DevOps organization.",
            inputSchema={
                "type": "object",
                "properties": {
                    "summarize": _SUMMARIZE
                }
            }
        ),
        Tool(
            name="get_project_details",
            description="Get an Azure DevOps project by ID or name.",
            inputSchema={
                "type": "object",
                "properties": {
                    "projectIdOrName": {
                        "type": "string",
                        "description": "Project ID or name"
                    },
                    "summarize": _SUMMARIZE
                },
                "required": ["projectIdOrName"]
            }
        ),
        # ============================================================================
        # Link and Comment Tools
        # ============================================================================
        Tool(
            name="link_commit_to_work_item",
            description="Link a Git commit to a work item.",
            inputSchema={
                "type": "object",
                "properties": {
                    "workItemId": {
                        "type": "integer",
                        "description": "Work item ID"
                    },
                    "repositoryId": {
                        "type": "string",
                        "description": "Git repository ID (GUID)"
                    },
                    "commitSha": {
                        "type": "string",
                        "description": "Full 40-character commit SHA"
                    },
                    "projectName": _PROJECT_NAME,
                    "comment": {
                        "type": "string",
                        "description": "Comment stored on the link"
                    }
                },
                "required": ["workItemId", "repositoryId", "commitSha"]
            }
        ),
        Tool(
            name="link_parent_work_item",
            description="Set a parent for a work item (adds a hierarchy link).",
            inputSchema={
                "type": "object",
                "properties": {
                    "workItemId": {
                        "type": "integer",
                        "description": "Child work item ID"
                    },
                    "parentId": {
                        "type": "integer",
                        "description": "Parent work item ID"
                    },
                    "comment": {
                        "type": "string",
                        "description": "Comment stored on the link"
                    }
                },
                "required": ["workItemId", "parentId"]
            }
        ),
        Tool(
            name="add_work_item_comment",
            description="Add a discussion comment to a work item.",
            inputSchema={
                "type": "object",
                "properties": {
                    "workItemId": {
                        "type": "integer",
                        "description": "Work item ID"
                    },
                    "text": {
                        "type": "string",
                        "description": "Comment text (HTML or plain text)"
                    },
                    "projectName": _PROJECT_NAME
                },
                "required": ["workItemId", "text"]
            }
        ),
        # ============================================================================
        # Attachment Tools
        # ============================================================================
        Tool(
            name="list_work_item_attachments",
            description="List files attached to a work item.",
            inputSchema={
                "type": "object",
                "properties": {
                    "workItemId": {
                        "type": "integer",
                        "description": "Work item ID"
                    }
                },
                "required": ["workItemId"]
            }
        ),
        Tool(
            name="upload_work_item_attachment",
            description="Upload a file (Base64) and attach it to a work item. "
                       "Files above the threshold (default 100 MiB) are uploaded in chunks.",
            inputSchema={
                "type": "object",
                "properties": {
                    "workItemId": {
                        "type": "integer",
                        "description": "Work item ID"
                    },
                    "fileName": {
                        "type": "string",
                        "description": "File name to record"
                    },
                    "content": {
                        "type": "string",
                        "description": "Base64-encoded file content"
                    },
                    "projectName": _PROJECT_NAME,
                    "comment": {
                        "type": "string",
                        "description": "Comment stored on the attachment link"
                    },
                    "chunkSize": {
                        "type": "integer",
                        "description": "Chunk size in bytes for chunked uploads (default: 4194304)"
                    },
                    "chunkedThreshold": {
                        "type": "integer",
                        "description": "Size in bytes above which chunked upload is used (default: 104857600)"
                    }
                },
                "required": ["workItemId", "fileName", "content"]
            }
        ),
        Tool(
            name="delete_work_item_attachment",
            description="Delete an attachment by its ID.",
            inputSchema={
                "type": "object",
                "properties": {
                    "attachmentId": {
                        "type": "string",
                        "description": "Attachment ID (GUID)"
                    },
                    "projectName": _PROJECT_NAME
                },
                "required": ["attachmentId"]
            }
        ),
    ]
