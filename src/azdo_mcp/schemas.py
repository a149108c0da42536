"""Pydantic request models, one per tool.

Tool arguments arrive as camelCase JSON (``workItemId``, ``projectName``)
and are validated once at the dispatch boundary. Unknown arguments are
rejected.
"""
import re
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import InvalidArgumentError

MAX_BATCH_IDS = 200
MAX_SEARCH_RESULTS = 200
MAX_BATCH_OPERATIONS = 200

_SHA_RE = re.compile(r"^[0-9a-fA-F]{40}$")


class ToolRequest(BaseModel):
    """Base for tool argument models."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )


def parse_arguments(model: type[ToolRequest], arguments: Optional[dict]) -> ToolRequest:
    """Validate raw tool arguments into ``model``.

    Raises:
        InvalidArgumentError: Naming the first offending argument
    """
    try:
        return model.model_validate(arguments or {})
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "arguments"
        raise InvalidArgumentError(f"Invalid argument '{field}': {first['msg']}", field=field) from e


def _validate_iso8601(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"'{value}' is not an ISO 8601 date or timestamp")
    return value


# Work Item Schemas

class CreateWorkItemRequest(ToolRequest):
    type: str = Field(..., min_length=1, description="Work item type, e.g. 'Bug', 'User Story', 'Task'")
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    area_path: Optional[str] = None
    iteration_path: Optional[str] = None
    assigned_to: Optional[str] = None
    tags: Optional[str] = None
    project_name: Optional[str] = None
    additional_fields: Optional[dict[str, Any]] = None


class GetWorkItemRequest(ToolRequest):
    id: int = Field(..., gt=0)
    summarize: bool = False
    expand: Literal["all", "relations", "fields", "links", "none"] = "all"


class UpdateWorkItemRequest(ToolRequest):
    id: int = Field(..., gt=0)
    updates: dict[str, Any]
    comment: Optional[str] = None

    @field_validator("updates")
    @classmethod
    def updates_not_empty(cls, v: dict[str, Any]) -> dict[str, Any]:
        if not v:
            raise ValueError("at least one field update is required")
        return v


class DeleteWorkItemRequest(ToolRequest):
    id: int = Field(..., gt=0)
    destroy: bool = False
    project_name: Optional[str] = None


class GetWorkItemsBatchRequest(ToolRequest):
    ids: list[int] = Field(..., min_length=1, max_length=MAX_BATCH_IDS)
    fields: Optional[list[str]] = None
    summarize: bool = False


class BatchUpdateWorkItemsRequest(ToolRequest):
    """Operations stay loosely typed here; batch.py validates them by position."""

    operations: list[dict[str, Any]] = Field(..., min_length=1, max_length=MAX_BATCH_OPERATIONS)
    bypass_rules: bool = False
    suppress_notifications: bool = False
    project_name: Optional[str] = None


class OrderBy(ToolRequest):
    field: str = Field(..., min_length=1)
    direction: str = "DESC"

    @field_validator("direction")
    @classmethod
    def normalize_direction(cls, v: str) -> str:
        v = v.upper()
        if v not in ("ASC", "DESC"):
            raise ValueError("direction must be 'ASC' or 'DESC'")
        return v


class SearchWorkItemsRequest(ToolRequest):
    query: Optional[str] = None
    project_name: Optional[str] = None
    work_item_type: Optional[str] = None
    state: Optional[str] = None
    assigned_to: Optional[str] = None
    tags: Optional[str] = None
    created_after: Optional[str] = None
    updated_after: Optional[str] = None
    fields: Optional[list[str]] = None
    order_by: Optional[OrderBy] = None
    top: int = Field(50, ge=1, le=MAX_SEARCH_RESULTS)

    @field_validator("created_after", "updated_after")
    @classmethod
    def check_iso8601(cls, v: Optional[str]) -> Optional[str]:
        return _validate_iso8601(v)


# Project Schemas

class ListProjectsRequest(ToolRequest):
    summarize: bool = False


class GetProjectRequest(ToolRequest):
    project_id_or_name: str = Field(..., min_length=1)
    summarize: bool = False


# Link and Comment Schemas

class LinkCommitRequest(ToolRequest):
    work_item_id: int = Field(..., gt=0)
    repository_id: str = Field(..., min_length=1)
    commit_sha: str
    project_name: Optional[str] = None
    comment: Optional[str] = None

    @field_validator("commit_sha")
    @classmethod
    def check_sha(cls, v: str) -> str:
        if not _SHA_RE.match(v):
            raise ValueError("commit SHA must be 40 hexadecimal characters")
        return v.lower()


class LinkParentRequest(ToolRequest):
    work_item_id: int = Field(..., gt=0)
    parent_id: int = Field(..., gt=0)
    comment: Optional[str] = None

    @model_validator(mode="after")
    def not_self_parent(self) -> "LinkParentRequest":
        if self.work_item_id == self.parent_id:
            raise ValueError("a work item cannot be its own parent")
        return self


class AddCommentRequest(ToolRequest):
    work_item_id: int = Field(..., gt=0)
    text: str = Field(..., min_length=1)
    project_name: Optional[str] = None


# Attachment Schemas

class ListAttachmentsRequest(ToolRequest):
    work_item_id: int = Field(..., gt=0)


class UploadAttachmentRequest(ToolRequest):
    work_item_id: int = Field(..., gt=0)
    file_name: str = Field(..., min_length=1)
    content: str = Field(..., description="Base64-encoded file content")
    project_name: Optional[str] = None
    comment: Optional[str] = None
    chunk_size: Optional[int] = Field(None, gt=0)
    chunked_threshold: Optional[int] = Field(None, ge=0)


class DeleteAttachmentRequest(ToolRequest):
    attachment_id: str = Field(..., min_length=1)
    project_name: Optional[str] = None
