"""Shared formatting functions for MCP responses."""
import json
from typing import Any, Optional

from .query_builder import split_tags

CUSTOM_FIELD_PREFIX = "Custom."


def to_json(data: Any) -> str:
    """Pretty-print a JSON payload for a text content block."""
    return json.dumps(data, indent=2, ensure_ascii=False)


def identity_name(value: Any) -> Optional[str]:
    """Display name of an identity field (dict from the API, or a plain string)."""
    if not value:
        return None
    if isinstance(value, dict):
        return value.get("displayName") or value.get("uniqueName")
    return str(value)


def custom_fields(fields: dict) -> dict:
    """Custom.* fields re-keyed without the namespace prefix."""
    return {
        key[len(CUSTOM_FIELD_PREFIX):]: value
        for key, value in fields.items()
        if key.startswith(CUSTOM_FIELD_PREFIX)
    }


def format_search_item(wi: dict, web_url: str) -> dict:
    """Flatten a work item into the record returned by search."""
    fields = wi.get("fields") or {}
    record = {
        "id": wi.get("id"),
        "type": fields.get("System.WorkItemType"),
        "state": fields.get("System.State"),
        "title": fields.get("System.Title"),
        "assignedTo": identity_name(fields.get("System.AssignedTo")),
        "tags": split_tags(fields.get("System.Tags")),
        "createdDate": fields.get("System.CreatedDate"),
        "createdBy": identity_name(fields.get("System.CreatedBy")),
        "changedDate": fields.get("System.ChangedDate"),
        "changedBy": identity_name(fields.get("System.ChangedBy")),
        "url": web_url,
    }
    record.update(custom_fields(fields))
    return record


def format_work_item(wi: dict) -> str:
    """Format a work item as a short human-readable block."""
    fields = wi.get("fields") or {}
    title = fields.get("System.Title", "(untitled)")
    wi_type = fields.get("System.WorkItemType", "unknown")
    state = fields.get("System.State", "unknown")

    assignee = identity_name(fields.get("System.AssignedTo"))
    assignee_info = f"\nAssigned to: {assignee}" if assignee else ""
    tags = split_tags(fields.get("System.Tags"))
    tags_info = f"\nTags: {', '.join(tags)}" if tags else ""
    area_info = f"\nArea: {fields['System.AreaPath']}" if fields.get("System.AreaPath") else ""
    iteration_info = f"\nIteration: {fields['System.IterationPath']}" if fields.get("System.IterationPath") else ""

    relations = wi.get("relations") or []
    relations_info = f"\nRelations: {len(relations)}" if relations else ""

    created_by = identity_name(fields.get("System.CreatedBy")) or "unknown"
    changed_by = identity_name(fields.get("System.ChangedBy")) or "unknown"

    return f"""**#{wi.get('id')} {title}** ({wi_type})
State: {state}{assignee_info}{area_info}{iteration_info}{tags_info}{relations_info}
Created: {fields.get('System.CreatedDate', 'unknown')} by {created_by}
Changed: {fields.get('System.ChangedDate', 'unknown')} by {changed_by}"""


def format_work_item_summary(wi: dict) -> str:
    """Format a work item as a compact one-liner for list views."""
    fields = wi.get("fields") or {}
    wi_type = fields.get("System.WorkItemType", "unknown")
    state = fields.get("System.State", "unknown")
    title = fields.get("System.Title", "(untitled)")
    assignee = identity_name(fields.get("System.AssignedTo"))
    assignee_suffix = f" ({assignee})" if assignee else ""
    return f"#{wi.get('id')} {wi_type}/{state}: {title}{assignee_suffix}"


def format_project(proj: dict) -> str:
    """Format a project for display."""
    desc_info = f"\nDescription: {proj['description']}" if proj.get("description") else ""
    visibility_info = f"\nVisibility: {proj['visibility']}" if proj.get("visibility") else ""
    process = ((proj.get("capabilities") or {}).get("processTemplate") or {}).get("templateName")
    process_info = f"\nProcess: {process}" if process else ""

    return f"""**{proj.get('name')}**
ID: {proj.get('id')}
State: {proj.get('state', 'unknown')}{visibility_info}{process_info}{desc_info}
Last updated: {proj.get('lastUpdateTime', 'unknown')}"""


def format_project_summary(proj: dict) -> str:
    """Format a project as a one-liner."""
    return f"- {proj.get('name')} ({proj.get('id')})"


def format_attachment(rel: dict) -> dict:
    """Describe an AttachedFile relation."""
    url = rel.get("url") or ""
    attributes = rel.get("attributes") or {}
    attachment_id = url.split("/attachments/")[-1].split("?")[0] if "/attachments/" in url else None
    return {
        "id": attachment_id,
        "name": attributes.get("name"),
        "url": url,
        "size": attributes.get("resourceSize"),
        "comment": attributes.get("comment"),
        "createdDate": attributes.get("resourceCreatedDate"),
    }
