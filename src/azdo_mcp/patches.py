"""JSON Patch documents for work item create/update requests."""
from typing import Any, Optional

JSON_PATCH_HEADERS = {"Content-Type": "application/json-patch+json"}

ATTACHED_FILE = "AttachedFile"
ARTIFACT_LINK = "ArtifactLink"
PARENT_LINK = "System.LinkTypes.Hierarchy-Reverse"


def field_op(field: str, value: Any, op: str = "add") -> dict:
    return {"op": op, "path": f"/fields/{field}", "value": value}


def field_ops(fields: dict[str, Any], op: str = "add") -> list[dict]:
    return [field_op(name, value, op) for name, value in fields.items()]


def add_relation_op(rel: str, url: str, attributes: Optional[dict] = None) -> dict:
    """Append a relation; relations are never replaced or removed."""
    value: dict[str, Any] = {"rel": rel, "url": url}
    if attributes:
        value["attributes"] = attributes
    return {"op": "add", "path": "/relations/-", "value": value}


def creation_fields(
    project: str,
    title: str,
    description: Optional[str] = None,
    area_path: Optional[str] = None,
    iteration_path: Optional[str] = None,
    assigned_to: Optional[str] = None,
    tags: Optional[str] = None,
) -> dict[str, Any]:
    """Field map for a new work item; area and iteration default to the project."""
    fields: dict[str, Any] = {
        "System.Title": title,
        "System.AreaPath": area_path or project,
        "System.IterationPath": iteration_path or project,
    }
    if description:
        fields["System.Description"] = description
    if assigned_to:
        fields["System.AssignedTo"] = assigned_to
    if tags:
        fields["System.Tags"] = tags
    return fields
