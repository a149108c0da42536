"""MCP tool handlers for Azure DevOps work tracking.

All handlers follow a consistent pattern:
- Accept: a validated request model and the SessionContext
- Return: list[TextContent] holding plain text or pretty-printed JSON
- Let httpx errors propagate; the dispatcher turns them into RemoteApiError
- Log all operations for debugging
"""
import logging

from mcp.types import TextContent

from . import formatters
from .batch import build_batch_body, parse_operations, summarize_results
from .patches import (
    ARTIFACT_LINK,
    JSON_PATCH_HEADERS,
    PARENT_LINK,
    add_relation_op,
    creation_fields,
    field_op,
    field_ops,
)
from .query_builder import DEFAULT_SEARCH_FIELDS, build_search_query
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
    UpdateWorkItemRequest,
    UploadAttachmentRequest,
)
from .session import SessionContext, quote_segment
from .uploads import AttachmentUpload, decode_content

logger = logging.getLogger("azdo-mcp.handlers")

COMMENTS_API_VERSION = "7.1-preview.4"


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def _json(data) -> list[TextContent]:
    return _text(formatters.to_json(data))


# ============================================================================
# Work Item Handlers
# ============================================================================

async def handle_create_work_item(
    request: CreateWorkItemRequest,
    session: SessionContext
) -> list[TextContent]:
    """Create a work item in the requested (or default) project.

    Area and iteration path default to the project name.
    """
    project = await session.resolve_project(request.project_name)
    fields = creation_fields(
        project,
        title=request.title,
        description=request.description,
        area_path=request.area_path,
        iteration_path=request.iteration_path,
        assigned_to=request.assigned_to,
        tags=request.tags,
    )
    if request.additional_fields:
        fields.update(request.additional_fields)

    client = session.get_client()
    response = await client.post(
        f"/{quote_segment(project)}/_apis/wit/workitems/${quote_segment(request.type)}",
        params=session.params(),
        json=field_ops(fields),
        headers=JSON_PATCH_HEADERS,
    )
    response.raise_for_status()
    result = response.json()
    title = (result.get("fields") or {}).get("System.Title", request.title)
    logger.info(f"Successfully created work item {result['id']}: {title}")

    text = (f"Created work item {result['id']}: {title}\n"
            f"Type: {request.type}\n"
            f"Project: {project}\n"
            f"URL: {session.work_item_web_url(project, result['id'])}")
    return _text(text)


async def handle_get_work_item_details(
    request: GetWorkItemRequest,
    session: SessionContext
) -> list[TextContent]:
    """Get a work item by ID, as JSON or a short summary."""
    client = session.get_client()
    response = await client.get(
        f"/_apis/wit/workitems/{request.id}",
        params=session.params(**{"$expand": request.expand}),
    )
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully retrieved work item {request.id}")

    if request.summarize:
        return _text(formatters.format_work_item(result))
    return _json(result)


async def handle_update_work_item(
    request: UpdateWorkItemRequest,
    session: SessionContext
) -> list[TextContent]:
    """Replace the given fields; an optional comment goes into the history."""
    patch = field_ops(request.updates, op="replace")
    if request.comment:
        patch.append(field_op("System.History", request.comment))

    client = session.get_client()
    response = await client.patch(
        f"/_apis/wit/workitems/{request.id}",
        params=session.params(),
        json=patch,
        headers=JSON_PATCH_HEADERS,
    )
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully updated work item {request.id} ({len(request.updates)} fields)")

    text = (f"Updated work item {request.id} (revision {result.get('rev', 'unknown')})\n"
            f"Fields: {', '.join(request.updates)}")
    return _text(text)


async def handle_delete_work_item(
    request: DeleteWorkItemRequest,
    session: SessionContext
) -> list[TextContent]:
    """Delete a work item.

    Without ``destroy`` the item goes to the recycle bin and can be
    restored; with it the item is gone for good.
    """
    project = await session.resolve_project(request.project_name)
    params = session.params(destroy="true" if request.destroy else None)

    client = session.get_client()
    response = await client.delete(
        f"/{quote_segment(project)}/_apis/wit/workitems/{request.id}",
        params=params,
    )
    response.raise_for_status()
    logger.info(f"Successfully deleted work item {request.id} (destroy={request.destroy})")

    if request.destroy:
        return _text(f"Work item {request.id} was permanently deleted.")
    return _text(f"Work item {request.id} was moved to the recycle bin and can be restored.")


async def handle_get_work_items_batch(
    request: GetWorkItemsBatchRequest,
    session: SessionContext
) -> list[TextContent]:
    """Fetch up to 200 work items in one request."""
    body: dict = {"ids": request.ids, "errorPolicy": "omit"}
    if request.fields:
        body["fields"] = request.fields
    else:
        body["$expand"] = "all"

    client = session.get_client()
    response = await client.post("/_apis/wit/workitemsbatch", params=session.params(), json=body)
    response.raise_for_status()
    items = [item for item in response.json().get("value", []) if item]
    logger.info(f"Successfully retrieved {len(items)} of {len(request.ids)} work items")

    if request.summarize:
        if not items:
            return _text("No work items found for the given IDs.")
        lines = "\n".join(formatters.format_work_item_summary(item) for item in items)
        return _text(f"Found {len(items)} of {len(request.ids)} work items\n\n{lines}")
    return _json(items)


async def handle_batch_update_work_items(
    request: BatchUpdateWorkItemsRequest,
    session: SessionContext
) -> list[TextContent]:
    """Run create/update/delete operations as one $batch request.

    Every operation is validated before the request is built. Only the
    success and failure counts are reported.
    """
    operations = parse_operations(request.operations)
    project = await session.resolve_project(request.project_name)
    body = build_batch_body(
        operations,
        project=project,
        api_version=session.api_version,
        bypass_rules=request.bypass_rules,
        suppress_notifications=request.suppress_notifications,
    )

    client = session.get_client()
    response = await client.post("/_apis/wit/$batch", params=session.params(), json=body)
    response.raise_for_status()
    outcome = summarize_results(response.json())

    text = (f"Batch update complete\n"
            f"Operations: {len(operations)}\n"
            f"Succeeded: {outcome.succeeded}\n"
            f"Failed: {outcome.failed}")
    return _text(text)


async def handle_search_work_items(
    request: SearchWorkItemsRequest,
    session: SessionContext
) -> list[TextContent]:
    """Search work items with WIQL, then fetch fields for the first page.

    WIQL returns IDs only, so a second batch request loads the fields.
    Zero matches is a normal result, not an error.
    """
    project = await session.resolve_project(request.project_name)
    order = request.order_by
    search = build_search_query(
        project,
        query=request.query,
        work_item_type=request.work_item_type,
        state=request.state,
        assigned_to=request.assigned_to,
        tags=request.tags,
        created_after=request.created_after,
        updated_after=request.updated_after,
        fields=request.fields,
        order_field=order.field if order else None,
        order_direction=order.direction if order else None,
    )

    client = session.get_client()
    params = session.params(timePrecision="true" if search.time_precision else None)
    response = await client.post(
        f"/{quote_segment(project)}/_apis/wit/wiql",
        params=params,
        json={"query": search.wiql},
    )
    response.raise_for_status()
    refs = response.json().get("workItems") or []
    total = len(refs)
    logger.info(f"Search in {project} matched {total} work items")

    if total == 0:
        return _json({
            "totalMatches": 0,
            "returned": 0,
            "hasMore": False,
            "message": "No work items matched the search criteria.",
            "query": search.wiql,
            "items": [],
        })

    ids = [ref["id"] for ref in refs[:request.top]]
    body = {
        "ids": ids,
        "fields": list(request.fields or DEFAULT_SEARCH_FIELDS),
        "errorPolicy": "omit",
    }
    batch_response = await client.post(
        f"/{quote_segment(project)}/_apis/wit/workitemsbatch",
        params=session.params(),
        json=body,
    )
    batch_response.raise_for_status()
    items = [item for item in batch_response.json().get("value", []) if item]

    records = [
        formatters.format_search_item(item, session.work_item_web_url(project, item["id"]))
        for item in items
    ]
    return _json({
        "totalMatches": total,
        "returned": len(records),
        "hasMore": total > request.top,
        "query": search.wiql,
        "items": records,
    })


# ============================================================================
# Project Handlers
# ============================================================================

async def handle_list_projects(
    request: ListProjectsRequest,
    session: SessionContext
) -> list[TextContent]:
    """List all projects in the organization."""
    client = session.get_client()
    response = await client.get("/_apis/projects", params=session.params())
    response.raise_for_status()
    projects = response.json().get("value", [])
    logger.info(f"Successfully listed {len(projects)} projects")

    if request.summarize:
        if not projects:
            return _text("No projects found in this organization.")
        lines = "\n".join(formatters.format_project_summary(p) for p in projects)
        return _text(f"Found {len(projects)} projects\n\n{lines}")
    return _json(projects)


async def handle_get_project_details(
    request: GetProjectRequest,
    session: SessionContext
) -> list[TextContent]:
    """Get a project by ID or name."""
    client = session.get_client()
    response = await client.get(
        f"/_apis/projects/{quote_segment(request.project_id_or_name)}",
        params=session.params(includeCapabilities="true"),
    )
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully retrieved project {result.get('name')}")

    if request.summarize:
        return _text(formatters.format_project(result))
    return _json(result)


# ============================================================================
# Link and Comment Handlers
# ============================================================================

async def handle_link_commit_to_work_item(
    request: LinkCommitRequest,
    session: SessionContext
) -> list[TextContent]:
    """Add an ArtifactLink from a work item to a Git commit.

    Commit artifact URIs embed the project GUID, so the project is
    looked up first.
    """
    project = await session.resolve_project(request.project_name)
    client = session.get_client()

    project_response = await client.get(
        f"/_apis/projects/{quote_segment(project)}",
        params=session.params(),
    )
    project_response.raise_for_status()
    project_id = project_response.json()["id"]

    artifact_url = f"vstfs:///Git/Commit/{project_id}%2F{request.repository_id}%2F{request.commit_sha}"
    attributes = {"name": "Fixed in Commit"}
    if request.comment:
        attributes["comment"] = request.comment

    response = await client.patch(
        f"/_apis/wit/workitems/{request.work_item_id}",
        params=session.params(),
        json=[add_relation_op(ARTIFACT_LINK, artifact_url, attributes)],
        headers=JSON_PATCH_HEADERS,
    )
    response.raise_for_status()
    logger.info(f"Linked commit {request.commit_sha[:8]} to work item {request.work_item_id}")

    return _text(f"Linked commit {request.commit_sha} to work item {request.work_item_id}.")


async def handle_link_parent_work_item(
    request: LinkParentRequest,
    session: SessionContext
) -> list[TextContent]:
    """Make ``parentId`` the parent of ``workItemId``."""
    parent_url = f"{session.org_url}/_apis/wit/workItems/{request.parent_id}"
    attributes = {"comment": request.comment} if request.comment else None

    client = session.get_client()
    response = await client.patch(
        f"/_apis/wit/workitems/{request.work_item_id}",
        params=session.params(),
        json=[add_relation_op(PARENT_LINK, parent_url, attributes)],
        headers=JSON_PATCH_HEADERS,
    )
    response.raise_for_status()
    logger.info(f"Linked work item {request.work_item_id} to parent {request.parent_id}")

    return _text(f"Work item {request.work_item_id} is now a child of work item {request.parent_id}.")


async def handle_add_work_item_comment(
    request: AddCommentRequest,
    session: SessionContext
) -> list[TextContent]:
    """Post a comment through the work item comments API."""
    project = await session.resolve_project(request.project_name)
    client = session.get_client()
    response = await client.post(
        f"/{quote_segment(project)}/_apis/wit/workItems/{request.work_item_id}/comments",
        params={"api-version": COMMENTS_API_VERSION},
        json={"text": request.text},
    )
    response.raise_for_status()
    result = response.json()
    logger.info(f"Added comment {result.get('id')} to work item {request.work_item_id}")

    return _text(f"Added comment {result.get('id')} to work item {request.work_item_id}.")


# ============================================================================
# Attachment Handlers
# ============================================================================

async def handle_list_work_item_attachments(
    request: ListAttachmentsRequest,
    session: SessionContext
) -> list[TextContent]:
    """List AttachedFile relations of a work item."""
    client = session.get_client()
    response = await client.get(
        f"/_apis/wit/workitems/{request.work_item_id}",
        params=session.params(**{"$expand": "relations"}),
    )
    response.raise_for_status()
    relations = response.json().get("relations") or []
    attachments = [formatters.format_attachment(r) for r in relations if r.get("rel") == "AttachedFile"]
    logger.info(f"Work item {request.work_item_id} has {len(attachments)} attachments")

    if not attachments:
        return _text(f"No attachments found for work item {request.work_item_id}.")
    return _json(attachments)


async def handle_upload_work_item_attachment(
    request: UploadAttachmentRequest,
    session: SessionContext
) -> list[TextContent]:
    """Upload a Base64 payload and attach it to a work item.

    Payloads larger than the threshold are sent in ordered chunks.
    """
    data = decode_content(request.content)
    project = await session.resolve_project(request.project_name)
    upload = AttachmentUpload(
        session,
        project=project,
        work_item_id=request.work_item_id,
        file_name=request.file_name,
        data=data,
        chunk_size=request.chunk_size or session.settings.upload_chunk_size,
        threshold=(
            request.chunked_threshold
            if request.chunked_threshold is not None
            else session.settings.upload_threshold
        ),
        comment=request.comment,
    )
    result = await upload.run()
    return _json(result)


async def handle_delete_work_item_attachment(
    request: DeleteAttachmentRequest,
    session: SessionContext
) -> list[TextContent]:
    """Delete an attachment by ID."""
    project = await session.resolve_project(request.project_name)
    client = session.get_client()
    response = await client.delete(
        f"/{quote_segment(project)}/_apis/wit/attachments/{quote_segment(request.attachment_id)}",
        params=session.params(),
    )
    response.raise_for_status()
    logger.info(f"Deleted attachment {request.attachment_id}")

    return _text(f"Deleted attachment {request.attachment_id}.")
