"""Tests for tool handlers, exercised through the dispatcher."""
import base64
import json

import httpx
import pytest
from mcp.shared.exceptions import McpError
from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND

from azdo_mcp.server import dispatch
from azdo_mcp.session import SessionContext
from conftest import DEFAULT_PROJECT, ORG_URL, body_of

PROJECT_PATH = f"/{DEFAULT_PROJECT}"


def _text(content) -> str:
    assert len(content) == 1
    return content[0].text


def _work_item(id_, **fields):
    base = {
        "System.Title": f"Item {id_}",
        "System.State": "Active",
        "System.WorkItemType": "Bug",
    }
    base.update(fields)
    return {"id": id_, "rev": 1, "fields": base}


class TestCreateWorkItem:
    """Test create_work_item."""

    @pytest.mark.asyncio
    async def test_uses_default_project_for_path_and_defaults(self, session, fake_api):
        """No project override: the default project drives the URL and area/iteration paths."""
        fake_api.with_projects()
        fake_api.add("POST", f"{PROJECT_PATH}/_apis/wit/workitems/$Bug",
                     {"id": 101, "fields": {"System.Title": "X"}})

        content = await dispatch("create_work_item", {"type": "Bug", "title": "X"}, session)

        request = fake_api.calls("POST", f"{PROJECT_PATH}/_apis/wit/workitems/$Bug")[0]
        assert request.headers["Content-Type"] == "application/json-patch+json"
        patch = body_of(request)
        assert {"op": "add", "path": "/fields/System.Title", "value": "X"} in patch
        assert {"op": "add", "path": "/fields/System.AreaPath", "value": DEFAULT_PROJECT} in patch
        assert {"op": "add", "path": "/fields/System.IterationPath", "value": DEFAULT_PROJECT} in patch
        text = _text(content)
        assert "Created work item 101: X" in text
        assert f"{ORG_URL}/Contoso%20Project/_workitems/edit/101" in text

    @pytest.mark.asyncio
    async def test_optional_and_additional_fields(self, session, fake_api):
        fake_api.add("POST", "/Web/_apis/wit/workitems/$User Story", {"id": 7, "fields": {}})

        await dispatch("create_work_item", {
            "type": "User Story",
            "title": "Login",
            "projectName": "Web",
            "areaPath": "Web\\Auth",
            "tags": "auth;ui",
            "assignedTo": "ana@contoso.com",
            "additionalFields": {"Microsoft.VSTS.Common.Priority": 1},
        }, session)

        patch = body_of(fake_api.requests[0])
        values = {op["path"]: op["value"] for op in patch}
        assert values["/fields/System.AreaPath"] == "Web\\Auth"
        assert values["/fields/System.IterationPath"] == "Web"
        assert values["/fields/System.Tags"] == "auth;ui"
        assert values["/fields/System.AssignedTo"] == "ana@contoso.com"
        assert values["/fields/Microsoft.VSTS.Common.Priority"] == 1
        assert fake_api.calls("GET", "/_apis/projects") == []

    @pytest.mark.asyncio
    async def test_missing_title_rejected_before_network(self, session, fake_api):
        with pytest.raises(McpError) as exc_info:
            await dispatch("create_work_item", {"type": "Bug"}, session)
        assert exc_info.value.error.code == INVALID_PARAMS
        assert "title" in exc_info.value.error.message
        assert fake_api.requests == []


class TestGetAndUpdateWorkItem:
    """Test get_work_item_details and update_work_item."""

    @pytest.mark.asyncio
    async def test_get_returns_json(self, session, fake_api):
        fake_api.add("GET", "/_apis/wit/workitems/5", _work_item(5))

        content = await dispatch("get_work_item_details", {"id": 5}, session)

        assert json.loads(_text(content))["id"] == 5
        assert fake_api.requests[0].url.params["$expand"] == "all"

    @pytest.mark.asyncio
    async def test_get_summarized(self, session, fake_api):
        fake_api.add("GET", "/_apis/wit/workitems/5", _work_item(
            5, **{"System.AssignedTo": {"displayName": "Ana"}, "System.Tags": "a; b"}))

        text = _text(await dispatch("get_work_item_details", {"id": 5, "summarize": True}, session))

        assert text.startswith("**#5 Item 5** (Bug)")
        assert "Assigned to: Ana" in text
        assert "Tags: a, b" in text

    @pytest.mark.asyncio
    async def test_update_replaces_fields_and_adds_history(self, session, fake_api):
        fake_api.add("PATCH", "/_apis/wit/workitems/9", {"id": 9, "rev": 4})

        text = _text(await dispatch("update_work_item", {
            "id": 9,
            "updates": {"System.State": "Resolved"},
            "comment": "Fixed in build 12",
        }, session))

        assert body_of(fake_api.requests[0]) == [
            {"op": "replace", "path": "/fields/System.State", "value": "Resolved"},
            {"op": "add", "path": "/fields/System.History", "value": "Fixed in build 12"},
        ]
        assert "revision 4" in text

    @pytest.mark.asyncio
    async def test_empty_updates_rejected(self, session, fake_api):
        with pytest.raises(McpError) as exc_info:
            await dispatch("update_work_item", {"id": 9, "updates": {}}, session)
        assert exc_info.value.error.code == INVALID_PARAMS
        assert fake_api.requests == []


class TestDeleteWorkItem:
    """Test delete_work_item trash versus destroy."""

    @pytest.mark.asyncio
    async def test_soft_delete(self, session, fake_api):
        fake_api.with_projects()
        fake_api.add("DELETE", f"{PROJECT_PATH}/_apis/wit/workitems/42", {"id": 42})

        text = _text(await dispatch("delete_work_item", {"id": 42, "destroy": False}, session))

        request = fake_api.calls("DELETE", f"{PROJECT_PATH}/_apis/wit/workitems/42")[0]
        assert "destroy" not in request.url.params
        assert "recycle bin" in text

    @pytest.mark.asyncio
    async def test_destroy(self, session, fake_api):
        fake_api.with_projects()
        fake_api.add("DELETE", f"{PROJECT_PATH}/_apis/wit/workitems/42", None, status=204)

        text = _text(await dispatch("delete_work_item", {"id": 42, "destroy": True}, session))

        request = fake_api.calls("DELETE", f"{PROJECT_PATH}/_apis/wit/workitems/42")[0]
        assert request.url.params["destroy"] == "true"
        assert "permanently deleted" in text


class TestGetWorkItemsBatch:
    """Test get_work_items_batch limits and output."""

    @pytest.mark.asyncio
    async def test_two_hundred_ids_accepted(self, session, fake_api):
        fake_api.add("POST", "/_apis/wit/workitemsbatch", {"count": 1, "value": [_work_item(1)]})

        await dispatch("get_work_items_batch", {"ids": list(range(1, 201))}, session)

        body = body_of(fake_api.requests[0])
        assert len(body["ids"]) == 200

    @pytest.mark.asyncio
    async def test_two_hundred_one_ids_rejected_before_network(self, session, fake_api):
        with pytest.raises(McpError) as exc_info:
            await dispatch("get_work_items_batch", {"ids": list(range(1, 202))}, session)
        assert exc_info.value.error.code == INVALID_PARAMS
        assert "ids" in exc_info.value.error.message
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_summarized_with_fields(self, session, fake_api):
        fake_api.add("POST", "/_apis/wit/workitemsbatch",
                     {"count": 2, "value": [_work_item(1), None, _work_item(3)]})

        text = _text(await dispatch("get_work_items_batch", {
            "ids": [1, 2, 3], "fields": ["System.Title"], "summarize": True,
        }, session))

        body = body_of(fake_api.requests[0])
        assert body["fields"] == ["System.Title"]
        assert "$expand" not in body
        assert "Found 2 of 3 work items" in text
        assert "#1 Bug/Active: Item 1" in text


class TestBatchUpdate:
    """Test batch_update_work_items."""

    @pytest.mark.asyncio
    async def test_missing_work_item_id_fails_before_any_request(self, session, fake_api):
        with pytest.raises(McpError) as exc_info:
            await dispatch("batch_update_work_items", {"operations": [{"method": "PATCH"}]}, session)
        assert exc_info.value.error.code == INVALID_PARAMS
        assert exc_info.value.error.message.startswith("operation 0:")
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_reports_counts(self, session, fake_api):
        fake_api.with_projects()
        fake_api.add("POST", "/_apis/wit/$batch", {"count": 3, "value": [
            {"code": 200, "body": "{}"}, {"code": 400, "body": "{}"}, {"code": 204},
        ]})

        text = _text(await dispatch("batch_update_work_items", {
            "operations": [
                {"method": "PATCH", "workItemId": 1, "fields": {"System.State": "Closed"}},
                {"method": "POST", "workItemType": "Task", "fields": {"System.Title": "T"}},
                {"method": "DELETE", "workItemId": 3},
            ],
            "suppressNotifications": True,
        }, session))

        body = body_of(fake_api.calls("POST", "/_apis/wit/$batch")[0])
        assert [entry["method"] for entry in body] == ["PATCH", "POST", "DELETE"]
        assert all("suppressNotifications=true" in entry["uri"] for entry in body)
        assert all("bypassRules" not in entry["uri"] for entry in body)
        assert "Succeeded: 2" in text
        assert "Failed: 1" in text


class TestSearchWorkItems:
    """Test search_work_items query and result shaping."""

    @pytest.mark.asyncio
    async def test_zero_matches_is_not_an_error(self, session, fake_api):
        fake_api.with_projects()
        fake_api.add("POST", f"{PROJECT_PATH}/_apis/wit/wiql", {"workItems": []})

        result = json.loads(_text(await dispatch("search_work_items", {"tags": "a;b"}, session)))

        assert result["totalMatches"] == 0
        assert result["items"] == []
        assert "No work items matched" in result["message"]
        wiql = body_of(fake_api.calls("POST", f"{PROJECT_PATH}/_apis/wit/wiql")[0])["query"]
        assert "([System.Tags] CONTAINS 'a' OR [System.Tags] CONTAINS 'b')" in wiql
        assert fake_api.calls("POST", f"{PROJECT_PATH}/_apis/wit/workitemsbatch") == []

    @pytest.mark.asyncio
    async def test_results_are_capped_and_formatted(self, session, fake_api):
        fake_api.with_projects()
        fake_api.add("POST", f"{PROJECT_PATH}/_apis/wit/wiql",
                     {"workItems": [{"id": i} for i in range(1, 6)]})
        fake_api.add("POST", f"{PROJECT_PATH}/_apis/wit/workitemsbatch", {"value": [
            _work_item(1, **{
                "System.Tags": "ui; auth",
                "System.AssignedTo": {"displayName": "Ana", "uniqueName": "ana@contoso.com"},
                "System.ChangedBy": {"displayName": "Bo"},
                "Custom.Team": "Blue",
            }),
            _work_item(2),
        ]})

        result = json.loads(_text(await dispatch("search_work_items", {
            "query": "login", "top": 2, "orderBy": {"field": "System.Id", "direction": "asc"},
        }, session)))

        batch = body_of(fake_api.calls("POST", f"{PROJECT_PATH}/_apis/wit/workitemsbatch")[0])
        assert batch["ids"] == [1, 2]
        assert len(batch["fields"]) == 9
        assert result["totalMatches"] == 5
        assert result["returned"] == 2
        assert result["hasMore"] is True
        assert result["query"].endswith("ORDER BY [System.Id] ASC")
        first = result["items"][0]
        assert first["assignedTo"] == "Ana"
        assert first["changedBy"] == "Bo"
        assert first["tags"] == ["ui", "auth"]
        assert first["Team"] == "Blue"
        assert "Custom.Team" not in first
        assert first["url"] == f"{ORG_URL}/Contoso%20Project/_workitems/edit/1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["²", "12³", "9" * 5000])
    async def test_unusual_digit_text_is_searched_not_rejected(self, session, fake_api, text):
        fake_api.with_projects()
        fake_api.add("POST", f"{PROJECT_PATH}/_apis/wit/wiql", {"workItems": []})

        result = json.loads(_text(await dispatch("search_work_items", {"query": text}, session)))

        assert result["totalMatches"] == 0
        wiql = body_of(fake_api.calls("POST", f"{PROJECT_PATH}/_apis/wit/wiql")[0])["query"]
        assert f"[System.Title] CONTAINS '{text}'" in wiql

    @pytest.mark.asyncio
    async def test_time_precision_requested_for_timestamps(self, session, fake_api):
        fake_api.add("POST", "/Web/_apis/wit/wiql", {"workItems": []})

        await dispatch("search_work_items", {
            "projectName": "Web", "updatedAfter": "2024-05-01T08:00:00Z",
        }, session)

        assert fake_api.requests[0].url.params["timePrecision"] == "true"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arguments", [
        {"top": 201},
        {"top": 0},
        {"createdAfter": "last tuesday"},
        {"orderBy": {"field": "System.Id", "direction": "sideways"}},
        {"colour": "red"},
    ])
    async def test_invalid_arguments(self, session, fake_api, arguments):
        with pytest.raises(McpError) as exc_info:
            await dispatch("search_work_items", arguments, session)
        assert exc_info.value.error.code == INVALID_PARAMS
        assert fake_api.requests == []


class TestProjects:
    """Test list_projects and get_project_details."""

    @pytest.mark.asyncio
    async def test_list_projects_json(self, session, fake_api):
        fake_api.with_projects("A", "B")
        projects = json.loads(_text(await dispatch("list_projects", {}, session)))
        assert [p["name"] for p in projects] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_list_projects_summary(self, session, fake_api):
        fake_api.with_projects("A", "B")
        text = _text(await dispatch("list_projects", {"summarize": True}, session))
        assert "Found 2 projects" in text
        assert "- B (proj-1)" in text

    @pytest.mark.asyncio
    async def test_get_project_summary(self, session, fake_api):
        fake_api.add("GET", "/_apis/projects/My Project", {
            "id": "p-9", "name": "My Project", "state": "wellFormed", "description": "Main",
            "capabilities": {"processTemplate": {"templateName": "Agile"}},
        })
        text = _text(await dispatch("get_project_details",
                                    {"projectIdOrName": "My Project", "summarize": True}, session))
        assert "**My Project**" in text
        assert "Process: Agile" in text
        assert fake_api.requests[0].url.params["includeCapabilities"] == "true"


class TestLinksAndComments:
    """Test commit links, parent links and comments."""

    SHA = "a" * 40

    @pytest.mark.asyncio
    async def test_link_commit(self, session, fake_api):
        fake_api.with_projects()
        fake_api.add("GET", f"/_apis/projects/{DEFAULT_PROJECT}", {"id": "proj-guid", "name": DEFAULT_PROJECT})
        fake_api.add("PATCH", "/_apis/wit/workitems/12", {"id": 12})

        await dispatch("link_commit_to_work_item", {
            "workItemId": 12, "repositoryId": "repo-guid", "commitSha": self.SHA.upper(),
        }, session)

        relation = body_of(fake_api.calls("PATCH", "/_apis/wit/workitems/12")[0])[0]["value"]
        assert relation["rel"] == "ArtifactLink"
        assert relation["url"] == f"vstfs:///Git/Commit/proj-guid%2Frepo-guid%2F{self.SHA}"
        assert relation["attributes"]["name"] == "Fixed in Commit"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sha", ["abc123", "g" * 40, "a" * 41])
    async def test_malformed_sha_rejected(self, session, fake_api, sha):
        with pytest.raises(McpError) as exc_info:
            await dispatch("link_commit_to_work_item",
                           {"workItemId": 12, "repositoryId": "r", "commitSha": sha}, session)
        assert exc_info.value.error.code == INVALID_PARAMS
        assert "commitSha" in exc_info.value.error.message
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_link_parent(self, session, fake_api):
        fake_api.add("PATCH", "/_apis/wit/workitems/12", {"id": 12})

        text = _text(await dispatch("link_parent_work_item", {"workItemId": 12, "parentId": 3}, session))

        op = body_of(fake_api.requests[0])[0]
        assert op["path"] == "/relations/-"
        assert op["value"] == {
            "rel": "System.LinkTypes.Hierarchy-Reverse",
            "url": f"{ORG_URL}/_apis/wit/workItems/3",
        }
        assert "child of work item 3" in text

    @pytest.mark.asyncio
    async def test_self_parent_rejected(self, session, fake_api):
        with pytest.raises(McpError) as exc_info:
            await dispatch("link_parent_work_item", {"workItemId": 3, "parentId": 3}, session)
        assert exc_info.value.error.code == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_add_comment(self, session, fake_api):
        fake_api.add("POST", "/Web/_apis/wit/workItems/12/comments", {"id": 77, "text": "hi"})

        text = _text(await dispatch("add_work_item_comment",
                                    {"workItemId": 12, "text": "hi", "projectName": "Web"}, session))

        request = fake_api.requests[0]
        assert request.url.params["api-version"] == "7.1-preview.4"
        assert body_of(request) == {"text": "hi"}
        assert "Added comment 77" in text


class TestAttachments:
    """Test attachment listing, upload and deletion."""

    @pytest.mark.asyncio
    async def test_no_attachments_is_not_an_error(self, session, fake_api):
        fake_api.add("GET", "/_apis/wit/workitems/8", {"id": 8, "relations": [
            {"rel": "ArtifactLink", "url": "vstfs:///Git/Commit/x"},
        ]})
        text = _text(await dispatch("list_work_item_attachments", {"workItemId": 8}, session))
        assert text == "No attachments found for work item 8."

    @pytest.mark.asyncio
    async def test_lists_attached_files(self, session, fake_api):
        fake_api.add("GET", "/_apis/wit/workitems/8", {"id": 8, "relations": [
            {"rel": "AttachedFile", "url": f"{ORG_URL}/_apis/wit/attachments/abc-123",
             "attributes": {"name": "log.txt", "resourceSize": 12, "comment": "logs"}},
        ]})
        attachments = json.loads(_text(await dispatch("list_work_item_attachments", {"workItemId": 8}, session)))
        assert attachments == [{
            "id": "abc-123", "name": "log.txt", "url": f"{ORG_URL}/_apis/wit/attachments/abc-123",
            "size": 12, "comment": "logs", "createdDate": None,
        }]

    @pytest.mark.asyncio
    async def test_upload_small_file(self, session, fake_api):
        fake_api.with_projects()
        fake_api.add("POST", f"{PROJECT_PATH}/_apis/wit/attachments",
                     {"id": "att-1", "url": f"{ORG_URL}/_apis/wit/attachments/att-1"})
        fake_api.add("PATCH", f"{PROJECT_PATH}/_apis/wit/workitems/8", {"id": 8})

        result = json.loads(_text(await dispatch("upload_work_item_attachment", {
            "workItemId": 8,
            "fileName": "a.txt",
            "content": base64.b64encode(b"hello").decode("ascii"),
        }, session)))

        assert result["attachmentId"] == "att-1"
        assert result["uploadMode"] == "single"
        assert result["size"] == 5

    @pytest.mark.asyncio
    async def test_upload_uses_configured_chunking(self, session, fake_api):
        """The fixture settings chunk anything over 10 bytes into 4-byte pieces."""
        fake_api.with_projects()
        fake_api.add("POST", f"{PROJECT_PATH}/_apis/wit/attachments", {"id": "att-c", "url": "x"})
        fake_api.add("PUT", f"{PROJECT_PATH}/_apis/wit/attachments/att-c", {"id": "att-c"})
        fake_api.add("PATCH", f"{PROJECT_PATH}/_apis/wit/workitems/8", {"id": 8})

        result = json.loads(_text(await dispatch("upload_work_item_attachment", {
            "workItemId": 8,
            "fileName": "b.bin",
            "content": base64.b64encode(b"x" * 12).decode("ascii"),
        }, session)))

        assert result["uploadMode"] == "chunked"
        assert result["chunks"] == 3
        ranges = [r.headers["Content-Range"] for r in fake_api.calls("PUT", f"{PROJECT_PATH}/_apis/wit/attachments/att-c")]
        assert ranges == ["bytes 0-3/12", "bytes 4-7/12", "bytes 8-11/12"]

    @pytest.mark.asyncio
    async def test_invalid_base64_rejected_before_network(self, session, fake_api):
        with pytest.raises(McpError) as exc_info:
            await dispatch("upload_work_item_attachment",
                           {"workItemId": 8, "fileName": "a.txt", "content": "%%%"}, session)
        assert exc_info.value.error.code == INVALID_PARAMS
        assert "content" in exc_info.value.error.message
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_delete_attachment(self, session, fake_api):
        fake_api.add("DELETE", "/Web/_apis/wit/attachments/abc-123", None, status=204)
        text = _text(await dispatch("delete_work_item_attachment",
                                    {"attachmentId": "abc-123", "projectName": "Web"}, session))
        assert text == "Deleted attachment abc-123."


class TestDispatchErrors:
    """Test error normalization at the dispatch boundary."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, session):
        with pytest.raises(McpError) as exc_info:
            await dispatch("drop_database", {}, session)
        assert exc_info.value.error.code == METHOD_NOT_FOUND
        assert "drop_database" in exc_info.value.error.message

    @pytest.mark.asyncio
    async def test_unknown_argument(self, session, fake_api):
        with pytest.raises(McpError) as exc_info:
            await dispatch("get_work_item_details", {"id": 1, "verbose": True}, session)
        assert exc_info.value.error.code == INVALID_PARAMS
        assert "verbose" in exc_info.value.error.message
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_remote_error_message_is_extracted(self, session, fake_api):
        fake_api.add("GET", "/_apis/wit/workitems/404",
                     {"message": "TF401232: Work item 404 does not exist."}, status=404)
        with pytest.raises(McpError) as exc_info:
            await dispatch("get_work_item_details", {"id": 404}, session)
        assert exc_info.value.error.code == INTERNAL_ERROR
        assert "404" in exc_info.value.error.message
        assert "TF401232" in exc_info.value.error.message

    @pytest.mark.asyncio
    async def test_connection_failure(self, settings):

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        ctx = SessionContext(settings, transport=httpx.MockTransport(refuse))
        try:
            with pytest.raises(McpError) as exc_info:
                await dispatch("list_projects", {}, ctx)
        finally:
            await ctx.aclose()
        assert exc_info.value.error.code == INTERNAL_ERROR
        assert "Connection to Azure DevOps failed" in exc_info.value.error.message


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
