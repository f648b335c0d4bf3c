"""
Tests for the Azure DevOps REST client, with a mocked requests session.
"""

from typing import Any
from unittest.mock import Mock

import pytest
import requests

from ado_project_cloner.ado_client import AdoRestClient, get_client
from ado_project_cloner.exceptions import AdoApiError
from ado_project_cloner.settings import ConnectionSettings

ORG = "https://dev.azure.com/contoso"


def response(
    body: Any = None,
    *,
    status: int = 200,
    headers: dict[str, str] | None = None,
    content: bytes | None = None,
) -> Mock:
    mock_response = Mock()
    mock_response.ok = status < 400
    mock_response.status_code = status
    mock_response.reason = "Bad Request" if status >= 400 else "OK"
    mock_response.headers = headers or {}
    mock_response.content = content if content is not None else (b"{}" if body is not None else b"")
    if isinstance(body, Exception):
        mock_response.json.side_effect = body
    else:
        mock_response.json.return_value = body
    return mock_response


@pytest.mark.unit
class TestAdoRestClient:
    def setup_method(self) -> None:
        self.session = Mock()
        self.session.headers = {}
        self.client = AdoRestClient(f"{ORG}/", "secret-pat", session=self.session)

    def last_call(self) -> tuple[str, str, dict[str, Any]]:
        method, url = self.session.request.call_args.args
        return method, url, self.session.request.call_args.kwargs

    def test_basic_auth_with_empty_user(self) -> None:
        assert self.session.auth == ("", "secret-pat")
        assert self.client.organization_url == ORG
        assert self.client.graph_url == "https://vssps.dev.azure.com/contoso"

    def test_api_version_added_to_every_request(self) -> None:
        self.session.request.return_value = response({"id": "p1", "name": "Source"})

        project = self.client.get_project("Source", include_capabilities=True)

        method, url, kwargs = self.last_call()
        assert project["id"] == "p1"
        assert method == "GET"
        assert url == f"{ORG}/_apis/projects/Source"
        assert kwargs["params"] == {"includeCapabilities": "true", "api-version": "7.1"}

    def test_project_name_is_url_encoded(self) -> None:
        self.session.request.return_value = response({"value": []})

        self.client.list_repositories("My Project")

        assert self.last_call()[1] == f"{ORG}/My%20Project/_apis/git/repositories"

    def test_error_carries_status_and_type_key(self) -> None:
        self.session.request.return_value = response(
            {"message": "TF200016: The project does not exist", "typeKey": "ProjectDoesNotExistException"},
            status=404,
        )

        with pytest.raises(AdoApiError) as exc_info:
            self.client.get_project("Nope")

        assert exc_info.value.status_code == 404
        assert exc_info.value.type_key == "ProjectDoesNotExistException"
        assert "TF200016" in str(exc_info.value)

    def test_error_without_json_body(self) -> None:
        self.session.request.return_value = response(ValueError("no json"), status=500, content=b"<html>")

        with pytest.raises(AdoApiError) as exc_info:
            self.client.list_projects()

        assert exc_info.value.status_code == 500

    def test_transport_failure_has_no_status(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("reset")

        with pytest.raises(AdoApiError) as exc_info:
            self.client.list_projects()

        assert exc_info.value.status_code is None

    def test_list_follows_continuation_token(self) -> None:
        self.session.request.side_effect = [
            response({"value": [{"name": "A"}]}, headers={"x-ms-continuationtoken": "next"}),
            response({"value": [{"name": "B"}]}),
        ]

        projects = self.client.list_projects()

        assert [p["name"] for p in projects] == ["A", "B"]
        assert self.session.request.call_args.kwargs["params"]["continuationToken"] == "next"

    def test_work_items_fetched_in_batches_of_200(self) -> None:
        self.session.request.side_effect = [response({"value": [{"id": 1}]}), response({"value": [{"id": 2}]})]

        items = self.client.get_work_items(list(range(1, 251)))

        assert len(items) == 2
        first_params = self.session.request.call_args_list[0].kwargs["params"]
        second_params = self.session.request.call_args_list[1].kwargs["params"]
        assert len(first_params["ids"].split(",")) == 200
        assert second_params["ids"].split(",")[0] == "201"
        assert first_params["$expand"] == "all"

    def test_work_item_creation_uses_json_patch(self) -> None:
        self.session.request.return_value = response({"id": 1001})
        operations = [{"op": "add", "path": "/fields/System.Title", "value": "A"}]

        self.client.create_work_item("Target", "User Story", operations)

        method, url, kwargs = self.last_call()
        assert method == "POST"
        assert url == f"{ORG}/Target/_apis/wit/workitems/$User%20Story"
        assert kwargs["json"] == operations
        assert kwargs["headers"] == {"Content-Type": "application/json-patch+json"}

    def test_wiql_query_returns_ids(self) -> None:
        self.session.request.return_value = response({"workItems": [{"id": 3}, {"id": 5}]})

        assert self.client.query_work_items("Source", "SELECT [System.Id] FROM WorkItems") == [3, 5]

    def test_classification_node_under_parent_path(self) -> None:
        self.session.request.return_value = response({"name": "Sprint 1"})

        self.client.create_classification_node("Target", "Iterations", "Release 1", "Sprint 1", {"startDate": "x"})

        _, url, kwargs = self.last_call()
        assert url == f"{ORG}/Target/_apis/wit/classificationnodes/Iterations/Release%201"
        assert kwargs["json"] == {"name": "Sprint 1", "attributes": {"startDate": "x"}}

    def test_query_created_under_folder_path(self) -> None:
        self.session.request.return_value = response({})

        self.client.create_query("Target", "Shared Queries/My Folder", {"name": "Q"})

        assert self.last_call()[1] == f"{ORG}/Target/_apis/wit/queries/Shared%20Queries/My%20Folder"

    def test_existing_wiki_page_updated_with_etag(self) -> None:
        self.session.request.side_effect = [
            response({"message": "page exists"}, status=409),
            response({}, headers={"ETag": '"abc"'}),
            response({"path": "/Home"}),
        ]

        self.client.create_or_update_wiki_page("Target", "wiki-id", "/Home", "# Home")

        assert self.session.request.call_args.kwargs["headers"] == {"If-Match": '"abc"'}

    def test_dashboards_use_preview_api_version(self) -> None:
        self.session.request.return_value = response({"value": []})

        self.client.list_dashboards("Source")

        assert self.last_call()[2]["params"]["api-version"] == "7.1-preview.3"

    def test_descriptor_lookup_uses_graph_host(self) -> None:
        self.session.request.return_value = response({"value": "scp.abc"})

        assert self.client.get_descriptor("project-id") == "scp.abc"
        assert self.last_call()[1] == "https://vssps.dev.azure.com/contoso/_apis/graph/descriptors/project-id"

    def test_attachment_download_returns_bytes(self) -> None:
        self.session.request.return_value = response(content=b"\x89PNG")

        assert self.client.get_attachment(f"{ORG}/_apis/wit/attachments/abc") == b"\x89PNG"


@pytest.mark.unit
class TestGetClient:
    def test_builds_client_from_settings(self) -> None:
        client = get_client(ConnectionSettings(organization_url=ORG, personal_access_token="pat"))

        assert isinstance(client, AdoRestClient)
        assert client.session.auth == ("", "pat")
