"""
Azure DevOps REST client implementing the AdoClient protocol on top of requests.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final
from urllib.parse import quote

import requests

from . import utils
from .exceptions import AdoApiError

if TYPE_CHECKING:
    from .settings import ConnectionSettings

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

API_VERSION: Final[str] = "7.1"
_GRAPH_API_VERSION: Final[str] = "7.1-preview.1"
_DASHBOARD_API_VERSION: Final[str] = "7.1-preview.3"
_FEATURE_STATE_API_VERSION: Final[str] = "7.1-preview.1"
_PROPERTIES_API_VERSION: Final[str] = "7.1-preview.1"
_WORK_ITEM_BATCH_SIZE: Final[int] = 200
_CONTINUATION_HEADER: Final[str] = "x-ms-continuationtoken"
_JSON_PATCH: Final[dict[str, str]] = {"Content-Type": "application/json-patch+json"}


def _segment(value: str) -> str:
    return quote(value, safe="")


def _path(value: str) -> str:
    return quote(value.strip("/"), safe="/")


class AdoRestClient:
    """Blocking Azure DevOps REST client for one organization.

    Every non-2xx response and every transport failure is raised as
    AdoApiError carrying the status code and the server's typeKey.
    """

    def __init__(
        self,
        organization_url: str,
        token: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 30,
    ) -> None:
        self.organization_url = organization_url.rstrip("/")
        self.graph_url = utils.graph_base_url(organization_url)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = ("", token)
        self.session.headers.update({"Accept": "application/json"})

    # Transport

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
        api_version: str | None = API_VERSION,
    ) -> requests.Response:
        query = dict(params or {})
        if api_version:
            query["api-version"] = api_version
        logger.debug(f"{method} {url} {query}")
        try:
            response = self.session.request(
                method, url, params=query, json=json, data=data, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            msg = f"{method} {url} failed: {e}"
            raise AdoApiError(msg) from e
        if not response.ok:
            raise self._error_from_response(method, url, response)
        return response

    @staticmethod
    def _error_from_response(method: str, url: str, response: requests.Response) -> AdoApiError:
        message = response.reason or "request failed"
        type_key = ""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or message
            type_key = body.get("typeKey") or ""
        return AdoApiError(f"{method} {url}: {message}", status_code=response.status_code, type_key=type_key)

    def _json(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        response = self._request(method, url, **kwargs)
        if not response.content:
            return {}
        return response.json()

    def _list(
        self, url: str, *, params: dict[str, Any] | None = None, api_version: str = API_VERSION
    ) -> list[dict[str, Any]]:
        """GET a collection, following continuation tokens."""
        items: list[dict[str, Any]] = []
        query = dict(params or {})
        while True:
            response = self._request("GET", url, params=query, api_version=api_version)
            body = response.json() if response.content else {}
            items.extend(body.get("value", []))
            token = response.headers.get(_CONTINUATION_HEADER)
            if not token:
                return items
            query["continuationToken"] = token

    def _project_url(self, project: str, *parts: str) -> str:
        return "/".join([self.organization_url, _segment(project), "_apis", *parts])

    # Projects and processes

    def list_projects(self) -> list[dict[str, Any]]:
        return self._list(f"{self.organization_url}/_apis/projects")

    def get_project(self, project: str, *, include_capabilities: bool = False) -> dict[str, Any]:
        params = {"includeCapabilities": "true"} if include_capabilities else None
        return self._json("GET", f"{self.organization_url}/_apis/projects/{_segment(project)}", params=params)

    def create_project(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._json("POST", f"{self.organization_url}/_apis/projects", json=payload)

    def update_project(self, project_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._json("PATCH", f"{self.organization_url}/_apis/projects/{_segment(project_id)}", json=payload)

    def delete_project(self, project_id: str) -> dict[str, Any]:
        """Queue deletion of a project. Not part of a clone run; used to clean up test projects."""
        return self._json("DELETE", f"{self.organization_url}/_apis/projects/{_segment(project_id)}")

    def get_operation(self, operation_id: str) -> dict[str, Any]:
        return self._json("GET", f"{self.organization_url}/_apis/operations/{_segment(operation_id)}")

    def list_processes(self) -> list[dict[str, Any]]:
        return self._list(f"{self.organization_url}/_apis/process/processes")

    def get_project_properties(self, project_id: str) -> list[dict[str, Any]]:
        return self._list(
            f"{self.organization_url}/_apis/projects/{_segment(project_id)}/properties",
            api_version=_PROPERTIES_API_VERSION,
        )

    def set_feature_state(self, project_id: str, feature_id: str, *, enabled: bool) -> None:
        url = (
            f"{self.organization_url}/_apis/FeatureManagement/FeatureStates/host/project/"
            f"{_segment(project_id)}/{_segment(feature_id)}"
        )
        payload = {
            "featureId": feature_id,
            "scope": {"settingScope": "project", "userScoped": False},
            "state": 1 if enabled else 0,
        }
        self._request("PATCH", url, json=payload, api_version=_FEATURE_STATE_API_VERSION)

    # Repositories

    def list_repositories(self, project: str) -> list[dict[str, Any]]:
        return self._list(self._project_url(project, "git", "repositories"))

    def create_repository(self, project_id: str, name: str) -> dict[str, Any]:
        payload = {"name": name, "project": {"id": project_id}}
        return self._json("POST", self._project_url(project_id, "git", "repositories"), json=payload)

    # Work items

    def query_work_items(self, project: str, wiql: str) -> list[int]:
        body = self._json("POST", self._project_url(project, "wit", "wiql"), json={"query": wiql})
        return [int(ref["id"]) for ref in body.get("workItems", [])]

    def get_work_items(self, ids: list[int]) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for start in range(0, len(ids), _WORK_ITEM_BATCH_SIZE):
            batch = ids[start : start + _WORK_ITEM_BATCH_SIZE]
            body = self._json(
                "GET",
                f"{self.organization_url}/_apis/wit/workitems",
                params={"ids": ",".join(str(i) for i in batch), "$expand": "all"},
            )
            items.extend(body.get("value", []))
        return items

    def create_work_item(self, project: str, work_item_type: str, operations: list[dict[str, Any]]) -> dict[str, Any]:
        url = self._project_url(project, "wit", "workitems", f"${_segment(work_item_type)}")
        return self._json("POST", url, json=operations, headers=_JSON_PATCH)

    def update_work_item(self, work_item_id: int, operations: list[dict[str, Any]]) -> dict[str, Any]:
        url = f"{self.organization_url}/_apis/wit/workitems/{work_item_id}"
        return self._json("PATCH", url, json=operations, headers=_JSON_PATCH)

    def list_work_item_types(self, project: str) -> list[dict[str, Any]]:
        return self._list(self._project_url(project, "wit", "workitemtypes"))

    def get_attachment(self, url: str) -> bytes:
        return self._request("GET", url, headers={"Accept": "application/octet-stream"}).content

    def create_attachment(self, project: str, file_name: str, content: bytes) -> dict[str, Any]:
        return self._json(
            "POST",
            self._project_url(project, "wit", "attachments"),
            params={"fileName": file_name},
            data=content,
            headers={"Content-Type": "application/octet-stream"},
        )

    # Classification nodes

    def get_classification_nodes(self, project: str, structure_group: str, *, depth: int = 10) -> dict[str, Any]:
        url = self._project_url(project, "wit", "classificationnodes", _segment(structure_group))
        return self._json("GET", url, params={"$depth": depth})

    def create_classification_node(
        self,
        project: str,
        structure_group: str,
        parent_path: str,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        parts = ["wit", "classificationnodes", _segment(structure_group)]
        if parent_path.strip("/"):
            parts.append(_path(parent_path))
        payload: dict[str, Any] = {"name": name}
        if attributes:
            payload["attributes"] = attributes
        return self._json("POST", self._project_url(project, *parts), json=payload)

    # Build definitions

    def list_build_definitions(self, project: str) -> list[dict[str, Any]]:
        return self._list(self._project_url(project, "build", "definitions"))

    def get_build_definition(self, project: str, definition_id: int) -> dict[str, Any]:
        return self._json("GET", self._project_url(project, "build", "definitions", str(definition_id)))

    def create_build_definition(self, project: str, definition: dict[str, Any]) -> dict[str, Any]:
        return self._json("POST", self._project_url(project, "build", "definitions"), json=definition)

    # Queries

    def list_queries(self, project: str, *, depth: int = 2) -> list[dict[str, Any]]:
        return self._list(self._project_url(project, "wit", "queries"), params={"$depth": depth, "$expand": "all"})

    def get_query(self, project: str, path: str, *, depth: int = 2) -> dict[str, Any]:
        url = self._project_url(project, "wit", "queries", _path(path))
        return self._json("GET", url, params={"$depth": depth, "$expand": "all"})

    def create_query(self, project: str, parent_path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = self._project_url(project, "wit", "queries", _path(parent_path))
        return self._json("POST", url, json=payload)

    # Dashboards

    def list_dashboards(self, project: str) -> list[dict[str, Any]]:
        return self._list(self._project_url(project, "dashboard", "dashboards"), api_version=_DASHBOARD_API_VERSION)

    def get_dashboard(self, project: str, dashboard_id: str) -> dict[str, Any]:
        url = self._project_url(project, "dashboard", "dashboards", _segment(dashboard_id))
        return self._json("GET", url, api_version=_DASHBOARD_API_VERSION)

    def create_dashboard(self, project: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = self._project_url(project, "dashboard", "dashboards")
        return self._json("POST", url, json=payload, api_version=_DASHBOARD_API_VERSION)

    # Wiki

    def list_wikis(self, project: str) -> list[dict[str, Any]]:
        return self._list(self._project_url(project, "wiki", "wikis"))

    def create_wiki(self, project: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._json("POST", self._project_url(project, "wiki", "wikis"), json=payload)

    def get_wiki_page(
        self,
        project: str,
        wiki_id: str,
        path: str,
        *,
        recursion_level: str | None = None,
        include_content: bool = False,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"path": path}
        if recursion_level:
            params["recursionLevel"] = recursion_level
        if include_content:
            params["includeContent"] = "true"
        url = self._project_url(project, "wiki", "wikis", _segment(wiki_id), "pages")
        return self._json("GET", url, params=params)

    def create_or_update_wiki_page(self, project: str, wiki_id: str, path: str, content: str) -> dict[str, Any]:
        """PUT a page; an existing page is updated using its current ETag."""
        url = self._project_url(project, "wiki", "wikis", _segment(wiki_id), "pages")
        try:
            return self._json("PUT", url, params={"path": path}, json={"content": content})
        except AdoApiError as e:
            if e.status_code not in (409, 412):
                raise
        existing = self._request("GET", url, params={"path": path})
        etag = existing.headers.get("ETag", "")
        return self._json("PUT", url, params={"path": path}, json={"content": content}, headers={"If-Match": etag})

    # Teams

    def list_teams(self, project: str) -> list[dict[str, Any]]:
        return self._list(f"{self.organization_url}/_apis/projects/{_segment(project)}/teams")

    def create_team(self, project: str, name: str, description: str = "") -> dict[str, Any]:
        url = f"{self.organization_url}/_apis/projects/{_segment(project)}/teams"
        return self._json("POST", url, json={"name": name, "description": description})

    def list_team_members(self, project: str, team_id: str) -> list[dict[str, Any]]:
        url = f"{self.organization_url}/_apis/projects/{_segment(project)}/teams/{_segment(team_id)}/members"
        return self._list(url)

    def get_team_settings(self, project: str, team: str) -> dict[str, Any]:
        url = f"{self.organization_url}/{_segment(project)}/{_segment(team)}/_apis/work/teamsettings"
        return self._json("GET", url)

    def update_team_settings(self, project: str, team: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.organization_url}/{_segment(project)}/{_segment(team)}/_apis/work/teamsettings"
        return self._json("PATCH", url, json=payload)

    # Security groups (graph)

    def list_groups(self, scope_descriptor: str | None = None) -> list[dict[str, Any]]:
        params = {"scopeDescriptor": scope_descriptor} if scope_descriptor else None
        return self._list(f"{self.graph_url}/_apis/graph/groups", params=params, api_version=_GRAPH_API_VERSION)

    def get_descriptor(self, storage_key: str) -> str:
        url = f"{self.graph_url}/_apis/graph/descriptors/{_segment(storage_key)}"
        return str(self._json("GET", url, api_version=_GRAPH_API_VERSION).get("value", ""))

    def list_memberships(self, subject_descriptor: str, *, direction: str = "down") -> list[dict[str, Any]]:
        url = f"{self.graph_url}/_apis/graph/memberships/{_segment(subject_descriptor)}"
        return self._list(url, params={"direction": direction}, api_version=_GRAPH_API_VERSION)

    def add_membership(self, subject_descriptor: str, container_descriptor: str) -> dict[str, Any]:
        url = (
            f"{self.graph_url}/_apis/graph/memberships/"
            f"{_segment(subject_descriptor)}/{_segment(container_descriptor)}"
        )
        return self._json("PUT", url, api_version=_GRAPH_API_VERSION)


def get_client(settings: ConnectionSettings) -> AdoRestClient:
    """Get an Azure DevOps client for the configured organization."""
    return AdoRestClient(settings.organization_url, settings.personal_access_token)
