"""Protocols defining the contracts the cloning core consumes and produces.

The cloning architecture separates concerns into three components:

1. AdoClient: Narrow create/read/update/list verbs against the platform
2. ProgressSink: Fire-and-forget progress notifications for the caller
3. CloneOrchestrator: Drives the step sequence, owns ID mapping and tree replication

This separation allows:
- Testing every step against an in-memory client
- Swapping the progress transport (log lines, a web socket, nothing)
- Keeping platform payload quirks inside the REST client
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .models import StepStatus


class AdoClient(Protocol):
    """Protocol for the remote entity client.

    Source and target are always projects on the same organization, so one
    client serves both sides. Every method is a blocking request/response
    call and raises AdoApiError on failure. Payloads are the platform's JSON
    shapes, returned as plain dicts.
    """

    # Projects and processes

    def list_projects(self) -> list[dict[str, Any]]:
        """List all projects of the organization."""
        ...

    def get_project(self, project: str, *, include_capabilities: bool = False) -> dict[str, Any]:
        """Get a project by ID or name."""
        ...

    def create_project(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Queue project creation and return the operation reference."""
        ...

    def update_project(self, project_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Queue a project update and return the operation reference."""
        ...

    def get_operation(self, operation_id: str) -> dict[str, Any]:
        """Get the status of a queued operation."""
        ...

    def list_processes(self) -> list[dict[str, Any]]:
        """List the process templates available on the organization."""
        ...

    def get_project_properties(self, project_id: str) -> list[dict[str, Any]]:
        """List the name/value properties of a project."""
        ...

    def set_feature_state(self, project_id: str, feature_id: str, *, enabled: bool) -> None:
        """Turn a project-scoped service (Boards, Repos, ...) on or off."""
        ...

    # Repositories

    def list_repositories(self, project: str) -> list[dict[str, Any]]: ...

    def create_repository(self, project_id: str, name: str) -> dict[str, Any]: ...

    # Work items

    def query_work_items(self, project: str, wiql: str) -> list[int]:
        """Run a WIQL query and return the matching work item IDs in result order."""
        ...

    def get_work_items(self, ids: list[int]) -> list[dict[str, Any]]:
        """Get work items with fields and relations expanded."""
        ...

    def create_work_item(self, project: str, work_item_type: str, operations: list[dict[str, Any]]) -> dict[str, Any]:
        """Create a work item from JSON patch operations."""
        ...

    def update_work_item(self, work_item_id: int, operations: list[dict[str, Any]]) -> dict[str, Any]:
        """Apply JSON patch operations to an existing work item."""
        ...

    def list_work_item_types(self, project: str) -> list[dict[str, Any]]: ...

    def get_attachment(self, url: str) -> bytes:
        """Download attachment content from its URL."""
        ...

    def create_attachment(self, project: str, file_name: str, content: bytes) -> dict[str, Any]:
        """Upload attachment content, returning its reference (id, url)."""
        ...

    # Classification nodes

    def get_classification_nodes(self, project: str, structure_group: str, *, depth: int = 10) -> dict[str, Any]: ...

    def create_classification_node(
        self,
        project: str,
        structure_group: str,
        parent_path: str,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...

    # Build definitions

    def list_build_definitions(self, project: str) -> list[dict[str, Any]]: ...

    def get_build_definition(self, project: str, definition_id: int) -> dict[str, Any]: ...

    def create_build_definition(self, project: str, definition: dict[str, Any]) -> dict[str, Any]: ...

    # Queries

    def list_queries(self, project: str, *, depth: int = 2) -> list[dict[str, Any]]:
        """List the root query folders with children expanded up to depth."""
        ...

    def get_query(self, project: str, path: str, *, depth: int = 2) -> dict[str, Any]: ...

    def create_query(self, project: str, parent_path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a query or query folder under parent_path."""
        ...

    # Dashboards

    def list_dashboards(self, project: str) -> list[dict[str, Any]]: ...

    def get_dashboard(self, project: str, dashboard_id: str) -> dict[str, Any]: ...

    def create_dashboard(self, project: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    # Wiki

    def list_wikis(self, project: str) -> list[dict[str, Any]]: ...

    def create_wiki(self, project: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    def get_wiki_page(
        self,
        project: str,
        wiki_id: str,
        path: str,
        *,
        recursion_level: str | None = None,
        include_content: bool = False,
    ) -> dict[str, Any]: ...

    def create_or_update_wiki_page(self, project: str, wiki_id: str, path: str, content: str) -> dict[str, Any]: ...

    # Teams

    def list_teams(self, project: str) -> list[dict[str, Any]]: ...

    def create_team(self, project: str, name: str, description: str = "") -> dict[str, Any]: ...

    def list_team_members(self, project: str, team_id: str) -> list[dict[str, Any]]: ...

    def get_team_settings(self, project: str, team: str) -> dict[str, Any]: ...

    def update_team_settings(self, project: str, team: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    # Security groups (graph)

    def list_groups(self, scope_descriptor: str | None = None) -> list[dict[str, Any]]: ...

    def get_descriptor(self, storage_key: str) -> str:
        """Resolve a storage key (project, team or user ID) to its graph descriptor."""
        ...

    def list_memberships(self, subject_descriptor: str, *, direction: str = "down") -> list[dict[str, Any]]: ...

    def add_membership(self, subject_descriptor: str, container_descriptor: str) -> dict[str, Any]: ...


class ProgressSink(Protocol):
    """Protocol for the progress notification channel.

    Notifications are fire-and-forget. The orchestrator wraps every sink in
    a SafeProgressSink, so an implementation may raise freely without
    affecting the run outcome.
    """

    def report_progress(self, percentage: int, message: str) -> None:
        """Publish overall completion percentage."""
        ...

    def report_step(self, step_name: str, status: StepStatus, message: str) -> None:
        """Publish a named step's status (started, completed, failed)."""
        ...

    def log(self, level: str, message: str) -> None:
        """Publish a free-text log line with severity (info, warning, error, success)."""
        ...

    def complete(self, *, success: bool, result: object | None = None, error: str | None = None) -> None:
        """Publish the final completion event."""
        ...
