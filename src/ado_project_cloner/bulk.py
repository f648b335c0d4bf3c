"""
Flat copies of repositories, build definitions and dashboards.

Nothing downstream references these entities by ID within the run, so no
identifier mapping is kept. A single entity failure is logged and skipped;
these steps report a count rather than failing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from .exceptions import is_already_exists

if TYPE_CHECKING:
    from .models import CloneOptions, ProjectInfo
    from .protocols import AdoClient, ProgressSink

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

SERVER_ASSIGNED_BUILD_FIELDS: Final[tuple[str, ...]] = (
    "id",
    "revision",
    "url",
    "uri",
    "_links",
    "createdDate",
    "queueStatus",
    "authoredBy",
)
SERVER_ASSIGNED_WIDGET_FIELDS: Final[tuple[str, ...]] = ("id", "eTag", "url", "_links", "dashboard")


def _log(progress: ProgressSink | None, message: str) -> None:
    if progress is not None:
        progress.log("info", message)


def clone_repositories(
    client: AdoClient,
    source_project: ProjectInfo,
    target_project: ProjectInfo,
    options: CloneOptions,
    progress: ProgressSink | None = None,
) -> str:
    """Create an empty target repository for each source repository not excluded."""
    created = 0
    skipped = 0
    for repo in client.list_repositories(source_project.name):
        name = repo["name"]
        if options.is_repository_excluded(name):
            _log(progress, f"Skipping repository: {name}")
            skipped += 1
            continue

        _log(progress, f"Creating repository: {name}")
        try:
            client.create_repository(target_project.id, name)
        except Exception as e:
            if is_already_exists(e):
                logger.info(f"Repository '{name}' already exists in {target_project.name}")
            else:
                logger.warning(f"Failed to create repository '{name}': {e}")
            skipped += 1
            continue
        created += 1

    logger.info(f"Created {created} repositories, skipped {skipped}")
    return f"Cloned {created} repositories ({skipped} skipped)"


def prepare_build_definition(
    definition: dict[str, Any],
    target_project: ProjectInfo,
    target_repositories: dict[str, dict[str, Any]],
) -> dict[str, Any]:
    """Turn a source build definition into a creatable definition for the target project.

    Args:
        definition: Full source definition
        target_project: Project the definition will be created in
        target_repositories: Target repositories keyed by lower-cased name

    Returns:
        A new definition dict; the input is left untouched
    """
    prepared = {key: value for key, value in definition.items() if key not in SERVER_ASSIGNED_BUILD_FIELDS}
    prepared["project"] = {"id": target_project.id, "name": target_project.name}

    repository = prepared.get("repository")
    if isinstance(repository, dict) and repository.get("name"):
        target_repo = target_repositories.get(str(repository["name"]).lower())
        if target_repo is not None:
            prepared["repository"] = {
                **repository,
                "id": target_repo["id"],
                "name": target_repo["name"],
                "url": target_repo.get("remoteUrl") or target_repo.get("url", ""),
            }
        else:
            logger.debug(f"No target repository named '{repository['name']}' for definition {definition.get('name')}")
    return prepared


def clone_build_definitions(
    client: AdoClient,
    source_project: ProjectInfo,
    target_project: ProjectInfo,
    progress: ProgressSink | None = None,
) -> str:
    """Copy every build definition of the source project."""
    target_repositories = {repo["name"].lower(): repo for repo in client.list_repositories(target_project.name)}
    created = 0
    failed = 0
    for summary in client.list_build_definitions(source_project.name):
        name = summary.get("name", summary.get("id"))
        _log(progress, f"Cloning build pipeline: {name}")
        try:
            definition = client.get_build_definition(source_project.name, int(summary["id"]))
            client.create_build_definition(
                target_project.name, prepare_build_definition(definition, target_project, target_repositories)
            )
        except Exception as e:
            logger.warning(f"Failed to clone build definition '{name}': {e}")
            failed += 1
            continue
        created += 1

    logger.info(f"Created {created} build definitions, {failed} failed")
    return f"Cloned {created} build pipelines ({failed} failed)"


def prepare_dashboard(dashboard: dict[str, Any]) -> dict[str, Any]:
    """Creatable copy of a dashboard: name, description, refresh interval and widgets without IDs."""
    payload: dict[str, Any] = {
        "name": dashboard["name"],
        "description": dashboard.get("description") or "",
        "widgets": [
            {key: value for key, value in widget.items() if key not in SERVER_ASSIGNED_WIDGET_FIELDS}
            for widget in dashboard.get("widgets") or []
        ],
    }
    if dashboard.get("refreshInterval") is not None:
        payload["refreshInterval"] = dashboard["refreshInterval"]
    return payload


def clone_dashboards(
    client: AdoClient,
    source_project: ProjectInfo,
    target_project: ProjectInfo,
    progress: ProgressSink | None = None,
) -> str:
    """Copy the project dashboards of the source project."""
    created = 0
    for summary in client.list_dashboards(source_project.name):
        name = summary.get("name", summary.get("id"))
        try:
            dashboard = client.get_dashboard(source_project.name, str(summary["id"]))
            client.create_dashboard(target_project.name, prepare_dashboard(dashboard))
        except Exception as e:
            logger.warning(f"Failed to clone dashboard '{name}': {e}")
            continue
        created += 1
        _log(progress, f"Cloned dashboard: {name}")

    logger.info(f"Created {created} dashboards")
    return f"Cloned {created} dashboards"
