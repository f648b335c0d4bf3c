"""
Source project lookup, target project provisioning and project-level settings.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Final

from .capabilities import ServiceState, apply_service_states, detect_service_states
from .exceptions import AdoApiError, ProjectProvisioningError, SourceProjectNotFoundError, TargetProjectExistsError
from .models import ProjectInfo
from .teams import clone_team_settings, default_team_name

if TYPE_CHECKING:
    from collections.abc import Callable

    from .protocols import AdoClient, ProgressSink

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

CORE_CAPABILITIES: Final[tuple[str, ...]] = ("versioncontrol", "processTemplate")
DEFAULT_PROCESS_NAME: Final[str] = "Agile"
DEFAULT_SOURCE_CONTROL: Final[str] = "Git"
SETTLE_DELAY_SECONDS: Final[float] = 5.0


def get_source_project(client: AdoClient, project: str) -> ProjectInfo:
    """Look up the source project by ID or name, with capabilities.

    Raises:
        SourceProjectNotFoundError: If no project matches
    """
    try:
        return ProjectInfo.from_api(client.get_project(project, include_capabilities=True))
    except AdoApiError as e:
        if e.status_code != 404:
            msg = f"Could not read source project '{project}': {e}"
            raise SourceProjectNotFoundError(msg) from e
        lookup_error = e

    # The ID or name may differ in case; fall back to the full listing
    for candidate in client.list_projects():
        if project.lower() in (str(candidate.get("id", "")).lower(), str(candidate.get("name", "")).lower()):
            return ProjectInfo.from_api(client.get_project(str(candidate["id"]), include_capabilities=True))
    msg = f"Source project '{project}' not found"
    raise SourceProjectNotFoundError(msg) from lookup_error


def resolve_process_template_id(client: AdoClient, source_template_id: str | None) -> str:
    """Pick the process for the target: the source's if available, else Agile, else the first listed.

    Raises:
        ProjectProvisioningError: If the organization lists no processes
    """
    processes = client.list_processes()
    if not processes:
        msg = "No process templates available in the organization"
        raise ProjectProvisioningError(msg)

    if source_template_id:
        for process in processes:
            if str(process.get("id", "")).lower() == source_template_id.lower():
                logger.info(f"Using source process template '{process.get('name')}'")
                return str(process["id"])
        logger.warning(f"Source process template {source_template_id} not available, using default")

    for process in processes:
        if str(process.get("name", "")).lower() == DEFAULT_PROCESS_NAME.lower():
            return str(process["id"])
    return str(processes[0]["id"])


def build_create_payload(
    source: ProjectInfo,
    target_name: str,
    description: str | None,
    template_id: str,
) -> dict[str, Any]:
    """Project creation payload: only the core capabilities are accepted at creation time."""
    source_control = source.capabilities.get("versioncontrol", {}).get("sourceControlType") or DEFAULT_SOURCE_CONTROL
    return {
        "name": target_name,
        "description": description or f"Cloned from {source.name} - {source.description}",
        "visibility": source.visibility,
        "capabilities": {
            "versioncontrol": {"sourceControlType": source_control},
            "processTemplate": {"templateTypeId": template_id},
        },
    }


def _raise_if_operation_failed(client: AdoClient, operation_id: str | None, target_name: str) -> None:
    if not operation_id:
        return
    try:
        operation = client.get_operation(operation_id)
    except AdoApiError as e:
        logger.debug(f"Could not read creation operation {operation_id}: {e}")
        return
    if str(operation.get("status", "")).lower() in ("failed", "cancelled"):
        details = operation.get("resultMessage") or "no details"
        msg = f"Creation of project '{target_name}' {operation['status']}: {details}"
        raise ProjectProvisioningError(msg)


def _read_back(
    client: AdoClient,
    target_name: str,
    operation_id: str | None,
    settle_delay: float,
    sleep: Callable[[float], None],
) -> ProjectInfo:
    sleep(settle_delay)
    try:
        return ProjectInfo.from_api(client.get_project(target_name, include_capabilities=True))
    except AdoApiError as e:
        logger.info(f"Project '{target_name}' not readable yet, retrying once: {e}")
    _raise_if_operation_failed(client, operation_id, target_name)

    sleep(settle_delay)
    try:
        return ProjectInfo.from_api(client.get_project(target_name, include_capabilities=True))
    except AdoApiError as e:
        msg = f"Project '{target_name}' was queued for creation but could not be read back: {e}"
        raise ProjectProvisioningError(msg) from e


def overlay_service_capabilities(client: AdoClient, project_id: str, capabilities: dict[str, dict[str, str]]) -> None:
    """Apply the non-core source capabilities to the target project; failure is logged, never raised."""
    extra = {key: dict(value) for key, value in capabilities.items() if key not in CORE_CAPABILITIES}
    if not extra:
        logger.debug("No service capabilities to apply beyond core settings")
        return
    try:
        client.update_project(project_id, {"capabilities": extra})
    except Exception as e:
        logger.warning(f"Failed to apply {len(extra)} service capabilities to project {project_id}: {e}")
        return
    logger.info(f"Applied {len(extra)} service capabilities")


def create_target_project(
    client: AdoClient,
    source: ProjectInfo,
    target_name: str,
    description: str | None = None,
    *,
    settle_delay: float = SETTLE_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> ProjectInfo:
    """Create the target project and wait for it to become readable.

    Args:
        client: Remote client
        source: Source project (with capabilities)
        target_name: Name of the project to create
        description: Target description, defaults to one naming the source
        settle_delay: Seconds to wait before reading the new project back
        sleep: Sleep function (replaced in tests)

    Returns:
        The created project

    Raises:
        TargetProjectExistsError: If a project with target_name already exists
        ProjectProvisioningError: If creation fails or the project never becomes readable
    """
    try:
        client.get_project(target_name)
    except AdoApiError as e:
        if e.status_code != 404:
            msg = f"Could not check whether project '{target_name}' exists: {e}"
            raise ProjectProvisioningError(msg) from e
    else:
        msg = f"A project named '{target_name}' already exists"
        raise TargetProjectExistsError(msg)

    source_template = source.capabilities.get("processTemplate", {}).get("templateTypeId")
    template_id = resolve_process_template_id(client, source_template)
    payload = build_create_payload(source, target_name, description, template_id)
    try:
        operation = client.create_project(payload)
    except AdoApiError as e:
        msg = f"Failed to queue creation of project '{target_name}': {e}"
        raise ProjectProvisioningError(msg) from e
    logger.info(f"Queued creation of project '{target_name}' (operation {operation.get('id')})")

    target = _read_back(client, target_name, operation.get("id"), settle_delay, sleep)
    overlay_service_capabilities(client, target.id, source.capabilities)
    return target


def apply_project_settings(
    client: AdoClient,
    source: ProjectInfo,
    target: ProjectInfo,
    progress: ProgressSink | None = None,
) -> str:
    """Mirror the source project's service on/off states onto the target."""
    try:
        properties = client.get_project_properties(source.id)
    except Exception as e:
        logger.info(f"Project properties unavailable, using capabilities only: {e}")
        properties = []

    states = detect_service_states(source.capabilities, properties)
    unknown = sum(1 for state in states.values() if state is ServiceState.UNKNOWN)
    applied, failed = apply_service_states(client, target.id, states)
    if progress is not None:
        progress.log("info", f"Service states: {applied} applied, {unknown} unknown, {failed} failed")
    return f"Applied {applied} service states ({unknown} unknown, {failed} failed)"


def apply_team_configuration(
    client: AdoClient,
    source: ProjectInfo,
    target: ProjectInfo,
    progress: ProgressSink | None = None,
) -> str:
    """Align target visibility with the source and copy the default team's settings."""
    changes: list[str] = []
    current = ProjectInfo.from_api(client.get_project(target.id))
    if current.visibility != source.visibility:
        client.update_project(target.id, {"visibility": source.visibility, "description": current.description})
        logger.info(f"Updated project visibility to match source: {source.visibility}")
        changes.append(f"visibility set to {source.visibility}")

    if clone_team_settings(client, source, target, default_team_name(source.name), default_team_name(target.name)):
        changes.append("default team settings copied")

    if progress is not None:
        progress.log("info", "Applied team configuration")
    return f"Team configuration applied: {', '.join(changes)}" if changes else "Team configuration already matches"
