"""
Work item cloning: creation pass in dependency order, then the relationship pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from .attachments import AttachmentTransfer
from .exceptions import CloneError
from .id_map import IdentifierMap
from .models import WorkItemRecord
from .relationships import RelationshipLinker
from .sequencing import order_for_creation
from .type_mapping import build_type_mapping

if TYPE_CHECKING:
    from .models import ProjectInfo
    from .protocols import AdoClient, ProgressSink

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

COPIED_FIELDS: Final[tuple[str, ...]] = (
    "System.Title",
    "System.Description",
    "Microsoft.VSTS.Common.AcceptanceCriteria",
    "Microsoft.VSTS.Common.Priority",
    "Microsoft.VSTS.Common.BusinessValue",
    "Microsoft.VSTS.Common.ValueArea",
    "Microsoft.VSTS.Scheduling.Effort",
    "Microsoft.VSTS.Scheduling.StoryPoints",
    "Microsoft.VSTS.Scheduling.RemainingWork",
    "Microsoft.VSTS.Scheduling.OriginalEstimate",
    "Microsoft.VSTS.Common.Activity",
    "System.Tags",
)
CLASSIFICATION_FIELDS: Final[tuple[str, ...]] = ("System.AreaPath", "System.IterationPath")

_WIQL_TEMPLATE: Final[str] = (
    "SELECT [System.Id] FROM WorkItems WHERE [System.TeamProject] = '{project}' ORDER BY [System.Id]"
)


def build_wiql(project_name: str) -> str:
    """WIQL selecting every work item of a project, oldest first."""
    return _WIQL_TEMPLATE.format(project=project_name.replace("'", "''"))


def rewrite_classification_path(value: str, source_project: str, target_project: str) -> str:
    """Move an area/iteration path from the source project root to the target project root."""
    if value == source_project:
        return target_project
    prefix = f"{source_project}\\"
    if value.startswith(prefix):
        return f"{target_project}\\{value.removeprefix(prefix)}"
    return value


@dataclass
class WorkItemCloneStats:
    """Counts from one work item cloning step."""

    total: int = 0
    created: int = 0
    failed: int = 0
    attachments: int = 0
    links: int = 0

    def summary(self) -> str:
        return (
            f"Cloned {self.created} of {self.total} work items "
            f"({self.links} links, {self.attachments} attachments)"
        )


class WorkItemCloner:
    """Clones every work item of the source project into the target project."""

    def __init__(
        self,
        client: AdoClient,
        source_project: ProjectInfo,
        target_project: ProjectInfo,
        organization_url: str,
        *,
        progress: ProgressSink | None = None,
        copy_classification_paths: bool = False,
    ) -> None:
        self.client = client
        self.source_project = source_project
        self.target_project = target_project
        self.progress = progress
        self.copy_classification_paths = copy_classification_paths
        self.id_map: IdentifierMap[int, int] = IdentifierMap("work item")
        self.attachments = AttachmentTransfer(client, target_project.name)
        self.linker = RelationshipLinker(client, organization_url, progress)

    def fetch_source_items(self) -> list[WorkItemRecord]:
        ids = self.client.query_work_items(self.source_project.name, build_wiql(self.source_project.name))
        if not ids:
            return []
        return [WorkItemRecord.from_api(payload) for payload in self.client.get_work_items(ids)]

    def _target_type_mapping(self, items: list[WorkItemRecord]) -> dict[str, str]:
        try:
            target_types = [
                wit["name"]
                for wit in self.client.list_work_item_types(self.target_project.name)
                if not wit.get("isDisabled")
            ]
        except Exception as e:
            logger.warning(f"Could not list target work item types, keeping source types: {e}")
            return {}
        return build_type_mapping((item.work_item_type for item in items), target_types)

    def build_operations(self, item: WorkItemRecord) -> list[dict[str, Any]]:
        """JSON patch operations creating a copy of item on the target."""
        operations: list[dict[str, Any]] = []
        for field_name in COPIED_FIELDS:
            value = item.fields.get(field_name)
            if value is None or value == "":
                continue
            operations.append({"op": "add", "path": f"/fields/{field_name}", "value": value})

        if self.copy_classification_paths:
            for field_name in CLASSIFICATION_FIELDS:
                value = item.fields.get(field_name)
                if not value:
                    continue
                rewritten = rewrite_classification_path(str(value), self.source_project.name, self.target_project.name)
                operations.append({"op": "add", "path": f"/fields/{field_name}", "value": rewritten})
        return operations

    def create_items(
        self, items: list[WorkItemRecord], type_mapping: dict[str, str], stats: WorkItemCloneStats
    ) -> None:
        """Creation pass. One item's failure never stops the rest."""
        for item in order_for_creation(items):
            work_item_type = type_mapping.get(item.work_item_type, item.work_item_type)
            try:
                created = self.client.create_work_item(
                    self.target_project.name, work_item_type, self.build_operations(item)
                )
            except Exception as e:
                stats.failed += 1
                logger.warning(f"Failed to create work item {item.id} '{item.title}': {e}")
                continue

            target_id = int(created["id"])
            self.id_map.add(item.id, target_id)
            stats.created += 1
            logger.debug(f"Created work item {target_id} from {item.id} ({work_item_type})")
            stats.attachments += self.attachments.transfer(item, target_id)

    def clone(self) -> WorkItemCloneStats:
        """Clone all work items.

        Returns:
            WorkItemCloneStats for the step message

        Raises:
            CloneError: If there were work items and none could be created
        """
        stats = WorkItemCloneStats()
        items = self.fetch_source_items()
        stats.total = len(items)
        logger.info(f"Found {stats.total} work items in {self.source_project.name}")
        if self.progress is not None:
            self.progress.log("info", f"Found {stats.total} work items to clone")
        if not items:
            return stats

        type_mapping = self._target_type_mapping(items)
        self.create_items(items, type_mapping, stats)
        if stats.created == 0:
            msg = f"None of the {stats.total} work items could be created"
            raise CloneError(msg)

        stats.links = self.linker.link(items, self.id_map).links_added
        return stats
