"""
Area and iteration (classification node) cloning.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from .exceptions import CloneError
from .hierarchy import HierarchyReplicator
from .models import TreeNode

if TYPE_CHECKING:
    from .models import ProjectInfo
    from .protocols import AdoClient, ProgressSink

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

STRUCTURE_GROUPS: Final[tuple[str, ...]] = ("Areas", "Iterations")
_COPIED_ATTRIBUTES: Final[tuple[str, ...]] = ("startDate", "finishDate")


def build_classification_tree(node: dict[str, Any], *, is_root: bool = True) -> TreeNode:
    """Convert a classification node listing into a TreeNode."""
    attributes = node.get("attributes") or {}
    children = node.get("children") or []
    return TreeNode(
        name=node["name"],
        is_container=bool(children),
        payload={key: attributes[key] for key in _COPIED_ATTRIBUTES if attributes.get(key)},
        children=[build_classification_tree(child, is_root=False) for child in children],
        metadata={"is_root": is_root},
    )


def count_nodes(node: TreeNode) -> int:
    """Number of nodes below node, node itself excluded."""
    return sum(1 + count_nodes(child) for child in node.children)


class ClassificationTreeTarget:
    """Creates area or iteration nodes in the target project. The project-named root exists already."""

    def __init__(self, client: AdoClient, project: str, structure_group: str) -> None:
        self.client = client
        self.project = project
        self.structure_group = structure_group

    def is_pre_existing(self, node: TreeNode) -> bool:
        return bool(node.metadata.get("is_root"))

    def create_container(self, parent_path: str, node: TreeNode) -> None:
        self.client.create_classification_node(
            self.project, self.structure_group, parent_path, node.name, node.payload or None
        )

    def create_leaf(self, parent_path: str, node: TreeNode) -> None:
        self.create_container(parent_path, node)


def clone_classification_nodes(
    client: AdoClient,
    source_project: ProjectInfo,
    target_project: ProjectInfo,
    progress: ProgressSink | None = None,
    *,
    retry_delay: float = 2.0,
) -> str:
    """Clone the area and iteration trees of the source project.

    Returns:
        Step summary message

    Raises:
        CloneError: If the source has nodes and none could be created
    """
    total = 0
    existing = 0
    counts: dict[str, int] = {}
    for group in STRUCTURE_GROUPS:
        tree = build_classification_tree(client.get_classification_nodes(source_project.name, group, depth=10))
        replicator = HierarchyReplicator(
            ClassificationTreeTarget(client, target_project.name, group), retry_delay=retry_delay
        )
        leaves = replicator.replicate(tree, "")
        counts[group] = leaves + replicator.containers_created
        existing += replicator.existing
        total += count_nodes(tree)
        logger.info(f"Cloned {counts[group]} {group.lower()} node(s), {replicator.existing} already present")

    created = sum(counts.values())
    if progress is not None:
        progress.log("info", f"Cloned {created} classification node(s)")
    if total and not created and not existing:
        msg = f"None of the {total} classification nodes could be created"
        raise CloneError(msg)
    message = f"Cloned {counts['Areas']} area and {counts['Iterations']} iteration nodes"
    if existing:
        message += f" ({existing} already present)"
    return message
