"""
Saved work item query cloning (query folders and WIQL queries).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from .exceptions import CloneError
from .hierarchy import HierarchyReplicator, count_leaves
from .models import TreeNode

if TYPE_CHECKING:
    from collections.abc import Callable

    from .models import ProjectInfo
    from .protocols import AdoClient, ProgressSink

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

# Root folders every project has; they cannot be created through the API
PRE_EXISTING_QUERY_ROOTS: Final[frozenset[str]] = frozenset({"Shared Queries", "My Queries"})


def build_query_tree(
    item: dict[str, Any],
    fetch_folder: Callable[[str], dict[str, Any]] | None = None,
    *,
    is_root: bool = False,
) -> TreeNode:
    """Convert a query hierarchy item into a TreeNode.

    Folders that report children the listing did not expand are fetched by
    path through fetch_folder when given.
    """
    is_folder = bool(item.get("isFolder"))
    children = item.get("children")
    if is_folder and children is None and item.get("hasChildren") and fetch_folder is not None:
        logger.debug(f"Fetching unexpanded query folder {item.get('path')}")
        children = fetch_folder(item.get("path") or item["name"]).get("children")

    return TreeNode(
        name=item["name"],
        is_container=is_folder,
        payload=item.get("wiql"),
        children=[build_query_tree(child, fetch_folder) for child in children or []],
        metadata={"path": item.get("path", ""), "is_public": item.get("isPublic"), "is_root": is_root},
    )


class QueryTreeTarget:
    """Creates query folders and queries in the target project."""

    def __init__(self, client: AdoClient, project: str) -> None:
        self.client = client
        self.project = project

    def is_pre_existing(self, node: TreeNode) -> bool:
        return bool(node.metadata.get("is_root")) and node.name in PRE_EXISTING_QUERY_ROOTS

    def create_container(self, parent_path: str, node: TreeNode) -> None:
        self.client.create_query(self.project, parent_path, {"name": node.name, "isFolder": True})

    def create_leaf(self, parent_path: str, node: TreeNode) -> None:
        payload: dict[str, Any] = {"name": node.name, "wiql": node.payload}
        if node.metadata.get("is_public") is not None:
            payload["isPublic"] = node.metadata["is_public"]
        self.client.create_query(self.project, parent_path, payload)


def clone_queries(
    client: AdoClient,
    source_project: ProjectInfo,
    target_project: ProjectInfo,
    progress: ProgressSink | None = None,
    *,
    retry_delay: float = 2.0,
) -> str:
    """Clone the query tree of the source project.

    Returns:
        Step summary message

    Raises:
        CloneError: If the source has queries and none could be created
    """
    roots = [
        build_query_tree(item, lambda path: client.get_query(source_project.name, path), is_root=True)
        for item in client.list_queries(source_project.name, depth=2)
    ]
    target = QueryTreeTarget(client, target_project.name)
    replicator = HierarchyReplicator(target, retry_delay=retry_delay)

    total = sum(count_leaves(root) for root in roots)
    created = 0
    for root in roots:
        # A pre-existing root keeps its own path on the target
        created += replicator.replicate(root, root.name if target.is_pre_existing(root) else "")

    logger.info(
        f"Cloned {created} of {total} queries, {replicator.containers_created} folders, "
        f"{replicator.existing} already present"
    )
    if progress is not None:
        progress.log("info", f"Cloned {created} queries in {replicator.containers_created} new folders")
    if total and not created and not replicator.existing:
        msg = f"None of the {total} queries could be created"
        raise CloneError(msg)
    message = f"Cloned {created} queries and {replicator.containers_created} folders"
    if replicator.existing:
        message += f" ({replicator.existing} already present)"
    return message
