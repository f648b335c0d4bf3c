"""
Project wiki cloning (page tree with markdown content).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from .exceptions import CloneError
from .hierarchy import HierarchyReplicator, join_path
from .models import TreeNode

if TYPE_CHECKING:
    from collections.abc import Callable

    from .models import ProjectInfo
    from .protocols import AdoClient, ProgressSink

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

PROJECT_WIKI: Final[str] = "projectWiki"
ROOT_PAGE_PATH: Final[str] = "/"


def _page_name(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1] or ROOT_PAGE_PATH


def build_wiki_tree(page: dict[str, Any], fetch_content: Callable[[str], str]) -> TreeNode:
    """Convert a page listing (with sub pages) into a TreeNode, fetching each page's content.

    A page with sub pages is a container that also carries content.
    """
    path = page.get("path") or ROOT_PAGE_PATH
    sub_pages = page.get("subPages") or []
    content = "" if path == ROOT_PAGE_PATH else fetch_content(path)
    return TreeNode(
        name=_page_name(path),
        is_container=bool(sub_pages) or path == ROOT_PAGE_PATH,
        payload=content,
        children=[build_wiki_tree(sub_page, fetch_content) for sub_page in sub_pages],
        metadata={"path": path},
    )


def count_pages(node: TreeNode) -> int:
    """Number of pages below node, node itself excluded."""
    return sum(1 + count_pages(child) for child in node.children)


class WikiTreeTarget:
    """Writes wiki pages into one target wiki."""

    def __init__(self, client: AdoClient, project: str, wiki_id: str) -> None:
        self.client = client
        self.project = project
        self.wiki_id = wiki_id

    def is_pre_existing(self, node: TreeNode) -> bool:
        return node.metadata.get("path") == ROOT_PAGE_PATH

    def _write(self, parent_path: str, node: TreeNode) -> None:
        path = f"/{join_path(parent_path, node.name).lstrip('/')}"
        self.client.create_or_update_wiki_page(self.project, self.wiki_id, path, node.payload or "")

    def create_container(self, parent_path: str, node: TreeNode) -> None:
        self._write(parent_path, node)

    def create_leaf(self, parent_path: str, node: TreeNode) -> None:
        self._write(parent_path, node)


def ensure_target_wiki(client: AdoClient, target_project: ProjectInfo) -> str:
    """Return the ID of the target project wiki, creating it if missing."""
    for wiki in client.list_wikis(target_project.name):
        if wiki.get("type") == PROJECT_WIKI:
            return str(wiki["id"])
    created = client.create_wiki(
        target_project.name,
        {"name": f"{target_project.name}.wiki", "projectId": target_project.id, "type": PROJECT_WIKI},
    )
    logger.info(f"Created project wiki for {target_project.name}")
    return str(created["id"])


def clone_wikis(
    client: AdoClient,
    source_project: ProjectInfo,
    target_project: ProjectInfo,
    progress: ProgressSink | None = None,
    *,
    retry_delay: float = 2.0,
) -> str:
    """Clone the project wiki pages of the source project.

    Code wikis are skipped; they are backed by a repository branch.

    Returns:
        Step summary message

    Raises:
        CloneError: If the source wiki has pages and none could be written
    """
    source_wikis = [wiki for wiki in client.list_wikis(source_project.name) if wiki.get("type") == PROJECT_WIKI]
    if not source_wikis:
        return "No project wiki to clone"

    total = 0
    written = 0
    existing = 0
    for wiki in source_wikis:
        wiki_id = str(wiki["id"])
        root_page = client.get_wiki_page(source_project.name, wiki_id, ROOT_PAGE_PATH, recursion_level="full")

        def fetch_content(path: str, wiki_id: str = wiki_id) -> str:
            page = client.get_wiki_page(source_project.name, wiki_id, path, include_content=True)
            return page.get("content") or ""

        tree = build_wiki_tree(root_page, fetch_content)
        target = WikiTreeTarget(client, target_project.name, ensure_target_wiki(client, target_project))
        replicator = HierarchyReplicator(target, retry_delay=retry_delay)
        leaves = replicator.replicate(tree, "")

        pages = leaves + replicator.containers_created
        total += count_pages(tree)
        written += pages
        existing += replicator.existing
        logger.info(f"Wiki '{wiki.get('name')}': {pages} page(s) written")

    if progress is not None:
        progress.log("info", f"Cloned {written} wiki page(s)")
    if total and not written and not existing:
        msg = f"None of the {total} wiki pages could be written"
        raise CloneError(msg)
    return f"Cloned {written} wiki pages"
