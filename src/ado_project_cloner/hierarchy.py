"""Generic tree replication shared by query trees, wiki page trees and classification nodes."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Protocol

from .exceptions import is_already_exists, is_transient

if TYPE_CHECKING:
    from collections.abc import Callable

    from .models import TreeNode

logger: logging.Logger = logging.getLogger(__name__)


def join_path(parent_path: str, name: str) -> str:
    """Join a tree path and a child name with '/'."""
    parent = parent_path.rstrip("/")
    return f"{parent}/{name}" if parent else name


def count_leaves(node: TreeNode) -> int:
    if not node.is_container:
        return 1
    return sum(count_leaves(child) for child in node.children)


class TreeTarget(Protocol):
    """The target side of one tree kind: what already exists and how to create a node."""

    def is_pre_existing(self, node: TreeNode) -> bool:
        """Whether node is a platform-provisioned container that must not be created."""
        ...

    def create_container(self, parent_path: str, node: TreeNode) -> None:
        """Create a container node (query folder, parent page, area) under parent_path."""
        ...

    def create_leaf(self, parent_path: str, node: TreeNode) -> None:
        """Create a payload node (query, page, iteration) under parent_path."""
        ...


class HierarchyReplicator:
    """Recursively copies a source tree onto a TreeTarget.

    - Pre-existing containers are never created; their children go under the same target path.
    - Other containers are created; an "already exists" answer counts as success.
    - Leaves are created with their payload; "already exists" counts as success, a
      transient failure is retried once, anything else is skipped.

    Nodes found already present are counted in `existing`, never as created.
    """

    def __init__(
        self,
        target: TreeTarget,
        *,
        retry_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.target = target
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.containers_created = 0
        self.existing = 0
        self.leaves_skipped = 0

    def replicate(self, source_root: TreeNode, target_parent_path: str) -> int:
        """Replicate source_root and its descendants under target_parent_path.

        Args:
            source_root: Root of the source tree (or subtree)
            target_parent_path: Target path the root belongs under

        Returns:
            Number of leaves newly created
        """
        if self.target.is_pre_existing(source_root):
            logger.debug(f"'{source_root.name}' is pre-existing, descending into it")
            return sum(self.replicate(child, target_parent_path) for child in source_root.children)

        if source_root.is_container:
            if not self._create_container(target_parent_path, source_root):
                return 0
            child_path = join_path(target_parent_path, source_root.name)
            return sum(self.replicate(child, child_path) for child in source_root.children)

        return 1 if self._create_leaf(target_parent_path, source_root) else 0

    def _create_container(self, parent_path: str, node: TreeNode) -> bool:
        try:
            self.target.create_container(parent_path, node)
        except Exception as e:
            if is_already_exists(e):
                logger.debug(f"Container '{join_path(parent_path, node.name)}' already exists")
                self.existing += 1
                return True
            logger.warning(f"Failed to create '{join_path(parent_path, node.name)}', skipping its subtree: {e}")
            return False
        self.containers_created += 1
        logger.debug(f"Created container '{join_path(parent_path, node.name)}'")
        return True

    def _create_leaf(self, parent_path: str, node: TreeNode) -> bool:
        """Create one leaf; True only when it was newly created."""
        path = join_path(parent_path, node.name)
        try:
            self.target.create_leaf(parent_path, node)
        except Exception as e:
            if is_already_exists(e):
                logger.debug(f"'{path}' already exists")
                self.existing += 1
                return False
            if not is_transient(e):
                logger.warning(f"Failed to create '{path}': {e}")
                self.leaves_skipped += 1
                return False
            logger.info(f"Retrying '{path}' after transient failure: {e}")
        else:
            return True

        self._sleep(self.retry_delay)
        try:
            self.target.create_leaf(parent_path, node)
        except Exception as e:
            # The first attempt may have landed before its response was lost
            if is_already_exists(e):
                logger.debug(f"'{path}' already exists after retry")
                self.existing += 1
                return False
            logger.warning(f"Failed to create '{path}' after retry: {e}")
            self.leaves_skipped += 1
            return False
        return True
