"""Work item relationship rewriting and linking (second pass of work item cloning)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .models import (
    DEPENDENCY_FORWARD,
    DEPENDENCY_REVERSE,
    HIERARCHY_FORWARD,
    HIERARCHY_REVERSE,
    LINKABLE_RELATIONS,
    WorkItemRelation,
    extract_work_item_id,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .id_map import IdentifierMap
    from .models import WorkItemRecord
    from .protocols import AdoClient, ProgressSink

logger: logging.Logger = logging.getLogger(__name__)


def rewrite_work_item_url(url: str, target_id: int) -> str:
    """Point a work item relation URL at another work item ID."""
    path = url.split("?", 1)[0].rstrip("/")
    return f"{path.rsplit('/', 1)[0]}/{target_id}"


@dataclass
class LinkStats:
    """Counts from one linking pass."""

    links_added: int = 0
    links_skipped: int = 0
    items_updated: int = 0
    items_failed: int = 0


def _link_key(rel: str, source_id: int, related_id: int) -> tuple[Any, ...]:
    """Direction-independent key, so A->child->B and B->parent->A count as one link."""
    if rel == HIERARCHY_FORWARD:
        return ("hierarchy", source_id, related_id)
    if rel == HIERARCHY_REVERSE:
        return ("hierarchy", related_id, source_id)
    if rel == DEPENDENCY_FORWARD:
        return ("dependency", source_id, related_id)
    if rel == DEPENDENCY_REVERSE:
        return ("dependency", related_id, source_id)
    return (rel, min(source_id, related_id), max(source_id, related_id))


class RelationshipLinker:
    """Recreates work item links between target items once every item of the run exists."""

    def __init__(self, client: AdoClient, organization_url: str, progress: ProgressSink | None = None) -> None:
        self.client = client
        self.organization_url = organization_url.rstrip("/")
        self.progress = progress

    def _relations_of(self, item: WorkItemRecord) -> list[WorkItemRelation]:
        relations = [relation for relation in item.relations if relation.rel in LINKABLE_RELATIONS]
        parent_id = item.parent_id
        if parent_id is not None and not any(relation.rel == HIERARCHY_REVERSE for relation in relations):
            # Parent known only from System.Parent
            relations.append(
                WorkItemRelation(
                    rel=HIERARCHY_REVERSE,
                    url=f"{self.organization_url}/_apis/wit/workItems/{parent_id}",
                )
            )
        return relations

    def link(self, items: Sequence[WorkItemRecord], id_map: IdentifierMap[int, int]) -> LinkStats:
        """Apply every relationship whose both endpoints were created in this run.

        Relations referencing an item missing from id_map, or whose reference
        cannot be parsed, are skipped. All additions for one item go out in a
        single update call; a failed update is logged and the pass continues.

        Args:
            items: Source work items
            id_map: Source ID -> target ID map filled by the creation pass

        Returns:
            LinkStats with added and skipped link counts
        """
        stats = LinkStats()
        seen: set[tuple[Any, ...]] = set()

        for item in items:
            target_id = id_map.get(item.id)
            if target_id is None or not (item.relations or item.parent_id is not None):
                continue

            operations: list[dict[str, Any]] = []
            keys: list[tuple[Any, ...]] = []
            for relation in self._relations_of(item):
                related_source_id = extract_work_item_id(relation.url)
                if related_source_id is None:
                    logger.debug(f"Skipping unparseable {relation.rel} reference on {item.id}: {relation.url}")
                    stats.links_skipped += 1
                    continue
                related_target_id = id_map.get(related_source_id)
                if related_target_id is None:
                    logger.debug(f"Skipping {relation.rel} from {item.id} to {related_source_id}: not cloned")
                    stats.links_skipped += 1
                    continue

                key = _link_key(relation.rel, item.id, related_source_id)
                if key in seen:
                    continue
                seen.add(key)
                keys.append(key)

                value: dict[str, Any] = {
                    "rel": relation.rel,
                    "url": rewrite_work_item_url(relation.url, related_target_id),
                }
                comment = relation.attributes.get("comment")
                if comment:
                    value["attributes"] = {"comment": comment}
                operations.append({"op": "add", "path": "/relations/-", "value": value})

            if not operations:
                continue

            try:
                self.client.update_work_item(target_id, operations)
            except Exception as e:
                logger.warning(f"Failed to link work item {item.id} (target {target_id}): {e}")
                stats.items_failed += 1
                # The other endpoint may still carry the same links in reverse
                seen.difference_update(keys)
                continue

            stats.items_updated += 1
            stats.links_added += len(operations)
            logger.debug(f"Linked work item {target_id} with {len(operations)} relation(s)")

        logger.info(f"Relationship pass: {stats.links_added} link(s) added, {stats.links_skipped} skipped")
        if self.progress is not None:
            self.progress.log("info", f"Created {stats.links_added} work item relationship(s)")
        return stats
