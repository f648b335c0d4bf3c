"""
Work item type reconciliation between processes (Agile, Scrum, Basic, CMMI).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

# Interchangeable types, first candidate present on the target wins
TYPE_FALLBACKS: Final[dict[str, tuple[str, ...]]] = {
    "user story": ("Story", "Feature", "Product Backlog Item", "Task"),
    "story": ("User Story", "Feature", "Product Backlog Item", "Task"),
    "product backlog item": ("User Story", "Story", "Feature", "Task"),
    "feature": ("Epic", "User Story", "Story", "Product Backlog Item"),
    "epic": ("Feature", "User Story", "Story"),
    "task": ("User Story", "Story", "Product Backlog Item"),
    "bug": ("Issue", "Task", "User Story"),
    "issue": ("Bug", "Task", "User Story"),
}

_LAST_RESORT_TYPE: Final[str] = "Task"


def map_work_item_type(source_type: str, target_types: Sequence[str]) -> str:
    """Pick the target type for one source type (case-insensitive)."""
    by_lower = {name.lower(): name for name in target_types}
    exact = by_lower.get(source_type.lower())
    if exact:
        return exact
    for candidate in TYPE_FALLBACKS.get(source_type.lower(), ()):
        match = by_lower.get(candidate.lower())
        if match:
            return match
    return target_types[0] if target_types else _LAST_RESORT_TYPE


def build_type_mapping(source_types: Iterable[str], target_types: Sequence[str]) -> dict[str, str]:
    """Compute the source type -> target type mapping used when creating work items."""
    mapping: dict[str, str] = {}
    for source_type in source_types:
        if source_type in mapping:
            continue
        mapping[source_type] = map_work_item_type(source_type, target_types)
        if mapping[source_type] != source_type:
            logger.info(f"Work item type '{source_type}' will be created as '{mapping[source_type]}'")
    return mapping
