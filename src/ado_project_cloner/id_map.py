"""
Source-to-target identifier mapping, one map per entity kind per run.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Iterator
from typing import Generic, TypeVar

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Hashable)
T = TypeVar("T")


class IdentifierMap(Generic[S, T]):
    """Append-only mapping from source IDs to the IDs of the entities created for them.

    Entries are added right after a successful creation and never removed.
    Adding a second target for the same source ID is refused, since that
    would mean the entity was created twice in one run.
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._mapping: dict[S, T] = {}

    def add(self, source_id: S, target_id: T) -> None:
        existing = self._mapping.get(source_id)
        if existing is not None and existing != target_id:
            msg = f"{self.kind} {source_id} already mapped to {existing}, refusing {target_id}"
            raise ValueError(msg)
        self._mapping[source_id] = target_id
        logger.debug(f"Mapped {self.kind} {source_id} -> {target_id}")

    def get(self, source_id: S) -> T | None:
        return self._mapping.get(source_id)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)

    def __iter__(self) -> Iterator[S]:
        return iter(self._mapping)

    def items(self) -> list[tuple[S, T]]:
        return list(self._mapping.items())
