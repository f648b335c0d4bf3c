"""
Creation ordering for work items, so that parents are created before their children.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import WorkItemRecord

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)


def order_for_creation(items: Sequence[WorkItemRecord]) -> list[WorkItemRecord]:
    """Order work items for creation.

    Items without a parent reference come first, in input order. Items with a
    parent reference follow. Within that second group input order is kept,
    except that an item whose parent is also in the batch is held back until
    the parent has been placed. Items caught in a parent cycle are appended
    in input order after a warning.

    Args:
        items: Source work items in query order

    Returns:
        The same items in creation order
    """
    roots = [item for item in items if item.parent_id is None]
    pending = [item for item in items if item.parent_id is not None]
    batch_ids = {item.id for item in items}

    ordered = list(roots)
    placed = {item.id for item in roots}
    while pending:
        deferred: list[WorkItemRecord] = []
        for item in pending:
            parent_id = item.parent_id
            if parent_id not in batch_ids or parent_id in placed:
                ordered.append(item)
                placed.add(item.id)
            else:
                deferred.append(item)
        if len(deferred) == len(pending):
            cycle_ids = ", ".join(str(item.id) for item in deferred)
            logger.warning(f"Parent cycle among work items {cycle_ids}; creating them in query order")
            ordered.extend(deferred)
            break
        pending = deferred

    return ordered
