"""Attachment transfer between the source and target work items."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .models import ATTACHED_FILE

if TYPE_CHECKING:
    from .models import WorkItemRecord, WorkItemRelation
    from .protocols import AdoClient

logger: logging.Logger = logging.getLogger(__name__)


class AttachmentTransfer:
    """Downloads source attachments, uploads them to the target project and attaches them."""

    _client: AdoClient
    _target_project: str
    _uploaded_cache: dict[str, str]

    def __init__(self, client: AdoClient, target_project: str) -> None:
        self._client = client
        self._target_project = target_project
        self._uploaded_cache = {}

    def _upload(self, relation: WorkItemRelation) -> str:
        """Upload one attachment, returning the target attachment URL (cached per source URL)."""
        cached = self._uploaded_cache.get(relation.url)
        if cached:
            logger.debug(f"Reusing uploaded attachment {relation.attachment_name}: {cached}")
            return cached

        content = self._client.get_attachment(relation.url)
        reference = self._client.create_attachment(self._target_project, relation.attachment_name, content)
        url = reference["url"]
        self._uploaded_cache[relation.url] = url
        logger.debug(f"Uploaded attachment {relation.attachment_name} ({len(content)} bytes)")
        return url

    def transfer(self, item: WorkItemRecord, target_id: int) -> int:
        """Copy every attached file of item onto the target work item.

        Args:
            item: Source work item
            target_id: ID of the work item created for it on the target

        Returns:
            Number of attachments attached to the target item
        """
        operations: list[dict[str, Any]] = []
        for relation in item.relations:
            if relation.rel != ATTACHED_FILE:
                continue
            try:
                url = self._upload(relation)
            except Exception as e:
                logger.warning(f"Failed to transfer attachment {relation.attachment_name} of work item {item.id}: {e}")
                continue

            value: dict[str, Any] = {"rel": ATTACHED_FILE, "url": url}
            comment = relation.attributes.get("comment")
            if comment:
                value["attributes"] = {"comment": comment}
            operations.append({"op": "add", "path": "/relations/-", "value": value})

        if not operations:
            return 0

        try:
            self._client.update_work_item(target_id, operations)
        except Exception as e:
            logger.warning(f"Failed to attach {len(operations)} file(s) to work item {target_id}: {e}")
            return 0
        return len(operations)
