"""
Tests for attachment transfer between work items.
"""

from unittest.mock import Mock

import pytest

from ado_project_cloner.attachments import AttachmentTransfer
from ado_project_cloner.models import ATTACHED_FILE, RELATED, WorkItemRecord, WorkItemRelation

ATTACHMENT_URL = "https://dev.azure.com/contoso/_apis/wit/attachments/1111?fileName=design.pdf"
OTHER_URL = "https://dev.azure.com/contoso/_apis/wit/attachments/2222?fileName=log.txt"


@pytest.mark.unit
class TestAttachmentTransfer:
    def setup_method(self) -> None:
        self.client = Mock()
        self.client.get_attachment.return_value = b"%PDF"
        self.client.create_attachment.side_effect = lambda project, name, content: {
            "url": f"https://dev.azure.com/contoso/_apis/wit/attachments/new-{name}"
        }
        self.transfer = AttachmentTransfer(self.client, "Target")

    def test_attaches_uploaded_file_with_comment(self) -> None:
        item = WorkItemRecord(
            id=1,
            work_item_type="Bug",
            relations=[WorkItemRelation(ATTACHED_FILE, ATTACHMENT_URL, {"comment": "screenshot"})],
        )

        assert self.transfer.transfer(item, 101) == 1

        self.client.create_attachment.assert_called_once_with("Target", "design.pdf", b"%PDF")
        target_id, operations = self.client.update_work_item.call_args.args
        assert target_id == 101
        assert operations[0]["value"] == {
            "rel": ATTACHED_FILE,
            "url": "https://dev.azure.com/contoso/_apis/wit/attachments/new-design.pdf",
            "attributes": {"comment": "screenshot"},
        }

    def test_attachment_name_from_attributes(self) -> None:
        item = WorkItemRecord(
            id=1, work_item_type="Bug", relations=[WorkItemRelation(ATTACHED_FILE, OTHER_URL, {"name": "trace.txt"})]
        )

        self.transfer.transfer(item, 101)

        assert self.client.create_attachment.call_args.args[1] == "trace.txt"

    def test_same_source_attachment_uploaded_once(self) -> None:
        first = WorkItemRecord(id=1, work_item_type="Bug", relations=[WorkItemRelation(ATTACHED_FILE, ATTACHMENT_URL)])
        second = WorkItemRecord(id=2, work_item_type="Bug", relations=[WorkItemRelation(ATTACHED_FILE, ATTACHMENT_URL)])

        self.transfer.transfer(first, 101)
        self.transfer.transfer(second, 102)

        assert self.client.get_attachment.call_count == 1
        assert self.client.create_attachment.call_count == 1
        assert self.client.update_work_item.call_count == 2

    def test_failed_download_is_skipped(self) -> None:
        self.client.get_attachment.side_effect = [ConnectionError("reset"), b"log"]
        item = WorkItemRecord(
            id=1,
            work_item_type="Bug",
            relations=[WorkItemRelation(ATTACHED_FILE, ATTACHMENT_URL), WorkItemRelation(ATTACHED_FILE, OTHER_URL)],
        )

        assert self.transfer.transfer(item, 101) == 1
        operations = self.client.update_work_item.call_args.args[1]
        assert [op["value"]["url"] for op in operations] == [
            "https://dev.azure.com/contoso/_apis/wit/attachments/new-log.txt"
        ]

    def test_failed_update_reports_zero(self) -> None:
        self.client.update_work_item.side_effect = ConnectionError("reset")
        item = WorkItemRecord(id=1, work_item_type="Bug", relations=[WorkItemRelation(ATTACHED_FILE, ATTACHMENT_URL)])

        assert self.transfer.transfer(item, 101) == 0

    def test_item_without_attachments_makes_no_calls(self) -> None:
        item = WorkItemRecord(
            id=1, work_item_type="Bug", relations=[WorkItemRelation(RELATED, "https://x/_apis/wit/workItems/2")]
        )

        assert self.transfer.transfer(item, 101) == 0
        self.client.update_work_item.assert_not_called()
