"""
Tests for work item creation ordering and the identifier map.
"""

import logging

import pytest

from ado_project_cloner.id_map import IdentifierMap
from ado_project_cloner.models import HIERARCHY_REVERSE, WorkItemRecord, WorkItemRelation
from ado_project_cloner.sequencing import order_for_creation


def item(work_item_id: int, parent: int | None = None) -> WorkItemRecord:
    fields = {"System.Title": f"Item {work_item_id}"}
    if parent is not None:
        fields["System.Parent"] = parent
    return WorkItemRecord(id=work_item_id, work_item_type="Task", fields=fields)


def ids(items: list[WorkItemRecord]) -> list[int]:
    return [i.id for i in items]


@pytest.mark.unit
class TestOrderForCreation:
    def test_child_listed_before_parent_is_created_after_it(self) -> None:
        # B (child of A) comes back from the query before A
        ordered = order_for_creation([item(2, parent=1), item(1)])

        assert ids(ordered) == [1, 2]

    def test_roots_keep_input_order_and_come_first(self) -> None:
        ordered = order_for_creation([item(5, parent=3), item(3), item(4), item(6, parent=4)])

        assert ids(ordered) == [3, 4, 5, 6]

    def test_every_parent_precedes_its_child(self) -> None:
        items = [item(4, parent=3), item(3, parent=2), item(2, parent=1), item(1)]

        ordered = order_for_creation(items)
        positions = {i.id: index for index, i in enumerate(ordered)}

        for i in items:
            if i.parent_id is not None:
                assert positions[i.parent_id] < positions[i.id]

    def test_parent_outside_batch_does_not_hold_item_back(self) -> None:
        ordered = order_for_creation([item(7, parent=99), item(8, parent=7)])

        assert ids(ordered) == [7, 8]

    def test_parent_from_hierarchy_link(self) -> None:
        child = WorkItemRecord(
            id=2,
            work_item_type="Task",
            relations=[WorkItemRelation(HIERARCHY_REVERSE, "https://dev.azure.com/org/_apis/wit/workItems/1")],
        )

        assert ids(order_for_creation([child, item(1)])) == [1, 2]

    def test_cycle_is_appended_with_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            ordered = order_for_creation([item(1, parent=2), item(2, parent=1), item(3)])

        assert ids(ordered) == [3, 1, 2]
        assert "Parent cycle" in caplog.text

    def test_empty_input(self) -> None:
        assert order_for_creation([]) == []


@pytest.mark.unit
class TestIdentifierMap:
    def setup_method(self) -> None:
        self.id_map: IdentifierMap[int, int] = IdentifierMap("work item")

    def test_add_and_get(self) -> None:
        self.id_map.add(1, 101)

        assert self.id_map.get(1) == 101
        assert 1 in self.id_map
        assert len(self.id_map) == 1
        assert self.id_map.items() == [(1, 101)]

    def test_unmapped_id_returns_none(self) -> None:
        assert self.id_map.get(42) is None
        assert 42 not in self.id_map

    def test_same_mapping_twice_is_accepted(self) -> None:
        self.id_map.add(1, 101)
        self.id_map.add(1, 101)

        assert list(self.id_map) == [1]

    def test_conflicting_mapping_is_refused(self) -> None:
        self.id_map.add(1, 101)

        with pytest.raises(ValueError, match="already mapped"):
            self.id_map.add(1, 102)
        assert self.id_map.get(1) == 101
