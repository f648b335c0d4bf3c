"""
Tests for area and iteration cloning.
"""

import pytest
from fakes import FakeAdoClient

from ado_project_cloner.classification import build_classification_tree, clone_classification_nodes, count_nodes
from ado_project_cloner.exceptions import AdoApiError, CloneError
from ado_project_cloner.models import ProjectInfo

SOURCE = ProjectInfo(id="source-id", name="Source")
TARGET = ProjectInfo(id="target-id", name="Target")

ITERATIONS = {
    "name": "Source",
    "children": [
        {
            "name": "Release 1",
            "children": [
                {
                    "name": "Sprint 1",
                    "attributes": {"startDate": "2024-01-01T00:00:00Z", "finishDate": "2024-01-14T00:00:00Z"},
                },
            ],
        },
    ],
}


@pytest.mark.unit
class TestBuildClassificationTree:
    def test_dates_are_kept_and_root_marked(self) -> None:
        tree = build_classification_tree(ITERATIONS)

        assert tree.metadata["is_root"] is True
        sprint = tree.children[0].children[0]
        assert sprint.payload == {"startDate": "2024-01-01T00:00:00Z", "finishDate": "2024-01-14T00:00:00Z"}
        assert sprint.metadata["is_root"] is False
        assert count_nodes(tree) == 2


@pytest.mark.unit
class TestCloneClassificationNodes:
    def setup_method(self) -> None:
        self.client = FakeAdoClient()
        self.client.classification_trees[("Source", "Areas")] = {
            "name": "Source",
            "children": [{"name": "Web"}, {"name": "Mobile"}],
        }
        self.client.classification_trees[("Source", "Iterations")] = ITERATIONS

    def test_nodes_created_under_target_root(self) -> None:
        message = clone_classification_nodes(self.client, SOURCE, TARGET, retry_delay=0)

        assert [(group, parent, name) for _, group, parent, name, _ in self.client.created_classification_nodes] == [
            ("Areas", "", "Web"),
            ("Areas", "", "Mobile"),
            ("Iterations", "", "Release 1"),
            ("Iterations", "Release 1", "Sprint 1"),
        ]
        assert self.client.created_classification_nodes[-1][4] == {
            "startDate": "2024-01-01T00:00:00Z",
            "finishDate": "2024-01-14T00:00:00Z",
        }
        assert message == "Cloned 2 area and 2 iteration nodes"

    def test_existing_node_counts_as_success(self) -> None:
        self.client.fail_next(
            "create_classification_node", AdoApiError("TF237018: node already exists", status_code=400)
        )

        message = clone_classification_nodes(self.client, SOURCE, TARGET, retry_delay=0)

        assert message == "Cloned 1 area and 2 iteration nodes (1 already present)"

    def test_rerun_over_existing_nodes_succeeds(self) -> None:
        self.client.classification_trees[("Source", "Iterations")] = {"name": "Source"}
        self.client.fail_next(
            "create_classification_node",
            AdoApiError("TF237018: node already exists", status_code=400),
            AdoApiError("TF237018: node already exists", status_code=400),
        )

        message = clone_classification_nodes(self.client, SOURCE, TARGET, retry_delay=0)

        assert message == "Cloned 0 area and 0 iteration nodes (2 already present)"

    def test_nothing_created_raises(self) -> None:
        self.client.classification_trees[("Source", "Iterations")] = {"name": "Source"}
        self.client.fail_next(
            "create_classification_node",
            AdoApiError("Invalid name", status_code=400),
            AdoApiError("Invalid name", status_code=400),
        )

        with pytest.raises(CloneError, match="None of the 2 classification nodes"):
            clone_classification_nodes(self.client, SOURCE, TARGET, retry_delay=0)
