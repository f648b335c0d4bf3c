"""
Integration tests against a real Azure DevOps organization.

Required environment:
    ADO_TEST_ORGANIZATION_URL: organization holding the test project
    ADO_TEST_SOURCE_PROJECT: name of a prepared project to clone
    ADO_PAT (or the default pass entry): token allowed to create and delete projects

The cloned project is deleted after the test.
"""

import os
import uuid
from collections.abc import Generator

import pytest

from ado_project_cloner.ado_client import AdoRestClient
from ado_project_cloner.models import CloneOptions, CloneRequest
from ado_project_cloner.orchestrator import STEP_WORK_ITEMS, CloneOrchestrator
from ado_project_cloner.settings import get_token


@pytest.fixture(scope="module")
def client() -> AdoRestClient:
    token = get_token()
    if not token:
        pytest.skip("No Azure DevOps token available")
    return AdoRestClient(os.environ["ADO_TEST_ORGANIZATION_URL"], token)


@pytest.fixture
def target_name(client: AdoRestClient) -> Generator[str]:
    name = f"clone-test-{uuid.uuid4().hex[:8]}"
    yield name
    try:
        project = client.get_project(name)
    except Exception:  # noqa: BLE001
        return
    client.delete_project(project["id"])


@pytest.mark.integration
class TestRealClone:
    def test_validation_calls(self, client: AdoRestClient) -> None:
        orchestrator = CloneOrchestrator(client, client.organization_url)
        token = client.session.auth[1]

        assert orchestrator.validate_target_reachable(client.organization_url, token) is True
        assert orchestrator.list_available_process_templates(client.organization_url, token)

    def test_clone_work_items_only(self, client: AdoRestClient, target_name: str) -> None:
        options = CloneOptions(
            clone_project_settings=False,
            clone_classification_nodes=False,
            clone_repositories=False,
            clone_build_pipelines=False,
            clone_queries=False,
            clone_dashboards=False,
            clone_wiki=False,
            clone_teams=False,
        )
        orchestrator = CloneOrchestrator(client, client.organization_url, settle_delay=10)

        result = orchestrator.run(CloneRequest(os.environ["ADO_TEST_SOURCE_PROJECT"], target_name, options=options))

        assert result.success, result.error
        assert result.total_steps == result.completed_steps == 4
        assert result.steps[2].name == STEP_WORK_ITEMS
        assert result.new_project_id
