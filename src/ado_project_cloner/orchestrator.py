"""Clone orchestrator: drives one project clone run from start to finish.

The CloneOrchestrator is the top-level driver. It:
1. Looks up the source project and creates the target project
2. Runs the enabled cloning steps in a fixed canonical order
3. Aggregates step outcomes into a CloneRunResult
4. Publishes progress to a ProgressSink

Run Flow
--------
Phase 1: Provisioning (run-fatal)
    - Get Source Project Details: by ID or name, with capabilities
    - Create Target Project: refuse an existing name, queue creation,
      wait for the settle delay, read the project back (one retry)

Phase 2: Cloning steps (step-level failures)
    Executed in this order; a disabled step is omitted, never reordered:

    settings -> classification nodes -> repositories -> work items
    -> build pipelines -> queries -> dashboards -> wiki -> teams
    -> team configuration

    Every step runs inside StepRunner.execute, so a failing step is
    recorded and the run moves on to the next one.

Phase 3: Aggregation
    - success is true iff every recorded step succeeded
    - otherwise the failed step names are listed in the run error

Error Tiers
-----------
- Run-fatal: source not found, target name taken, target creation failed.
  The run stops; the result carries a single error.
- Step-level: caught by the StepRunner, recorded on the step.
- Entity-level: caught inside the step (one work item, one query, ...),
  logged and skipped.
"""

from __future__ import annotations

import datetime as dt
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, TypeVar
from urllib.parse import quote

from . import utils
from .ado_client import AdoRestClient
from .bulk import clone_build_definitions, clone_dashboards, clone_repositories
from .classification import clone_classification_nodes
from .exceptions import CloneError, StepFailedError
from .models import CloneRunResult, CloneStepResult
from .progress import NullProgressSink, SafeProgressSink
from .project_setup import (
    SETTLE_DELAY_SECONDS,
    apply_project_settings,
    apply_team_configuration,
    create_target_project,
    get_source_project,
)
from .queries import clone_queries
from .step_runner import StepRunner
from .teams import clone_teams
from .wiki import clone_wikis
from .work_items import WorkItemCloner

if TYPE_CHECKING:
    from collections.abc import Callable

    from .models import CloneOptions, CloneRequest, ProjectInfo
    from .protocols import AdoClient, ProgressSink

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")

STEP_GET_SOURCE: Final[str] = "Get Source Project Details"
STEP_CREATE_TARGET: Final[str] = "Create Target Project"
STEP_SETTINGS: Final[str] = "Clone Project Settings & Service Visibility"
STEP_CLASSIFICATION: Final[str] = "Clone Work Item Structure"
STEP_REPOSITORIES: Final[str] = "Clone Git Repositories"
STEP_WORK_ITEMS: Final[str] = "Clone Work Items"
STEP_BUILD_PIPELINES: Final[str] = "Clone CI/CD Pipelines"
STEP_QUERIES: Final[str] = "Clone Work Item Queries"
STEP_DASHBOARDS: Final[str] = "Clone Project Dashboards"
STEP_WIKI: Final[str] = "Clone Wiki Pages"
STEP_TEAMS: Final[str] = "Clone Teams & Permissions"
STEP_TEAM_CONFIGURATION: Final[str] = "Apply Team Configuration"

# Canonical order of the toggled steps: (step name, CloneOptions attribute)
OPTIONAL_STEPS: Final[tuple[tuple[str, str], ...]] = (
    (STEP_SETTINGS, "clone_project_settings"),
    (STEP_CLASSIFICATION, "clone_classification_nodes"),
    (STEP_REPOSITORIES, "clone_repositories"),
    (STEP_WORK_ITEMS, "clone_work_items"),
    (STEP_BUILD_PIPELINES, "clone_build_pipelines"),
    (STEP_QUERIES, "clone_queries"),
    (STEP_DASHBOARDS, "clone_dashboards"),
    (STEP_WIKI, "clone_wiki"),
    (STEP_TEAMS, "clone_teams"),
)
ALWAYS_RUN_STEPS: Final[tuple[str, ...]] = (STEP_GET_SOURCE, STEP_CREATE_TARGET, STEP_TEAM_CONFIGURATION)


def calculate_total_steps(options: CloneOptions) -> int:
    """Number of steps a run with these options records when nothing is fatal."""
    return len(ALWAYS_RUN_STEPS) + sum(1 for _, toggle in OPTIONAL_STEPS if getattr(options, toggle))


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class CloneRunBuilder:
    """Accumulates step results during a run and produces the immutable CloneRunResult."""

    def __init__(self, total_steps: int, started_at: dt.datetime) -> None:
        self.total_steps = total_steps
        self.started_at = started_at
        self._steps: list[CloneStepResult] = []
        self.new_project_id = ""
        self.new_project_url = ""

    @property
    def steps(self) -> tuple[CloneStepResult, ...]:
        return tuple(self._steps)

    @property
    def completed_steps(self) -> int:
        return len(self._steps)

    @property
    def percentage(self) -> int:
        if self.total_steps <= 0:
            return 100
        return min(100, int(self.completed_steps * 100 / self.total_steps))

    def add_step(self, step: CloneStepResult) -> None:
        self._steps.append(step)

    def set_target(self, project_id: str, project_url: str) -> None:
        self.new_project_id = project_id
        self.new_project_url = project_url

    def build(self, source_name: str, target_name: str, finished_at: dt.datetime) -> CloneRunResult:
        failed = [step.name for step in self._steps if not step.success]
        if failed:
            names = ", ".join(failed)
            error: str | None = f"One or more steps failed: {names}"
            message = f"Project clone completed with errors. Failed steps: {names}"
        else:
            error = None
            message = f"Project '{source_name}' cloned successfully to '{target_name}'"
        return CloneRunResult(
            steps=self.steps,
            total_steps=self.total_steps,
            completed_steps=self.completed_steps,
            new_project_id=self.new_project_id,
            new_project_url=self.new_project_url,
            success=not failed,
            message=message,
            duration=finished_at - self.started_at,
            error=error,
        )

    def build_fatal(self, error: str, finished_at: dt.datetime) -> CloneRunResult:
        return CloneRunResult(
            steps=self.steps,
            total_steps=self.total_steps,
            completed_steps=self.completed_steps,
            new_project_id=self.new_project_id,
            new_project_url=self.new_project_url,
            success=False,
            message=f"Project clone failed: {error}",
            duration=finished_at - self.started_at,
            error=error,
        )


@dataclass
class _RunContext:
    """Everything one run learns along the way; never shared between runs."""

    request: CloneRequest
    source: ProjectInfo
    target: ProjectInfo
    classification_cloned: bool = False


class CloneOrchestrator:
    """Clones one project into a new sibling project on the same organization.

    Usage:
        client = AdoRestClient(organization_url, token)
        orchestrator = CloneOrchestrator(client, organization_url, LoggingProgressSink())
        result = orchestrator.run(CloneRequest("Source", "Target"))

    The orchestrator keeps no state between runs; everything a run produces
    is returned in its CloneRunResult.
    """

    def __init__(
        self,
        client: AdoClient,
        organization_url: str,
        progress: ProgressSink | None = None,
        *,
        client_factory: Callable[[str, str], AdoClient] = AdoRestClient,
        settle_delay: float = SETTLE_DELAY_SECONDS,
        retry_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], dt.datetime] = _utc_now,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            client: Remote client for the organization holding source and target
            organization_url: URL of that organization
            progress: Progress sink; delivery failures are swallowed
            client_factory: Builds a client for the validation calls
            settle_delay: Seconds to wait after queueing target creation
            retry_delay: Seconds before retrying a transient tree-node failure
            sleep: Sleep function (replaced in tests)
            clock: Time source (replaced in tests)
        """
        self.client = client
        self.organization_url = organization_url.rstrip("/")
        self.progress = SafeProgressSink(progress or NullProgressSink())
        self.client_factory = client_factory
        self.settle_delay = settle_delay
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._clock = clock
        self.runner = StepRunner(self.progress, clock=clock)

    # Validation calls

    def validate_target_reachable(self, endpoint: str, credential: str) -> bool:
        """Check that endpoint is this organization and that credential can list its projects."""
        if utils.normalize_organization_url(endpoint) != utils.normalize_organization_url(self.organization_url):
            logger.warning(f"Target organization {endpoint} differs from {self.organization_url}")
            return False
        try:
            self.client_factory(endpoint, credential).list_projects()
        except Exception as e:
            logger.warning(f"Target organization {endpoint} not reachable: {e}")
            return False
        return True

    def list_available_process_templates(self, endpoint: str, credential: str) -> list[str]:
        """Names of the process templates available at endpoint; empty on failure."""
        try:
            processes = self.client_factory(endpoint, credential).list_processes()
        except Exception as e:
            logger.warning(f"Could not list process templates at {endpoint}: {e}")
            return []
        return [str(process.get("name", "")) for process in processes if process.get("name")]

    # Run

    def project_url(self, project_name: str) -> str:
        return f"{self.organization_url}/{quote(project_name, safe='')}"

    def _record(self, builder: CloneRunBuilder, step: CloneStepResult) -> None:
        builder.add_step(step)
        self.progress.report_progress(builder.percentage, f"{step.name}: {step.message}")

    def _fatal_step(
        self,
        builder: CloneRunBuilder,
        name: str,
        action: Callable[[], T],
        describe: Callable[[T], str],
    ) -> T:
        """Run a run-fatal step: recorded like any other step, but its failure propagates."""
        produced: list[T] = []

        def step_action() -> str:
            produced.append(action())
            return describe(produced[0])

        try:
            step = self.runner.execute(name, step_action, fatal=True)
        except StepFailedError as e:
            self._record(builder, e.step)
            raise
        self._record(builder, step)
        return produced[0]

    def _step_actions(self, context: _RunContext) -> dict[str, Callable[[], str]]:
        client = self.client
        source = context.source
        target = context.target
        options = context.request.options
        progress = self.progress

        def clone_work_items() -> str:
            cloner = WorkItemCloner(
                client,
                source,
                target,
                self.organization_url,
                progress=progress,
                copy_classification_paths=context.classification_cloned,
            )
            return cloner.clone().summary()

        return {
            STEP_SETTINGS: lambda: apply_project_settings(client, source, target, progress),
            STEP_CLASSIFICATION: lambda: clone_classification_nodes(
                client, source, target, progress, retry_delay=self.retry_delay
            ),
            STEP_REPOSITORIES: lambda: clone_repositories(client, source, target, options, progress),
            STEP_WORK_ITEMS: clone_work_items,
            STEP_BUILD_PIPELINES: lambda: clone_build_definitions(client, source, target, progress),
            STEP_QUERIES: lambda: clone_queries(client, source, target, progress, retry_delay=self.retry_delay),
            STEP_DASHBOARDS: lambda: clone_dashboards(client, source, target, progress),
            STEP_WIKI: lambda: clone_wikis(client, source, target, progress, retry_delay=self.retry_delay),
            STEP_TEAMS: lambda: clone_teams(client, source, target, progress),
            STEP_TEAM_CONFIGURATION: lambda: apply_team_configuration(client, source, target, progress),
        }

    def run(self, request: CloneRequest) -> CloneRunResult:
        """Execute one clone run.

        Never raises: run-fatal failures are returned as an unsuccessful
        result with a single error.

        Args:
            request: What to clone and where

        Returns:
            CloneRunResult with one entry per executed step
        """
        options = request.options
        builder = CloneRunBuilder(calculate_total_steps(options), self._clock())
        logger.info(f"Starting clone of '{request.source_project_id}' to '{request.target_project_name}'")
        self.progress.log("info", "Starting project clone operation...")
        self.progress.report_progress(0, "Starting project clone operation...")

        try:
            source = self._fatal_step(
                builder,
                STEP_GET_SOURCE,
                lambda: get_source_project(self.client, request.source_project_id),
                lambda project: f"Found source project: {project.name}",
            )
            target = self._fatal_step(
                builder,
                STEP_CREATE_TARGET,
                lambda: create_target_project(
                    self.client,
                    source,
                    request.target_project_name,
                    request.target_project_description,
                    settle_delay=self.settle_delay,
                    sleep=self._sleep,
                ),
                lambda project: f"Created project with ID: {project.id}",
            )
            builder.set_target(target.id, self.project_url(target.name))

            context = _RunContext(request, source, target)
            actions = self._step_actions(context)
            for name, toggle in OPTIONAL_STEPS:
                if not getattr(options, toggle):
                    continue
                step = self.runner.execute(name, actions[name])
                if name == STEP_CLASSIFICATION:
                    context.classification_cloned = step.success
                self._record(builder, step)
            self._record(builder, self.runner.execute(STEP_TEAM_CONFIGURATION, actions[STEP_TEAM_CONFIGURATION]))
        except Exception as e:
            if not isinstance(e, CloneError):
                logger.exception("Unexpected error during clone run")
            result = builder.build_fatal(str(e) or type(e).__name__, self._clock())
            logger.error(result.message)
            self.progress.log("error", result.message)
            self.progress.complete(success=False, result=result, error=result.error)
            return result

        result = builder.build(source.name, target.name, self._clock())
        if result.success:
            logger.info(f"{result.message} in {result.duration}")
            self.progress.log("success", result.message)
        else:
            logger.warning(result.message)
            self.progress.log("warning", result.message)
        self.progress.complete(success=result.success, result=result, error=result.error)
        return result
