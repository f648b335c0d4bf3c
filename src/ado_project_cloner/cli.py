"""
Command-line interface for the Azure DevOps project cloning tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING

from .ado_client import get_client
from .models import CloneOptions, CloneRequest
from .orchestrator import CloneOrchestrator
from .progress import LoggingProgressSink
from .settings import SettingsProvider
from .utils import setup_logging

if TYPE_CHECKING:
    from .models import CloneRunResult

# (flag suffix, CloneOptions attribute, help text)
_TOGGLES: tuple[tuple[str, str, str], ...] = (
    ("settings", "clone_project_settings", "project settings and service visibility"),
    ("classification-nodes", "clone_classification_nodes", "area and iteration paths"),
    ("repositories", "clone_repositories", "Git repositories (created empty)"),
    ("work-items", "clone_work_items", "work items, links and attachments"),
    ("build-pipelines", "clone_build_pipelines", "build definitions"),
    ("queries", "clone_queries", "saved work item queries"),
    ("dashboards", "clone_dashboards", "project dashboards"),
    ("wiki", "clone_wiki", "project wiki pages"),
    ("teams", "clone_teams", "teams and security group memberships"),
)


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Clone an Azure DevOps project into a new project")

    # Positional arguments
    _ = parser.add_argument("source_project", help="Source project name or ID")
    _ = parser.add_argument("target_project_name", help="Name of the project to create")

    _ = parser.add_argument("--description", help="Target project description (default: names the source)")
    _ = parser.add_argument(
        "--organization-url", help="Organization URL, e.g. https://dev.azure.com/myorg (default: $ADO_ORGANIZATION_URL)"
    )
    _ = parser.add_argument(
        "--pat-pass-path", help="Path for the personal access token in pass utility (default: azure-devops/cli/token)"
    )
    _ = parser.add_argument(
        "--exclude-repo",
        action="append",
        default=[],
        metavar="NAME",
        help="Repository to skip (case-insensitive). Can be specified multiple times.",
    )
    for suffix, attribute, description in _TOGGLES:
        _ = parser.add_argument(
            f"--no-{suffix}", dest=attribute, action="store_false", help=f"Do not clone {description}"
        )

    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def build_request(args: argparse.Namespace) -> CloneRequest:
    options = CloneOptions(
        **{attribute: getattr(args, attribute) for _, attribute, _ in _TOGGLES},
        excluded_repositories=tuple(args.exclude_repo or ()),
    )
    return CloneRequest(
        source_project_id=args.source_project,
        target_project_name=args.target_project_name,
        target_project_description=args.description,
        options=options,
    )


def print_report(result: CloneRunResult) -> None:
    """Print the run report to stdout."""
    print("\n" + "=" * 60)
    print("CLONE REPORT")
    print("=" * 60)
    for step in result.steps:
        status = "OK  " if step.success else "FAIL"
        print(f"[{status}] {step.name} ({step.duration.total_seconds():.1f}s): {step.message}")
    print("-" * 60)
    print(f"Steps: {result.completed_steps}/{result.total_steps}")
    if result.new_project_url:
        print(f"Project: {result.new_project_url}")
    if result.success:
        print("Overall: PASSED")
    elif result.new_project_id:
        print(f"Overall: COMPLETED WITH ERRORS ({result.error})")
    else:
        print(f"Overall: FAILED ({result.error})")
    print(result.message)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    # Setup logging
    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)

    try:
        settings = SettingsProvider(args.organization_url, args.pat_pass_path).get_settings()
        orchestrator = CloneOrchestrator(get_client(settings), settings.organization_url, LoggingProgressSink())
        result = orchestrator.run(build_request(args))
    except Exception:
        logger = logging.getLogger(__name__)
        logger.exception("Clone failed")
        sys.exit(1)

    print_report(result)
    sys.exit(0 if result.success else 1)
