"""
Azure DevOps Project Cloner

Clones an Azure DevOps project into a new project on the same organization:
work items with links and attachments, repositories, build pipelines,
queries, dashboards, wiki pages, area/iteration paths, teams and security
group memberships.
"""

from __future__ import annotations

from .cli import main
from .exceptions import (
    AdoApiError,
    CloneError,
    ProjectProvisioningError,
    SourceProjectNotFoundError,
    TargetProjectExistsError,
)
from .models import CloneOptions, CloneRequest, CloneRunResult, CloneStepResult
from .orchestrator import CloneOrchestrator
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "AdoApiError",
    "CloneError",
    "CloneOptions",
    "CloneOrchestrator",
    "CloneRequest",
    "CloneRunResult",
    "CloneStepResult",
    "ProjectProvisioningError",
    "SourceProjectNotFoundError",
    "TargetProjectExistsError",
    "main",
    "setup_logging",
]
