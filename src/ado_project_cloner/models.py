"""Data models for cloning one Azure DevOps project into a new sibling project.

These models are the normalized data exchanged between the REST client,
the individual cloning steps and the CloneOrchestrator. Requests and
results are frozen; only the run builder accumulates state during a run.
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from urllib.parse import parse_qs, urlparse

# Work item link types
HIERARCHY_FORWARD = "System.LinkTypes.Hierarchy-Forward"  # child
HIERARCHY_REVERSE = "System.LinkTypes.Hierarchy-Reverse"  # parent
RELATED = "System.LinkTypes.Related"
DEPENDENCY_FORWARD = "System.LinkTypes.Dependency-Forward"  # successor
DEPENDENCY_REVERSE = "System.LinkTypes.Dependency-Reverse"  # predecessor
ATTACHED_FILE = "AttachedFile"

LINKABLE_RELATIONS: frozenset[str] = frozenset(
    {HIERARCHY_FORWARD, HIERARCHY_REVERSE, RELATED, DEPENDENCY_FORWARD, DEPENDENCY_REVERSE}
)

_TRAILING_ID_PATTERN = re.compile(r"/(\d+)/?$")


def extract_work_item_id(url: str) -> int | None:
    """Extract the work item ID encoded as the final path segment of a relation URL.

    Unparseable references yield None.
    """
    if not url:
        return None
    path = url.split("?", 1)[0].split("#", 1)[0]
    match = _TRAILING_ID_PATTERN.search(path)
    if not match:
        return None
    return int(match.group(1))


class StepStatus(StrEnum):
    """Status values published for a step on the progress channel."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class CloneOptions:
    """Independent toggles, one per entity kind.

    Each toggle is read once per run. No toggle implies another.
    """

    clone_project_settings: bool = True
    clone_classification_nodes: bool = True
    clone_repositories: bool = True
    clone_work_items: bool = True
    clone_build_pipelines: bool = True
    clone_queries: bool = True
    clone_dashboards: bool = True
    clone_wiki: bool = True
    clone_teams: bool = True
    excluded_repositories: tuple[str, ...] = ()

    def is_repository_excluded(self, name: str) -> bool:
        """Check a repository name against the exclusion list (case-insensitive)."""
        return name.lower() in {excluded.lower() for excluded in self.excluded_repositories}


@dataclass(frozen=True)
class CloneRequest:
    """Immutable input to one clone run."""

    source_project_id: str  # Project ID or name
    target_project_name: str
    target_project_description: str | None = None
    options: CloneOptions = field(default_factory=CloneOptions)


@dataclass(frozen=True)
class CloneStepResult:
    """Outcome of one executed step."""

    name: str
    start_time: dt.datetime
    end_time: dt.datetime
    duration: dt.timedelta
    success: bool
    message: str
    error: str | None = None


@dataclass(frozen=True)
class CloneRunResult:
    """Aggregate outcome of one clone run."""

    steps: tuple[CloneStepResult, ...]
    total_steps: int
    completed_steps: int
    new_project_id: str
    new_project_url: str
    success: bool
    message: str
    duration: dt.timedelta
    error: str | None = None

    @property
    def failed_steps(self) -> list[str]:
        return [step.name for step in self.steps if not step.success]


@dataclass(frozen=True)
class ProjectInfo:
    """A project as returned by the platform."""

    id: str
    name: str
    description: str = ""
    visibility: str = "private"
    url: str = ""
    capabilities: dict[str, dict[str, str]] = field(default_factory=dict)

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> ProjectInfo:
        return cls(
            id=str(payload.get("id", "")),
            name=payload.get("name", ""),
            description=payload.get("description") or "",
            visibility=payload.get("visibility") or "private",
            url=payload.get("url", ""),
            capabilities=payload.get("capabilities") or {},
        )


@dataclass(frozen=True)
class WorkItemRelation:
    """A link from a work item to another resource (work item, attachment, ...)."""

    rel: str
    url: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def attachment_name(self) -> str:
        """File name of an attached file, from its attributes or the URL's fileName parameter."""
        name = self.attributes.get("name")
        if name:
            return str(name)
        query = parse_qs(urlparse(self.url).query)
        file_names = query.get("fileName")
        if file_names:
            return file_names[0]
        return urlparse(self.url).path.rsplit("/", 1)[-1]


@dataclass
class WorkItemRecord:
    """A source work item, transient for the duration of a run."""

    id: int
    work_item_type: str
    fields: dict[str, Any] = field(default_factory=dict)
    relations: list[WorkItemRelation] = field(default_factory=list)

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> WorkItemRecord:
        fields: dict[str, Any] = payload.get("fields") or {}
        relations = [
            WorkItemRelation(
                rel=relation.get("rel", ""),
                url=relation.get("url", ""),
                attributes=relation.get("attributes") or {},
            )
            for relation in payload.get("relations") or []
        ]
        return cls(
            id=int(payload["id"]),
            work_item_type=fields.get("System.WorkItemType", ""),
            fields=fields,
            relations=relations,
        )

    @property
    def title(self) -> str:
        return str(self.fields.get("System.Title", ""))

    @property
    def parent_id(self) -> int | None:
        """Source ID of the parent: the System.Parent field, else the first parent link."""
        parent = self.fields.get("System.Parent")
        if parent is not None:
            try:
                return int(parent)
            except (TypeError, ValueError):
                pass
        for relation in self.relations:
            if relation.rel == HIERARCHY_REVERSE:
                return extract_work_item_id(relation.url)
        return None


@dataclass
class TreeNode:
    """A node of a replicated tree (query folders and queries, wiki pages, classification nodes).

    A container with no children is a legal leaf container.
    """

    name: str
    is_container: bool
    payload: Any = None  # WIQL text, page content or node attributes
    children: list[TreeNode] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
