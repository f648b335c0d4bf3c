"""
Custom exception classes for the Azure DevOps project cloning tool.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import CloneStepResult


_EXISTS_PATTERN = re.compile(r"already exists|TF237018|duplicate", re.IGNORECASE)
_TRANSIENT_STATUS_CODES = frozenset({401, 403, 408, 429, 500, 502, 503, 504})


class CloneError(Exception):
    """Base exception for cloning errors."""


class AdoApiError(CloneError):
    """Raised when a call to the Azure DevOps REST API fails."""

    status_code: int | None
    type_key: str
    message: str

    def __init__(self, message: str, *, status_code: int | None = None, type_key: str = "") -> None:
        super().__init__(message if status_code is None else f"{status_code}: {message}")
        self.message = message
        self.status_code = status_code
        self.type_key = type_key


class SourceProjectNotFoundError(CloneError):
    """Raised when the source project cannot be located."""


class TargetProjectExistsError(CloneError):
    """Raised when a project with the target name already exists."""


class ProjectProvisioningError(CloneError):
    """Raised when the target project could not be created or read back."""


class StepFailedError(CloneError):
    """Raised by a run-fatal step after its failure has been recorded."""

    step: CloneStepResult

    def __init__(self, step: CloneStepResult) -> None:
        super().__init__(step.error or step.message)
        self.step = step


def is_already_exists(exc: BaseException) -> bool:
    """Check if an exception reports that the entity already exists on the target."""
    if not isinstance(exc, AdoApiError):
        return False
    if exc.status_code == 409:
        return True
    if "exists" in exc.type_key.lower() or "duplicate" in exc.type_key.lower():
        return True
    return bool(_EXISTS_PATTERN.search(exc.message))


def is_transient(exc: BaseException) -> bool:
    """Check if an exception is worth a single retry (permissions, throttling, server errors)."""
    if not isinstance(exc, AdoApiError):
        return False
    if exc.status_code is None:
        # Transport failure: no response was received
        return True
    return exc.status_code in _TRANSIENT_STATUS_CODES
