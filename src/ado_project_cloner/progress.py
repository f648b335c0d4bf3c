"""
Progress notification sinks.

The orchestrator emits step lifecycle events; callers implement the
ProgressSink protocol to render them (log lines, a web socket, nothing).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from .models import StepStatus
    from .protocols import ProgressSink

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)


class LoggingProgressSink:
    """Renders every notification as a log line."""

    _LEVELS: ClassVar[dict[str, int]] = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "success": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def report_progress(self, percentage: int, message: str) -> None:
        logger.info(f"[{percentage:3d}%] {message}")

    def report_step(self, step_name: str, status: StepStatus, message: str) -> None:
        logger.info(f"Step '{step_name}' {status}: {message}")

    def log(self, level: str, message: str) -> None:
        logger.log(self._LEVELS.get(level.lower(), logging.INFO), message)

    def complete(self, *, success: bool, result: object | None = None, error: str | None = None) -> None:
        if success:
            logger.info("Clone run finished successfully")
        else:
            logger.error(f"Clone run finished with errors: {error}")


class NullProgressSink:
    """Discards every notification."""

    def report_progress(self, percentage: int, message: str) -> None:
        pass

    def report_step(self, step_name: str, status: StepStatus, message: str) -> None:
        pass

    def log(self, level: str, message: str) -> None:
        pass

    def complete(self, *, success: bool, result: object | None = None, error: str | None = None) -> None:
        pass


class SafeProgressSink:
    """Wraps a sink so that delivery failures never reach the pipeline."""

    def __init__(self, inner: ProgressSink) -> None:
        self.inner = inner

    def report_progress(self, percentage: int, message: str) -> None:
        try:
            self.inner.report_progress(percentage, message)
        except Exception as e:  # noqa: BLE001
            logger.debug(f"Progress notification dropped: {e}")

    def report_step(self, step_name: str, status: StepStatus, message: str) -> None:
        try:
            self.inner.report_step(step_name, status, message)
        except Exception as e:  # noqa: BLE001
            logger.debug(f"Step notification for '{step_name}' dropped: {e}")

    def log(self, level: str, message: str) -> None:
        try:
            self.inner.log(level, message)
        except Exception as e:  # noqa: BLE001
            logger.debug(f"Log notification dropped: {e}")

    def complete(self, *, success: bool, result: object | None = None, error: str | None = None) -> None:
        try:
            self.inner.complete(success=success, result=result, error=error)
        except Exception as e:  # noqa: BLE001
            logger.debug(f"Completion notification dropped: {e}")
