"""
Step runner: the single failure boundary of the clone pipeline.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING

from .exceptions import StepFailedError
from .models import CloneStepResult, StepStatus
from .progress import NullProgressSink, SafeProgressSink

if TYPE_CHECKING:
    from collections.abc import Callable

    from .protocols import ProgressSink

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)


class StepRunner:
    """Executes named steps and turns their outcome into CloneStepResult records."""

    def __init__(self, progress: ProgressSink | None = None, *, clock: Callable[[], dt.datetime] | None = None) -> None:
        if not isinstance(progress, SafeProgressSink):
            progress = SafeProgressSink(progress or NullProgressSink())
        self.progress = progress
        self._clock = clock or (lambda: dt.datetime.now(dt.UTC))

    def execute(self, name: str, action: Callable[[], str], *, fatal: bool = False) -> CloneStepResult:
        """Run one step.

        No exception raised by action propagates out of this method, except
        for a fatal step, whose failure is raised as StepFailedError carrying
        the recorded outcome.

        Args:
            name: Step name, used in progress notifications and the run report
            action: Callable performing the step and returning its summary message
            fatal: Whether a failure of this step ends the run

        Returns:
            The recorded step outcome with timing

        Raises:
            StepFailedError: If a fatal step failed
        """
        logger.info(f"Starting step: {name}")
        self.progress.report_step(name, StepStatus.STARTED, f"Starting {name}...")
        start_time = self._clock()
        try:
            message = action()
        except Exception as e:
            end_time = self._clock()
            description = str(e) or type(e).__name__
            logger.exception(f"Step '{name}' failed")
            self.progress.report_step(name, StepStatus.FAILED, description)
            step = CloneStepResult(
                name=name,
                start_time=start_time,
                end_time=end_time,
                duration=end_time - start_time,
                success=False,
                message=f"Failed: {description}",
                error=description,
            )
            if fatal:
                raise StepFailedError(step) from e
            return step

        end_time = self._clock()
        logger.info(f"Completed step: {name} ({message})")
        self.progress.report_step(name, StepStatus.COMPLETED, message)
        return CloneStepResult(
            name=name,
            start_time=start_time,
            end_time=end_time,
            duration=end_time - start_time,
            success=True,
            message=message,
        )
