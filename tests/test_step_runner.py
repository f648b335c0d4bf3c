"""
Tests for the step runner failure boundary.
"""

import datetime as dt
from unittest.mock import Mock

import pytest

from ado_project_cloner.exceptions import StepFailedError
from ado_project_cloner.models import StepStatus
from ado_project_cloner.step_runner import StepRunner


def make_clock(*seconds: int):
    base = dt.datetime(2024, 1, 1, tzinfo=dt.UTC)
    ticks = iter(base + dt.timedelta(seconds=s) for s in seconds)
    return lambda: next(ticks)


@pytest.mark.unit
class TestStepRunner:
    def setup_method(self) -> None:
        self.progress = Mock()
        self.runner = StepRunner(self.progress, clock=make_clock(0, 3))

    def test_successful_step_records_message_and_duration(self) -> None:
        step = self.runner.execute("Clone Things", lambda: "Cloned 3 things")

        assert step.success is True
        assert step.message == "Cloned 3 things"
        assert step.error is None
        assert step.duration == dt.timedelta(seconds=3)
        assert step.end_time - step.start_time == step.duration

    def test_success_publishes_started_then_completed(self) -> None:
        self.runner.execute("Clone Things", lambda: "done")

        statuses = [c.args[1] for c in self.progress.report_step.call_args_list]
        assert statuses == [StepStatus.STARTED, StepStatus.COMPLETED]

    def test_exception_never_propagates(self) -> None:
        def boom() -> str:
            msg = "quota exceeded"
            raise RuntimeError(msg)

        step = self.runner.execute("Clone Things", boom)

        assert step.success is False
        assert step.message == "Failed: quota exceeded"
        assert step.error == "quota exceeded"
        self.progress.report_step.assert_called_with("Clone Things", StepStatus.FAILED, "quota exceeded")

    def test_fatal_failure_is_raised_with_recorded_step(self) -> None:
        cause = RuntimeError("project name taken")

        def boom() -> str:
            raise cause

        with pytest.raises(StepFailedError, match="project name taken") as exc_info:
            self.runner.execute("Create Target Project", boom, fatal=True)

        assert exc_info.value.__cause__ is cause
        assert exc_info.value.step.success is False
        assert exc_info.value.step.duration == dt.timedelta(seconds=3)
        self.progress.report_step.assert_called_with("Create Target Project", StepStatus.FAILED, "project name taken")

    def test_fatal_success_returns_normally(self) -> None:
        assert self.runner.execute("Create Target Project", lambda: "created", fatal=True).success is True


    def test_exception_without_message_uses_type_name(self) -> None:
        def boom() -> str:
            raise KeyError

        step = self.runner.execute("Clone Things", boom)

        assert step.error == "KeyError"

    def test_broken_progress_sink_does_not_affect_outcome(self) -> None:
        self.progress.report_step.side_effect = ConnectionError("sink down")

        step = self.runner.execute("Clone Things", lambda: "ok")

        assert step.success is True
        assert step.message == "ok"

    def test_works_without_progress_sink(self) -> None:
        runner = StepRunner()

        assert runner.execute("Step", lambda: "fine").success is True
