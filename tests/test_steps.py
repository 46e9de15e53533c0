"""Tests for localci/steps.py — Step, SilentStep, TimeoutStep and StepSpec."""

from __future__ import annotations

import threading
import time

import pytest

from conftest import FAIL, OK, PRINTS_FILE, SLEEPS, SPAWNS_SLEEPER
from localci.command import CommandFailedError, CommandResult, override_command_factory
from localci.errors import DeadlineExceeded, StepError, matches
from localci.steps import (
    DEFAULT_TIMEOUT,
    Executor,
    SilentStep,
    Step,
    StepKind,
    StepSpec,
    TimeoutStep,
    build_step,
)


class FakeCommand:
    """In-process command: returns ``result`` or raises ``error``."""

    def __init__(self, result=None, error=None):
        self.result = result or CommandResult(returncode=0)
        self.error = error

    def run(self):
        if self.error is not None:
            raise self.error
        return self.result


class RecordingFactory:
    """Builds commands with ``build(deadline)`` and remembers each deadline."""

    def __init__(self, build):
        self.build = build
        self.deadlines = []

    def __call__(self, executable, args, cwd, deadline):
        self.deadlines.append(deadline)
        return self.build(deadline)


class FailsAfterDeadline:
    """Waits for the deadline, then fails with an unrelated process error."""

    def __init__(self, deadline):
        self.deadline = deadline

    def run(self):
        expired = threading.Event()
        self.deadline.on_expire(expired.set)
        expired.wait(5)
        raise CommandFailedError(["git", "push"], 128, stderr="remote hung up")


@pytest.mark.unit
class TestStep:
    def test_success_returns_message(self, project_dir, stand_in):
        stand_in({"go": OK})
        step = Step("go-build", "go", project_dir, "GO Build: SUCCESS", ["build", "."])
        assert step.execute() == "GO Build: SUCCESS"

    def test_runs_command_in_project_dir(self, project_dir, stand_in):
        factory = stand_in({"go": OK})
        Step("go-build", "go", project_dir, "ok", ["build", "."]).execute()
        assert factory.calls == [("go", ["build", "."], project_dir)]

    def test_failure_wraps_process_error(self, project_dir, stand_in):
        stand_in({"go": FAIL})
        with pytest.raises(StepError) as info:
            Step("go-build", "go", project_dir, "ok", ["build"]).execute()
        err = info.value
        assert err == StepError("go-build")
        assert err.message == "failed to execute"
        assert isinstance(err.cause, CommandFailedError)
        assert err.cause.stderr == "boom"

    def test_missing_executable_is_failed_to_execute(self, project_dir):
        step = Step("lint", "definitely-not-a-real-tool-xyz", project_dir, "ok")
        with pytest.raises(StepError) as info:
            step.execute()
        assert info.value.message == "failed to execute"
        assert isinstance(info.value.cause, OSError)

    def test_missing_project_dir_is_failed_to_execute(self, tmp_path, stand_in):
        stand_in({"go": OK})
        step = Step("go-build", "go", str(tmp_path / "nope"), "ok")
        with pytest.raises(StepError) as info:
            step.execute()
        assert info.value.message == "failed to execute"

    def test_output_is_discarded_on_success(self, project_dir, stand_in):
        stand_in({"go": PRINTS_FILE})
        assert Step("go-test", "go", project_dir, "GO Test: SUCCESS").execute() == "GO Test: SUCCESS"

    def test_satisfies_executor_protocol(self, project_dir):
        assert isinstance(Step("a", "go", project_dir, "ok"), Executor)


@pytest.mark.unit
class TestSilentStep:
    def test_empty_stdout_succeeds(self, project_dir, stand_in):
        stand_in({"gofmt": OK})
        step = SilentStep("go-fmt", "gofmt", project_dir, "GO Fmt: SUCCESS", ["-l", "."])
        assert step.execute() == "GO Fmt: SUCCESS"

    def test_stdout_on_success_is_a_format_violation(self, project_dir, stand_in):
        stand_in({"gofmt": PRINTS_FILE})
        with pytest.raises(StepError) as info:
            SilentStep("go-fmt", "gofmt", project_dir, "ok", ["-l", "."]).execute()
        err = info.value
        assert err == StepError("go-fmt")
        assert err.message.startswith("invalid format: ")
        assert "file.go" in err.message
        assert err.cause is None

    def test_exit_failure_takes_precedence_over_stdout(self, project_dir, stand_in):
        stand_in({"gofmt": "import sys; print('file.go'); sys.exit(2)"})
        with pytest.raises(StepError) as info:
            SilentStep("go-fmt", "gofmt", project_dir, "ok").execute()
        assert info.value.message == "failed to execute"
        assert isinstance(info.value.cause, CommandFailedError)

    def test_stderr_does_not_gate_success(self, project_dir, stand_in):
        stand_in({"gofmt": "import sys; sys.stderr.write('note')"})
        assert SilentStep("go-fmt", "gofmt", project_dir, "ok").execute() == "ok"


@pytest.mark.unit
class TestTimeoutStep:
    def test_zero_or_missing_timeout_defaults(self, project_dir):
        assert TimeoutStep("p", "git", project_dir, "ok").timeout == DEFAULT_TIMEOUT
        assert TimeoutStep("p", "git", project_dir, "ok", timeout=0).timeout == DEFAULT_TIMEOUT
        assert TimeoutStep("p", "git", project_dir, "ok", timeout=2.5).timeout == 2.5

    def test_success_returns_message_and_releases_deadline(self, project_dir):
        factory = RecordingFactory(lambda deadline: FakeCommand())
        with override_command_factory(factory):
            step = TimeoutStep("git-push", "git", project_dir, "Git Push: SUCCESS", timeout=5)
            assert step.execute() == "Git Push: SUCCESS"
        (deadline,) = factory.deadlines
        assert deadline is not None
        assert not deadline.expired
        assert deadline._timer.finished.is_set()

    def test_plain_failure_releases_deadline(self, project_dir):
        factory = RecordingFactory(
            lambda deadline: FakeCommand(error=CommandFailedError(["git"], 1))
        )
        with override_command_factory(factory):
            with pytest.raises(StepError) as info:
                TimeoutStep("git-push", "git", project_dir, "ok", timeout=5).execute()
        assert info.value.message == "failed to execute"
        assert not matches(info.value, DeadlineExceeded)
        assert factory.deadlines[0]._timer.finished.is_set()

    def test_timeout_reports_deadline_exceeded_over_process_error(self, project_dir):
        factory = RecordingFactory(FailsAfterDeadline)
        with override_command_factory(factory):
            with pytest.raises(StepError) as info:
                TimeoutStep("git-push", "git", project_dir, "ok", timeout=0.1).execute()
        err = info.value
        assert err == StepError("git-push")
        assert err.message == "failed time out"
        assert isinstance(err.cause, DeadlineExceeded)
        assert matches(err, DeadlineExceeded)
        assert isinstance(err.__context__, CommandFailedError)

    @pytest.mark.integration
    def test_real_process_is_killed_at_deadline(self, project_dir, stand_in):
        stand_in({"git": SLEEPS})
        start = time.monotonic()
        with pytest.raises(StepError) as info:
            TimeoutStep("git-push", "git", project_dir, "ok", ["push"], timeout=1).execute()
        assert time.monotonic() - start < 10
        assert matches(info.value, DeadlineExceeded)

    @pytest.mark.integration
    def test_child_processes_killed_with_tool_at_deadline(self, project_dir, stand_in):
        stand_in({"git": SPAWNS_SLEEPER})
        start = time.monotonic()
        with pytest.raises(StepError) as info:
            TimeoutStep("git-push", "git", project_dir, "ok", ["push"], timeout=1).execute()
        assert time.monotonic() - start < 5
        assert matches(info.value, DeadlineExceeded)

    def test_negative_timeout_rejected(self, project_dir):
        with pytest.raises(ValueError, match="must not be negative"):
            TimeoutStep("git-push", "git", project_dir, "ok", timeout=-1)


@pytest.mark.unit
class TestStepSpec:
    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            StepSpec("", "go")

    def test_empty_executable_rejected(self):
        with pytest.raises(ValueError):
            StepSpec("go-build", "")

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValueError, match="must not be negative"):
            StepSpec("git-push", "git", kind=StepKind.TIMEOUT, timeout=-1)

    def test_args_and_kind_are_normalised(self):
        spec = StepSpec("go-fmt", "gofmt", ["-l", "."], kind="silent")
        assert spec.args == ("-l", ".")
        assert spec.kind is StepKind.SILENT


@pytest.mark.unit
class TestBuildStep:
    def test_plain(self, project_dir):
        step = build_step(StepSpec("go-build", "go", ("build",), "ok"), project_dir)
        assert type(step) is Step
        assert step.project_dir == project_dir
        assert step.args == ["build"]

    def test_silent(self, project_dir):
        step = build_step(StepSpec("go-fmt", "gofmt", kind=StepKind.SILENT), project_dir)
        assert type(step) is SilentStep

    def test_timeout_uses_spec_timeout(self, project_dir):
        spec = StepSpec("git-push", "git", kind=StepKind.TIMEOUT, timeout=10)
        step = build_step(spec, project_dir, default_timeout=99)
        assert type(step) is TimeoutStep
        assert step.timeout == 10

    def test_timeout_falls_back_to_default(self, project_dir):
        spec = StepSpec("git-push", "git", kind=StepKind.TIMEOUT)
        assert build_step(spec, project_dir, default_timeout=7).timeout == 7

    def test_spec_working_dir_overrides_project(self, project_dir, tmp_path):
        sub = tmp_path / "sub"
        step = build_step(StepSpec("go-build", "go", working_dir=sub), project_dir)
        assert step.project_dir == sub
