"""Pipeline steps.

Every step satisfies :class:`Executor`: ``execute()`` returns the step's
success message or raises :class:`~localci.errors.StepError`.

Step kinds::

    Step         — fails when the command exits non-zero
    SilentStep   — also fails when the command prints anything to stdout
    TimeoutStep  — like Step, but the command is killed at a deadline

All three reach the outside world only through
:func:`localci.command.command`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol, Tuple, Union, runtime_checkable

from .command import Deadline, PathLike, command
from .errors import DeadlineExceeded, StepError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0  # seconds, used when a TimeoutStep has none


@runtime_checkable
class Executor(Protocol):
    """Structural protocol for anything the orchestrator can drive."""

    name: str

    def execute(self) -> str: ...


@dataclass
class Step:
    """Runs one external command in the project directory.

    stdout and stderr are discarded on success.  Any failure to run the
    command (non-zero exit, missing executable, missing directory) raises
    ``StepError(name, "failed to execute")`` with the process error chained.
    """

    name: str
    executable: str
    project_dir: PathLike
    message: str
    args: List[str] = field(default_factory=list)

    def execute(self) -> str:
        logger.debug(f"Step {self.name!r}: {self.executable} {' '.join(self.args)}")
        try:
            command(self.executable, self.args, self.project_dir).run()
        except Exception as exc:
            raise StepError(self.name, "failed to execute", exc) from exc
        return self.message


@dataclass
class SilentStep(Step):
    """A step whose command must print nothing on success.

    Intended for checkers like ``gofmt -l`` that list offending files on
    stdout and still exit 0.  stderr is not inspected.
    """

    def execute(self) -> str:
        logger.debug(f"Step {self.name!r}: {self.executable} {' '.join(self.args)}")
        try:
            result = command(self.executable, self.args, self.project_dir).run()
        except Exception as exc:
            raise StepError(self.name, "failed to execute", exc) from exc

        if result.stdout:
            raise StepError(self.name, f"invalid format: {result.stdout}")
        return self.message


@dataclass
class TimeoutStep(Step):
    """A step whose command is killed once ``timeout`` seconds have passed.

    A zero or missing timeout falls back to :data:`DEFAULT_TIMEOUT`; a negative
    one is rejected with ``ValueError`` at construction.  When the
    deadline has expired the step always reports ``DeadlineExceeded`` as the
    cause, whatever error the killed process produced.
    """

    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.timeout is not None and self.timeout < 0:
            raise ValueError(
                f"step {self.name!r} timeout must not be negative, got {self.timeout!r}"
            )
        if not self.timeout:
            self.timeout = DEFAULT_TIMEOUT

    def execute(self) -> str:
        logger.debug(
            f"Step {self.name!r} (timeout {self.timeout:g}s): "
            f"{self.executable} {' '.join(self.args)}"
        )
        with Deadline(self.timeout) as deadline:
            try:
                command(self.executable, self.args, self.project_dir, deadline).run()
            except Exception as exc:
                if deadline.expired:
                    timeout_error = DeadlineExceeded(self.timeout)
                    raise StepError(
                        self.name, "failed time out", timeout_error
                    ) from timeout_error
                raise StepError(self.name, "failed to execute", exc) from exc
        return self.message


class StepKind(str, Enum):
    PLAIN = "plain"
    SILENT = "silent"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class StepSpec:
    """Declarative description of one step, independent of where it runs.

    ``working_dir`` defaults to the project directory passed to
    :func:`localci.run`.
    """

    name: str
    executable: str
    args: Tuple[str, ...] = ()
    message: str = ""
    kind: StepKind = StepKind.PLAIN
    timeout: Optional[float] = None
    working_dir: Optional[Union[str, Path]] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("step name must not be empty")
        if not self.executable:
            raise ValueError(f"step {self.name!r} has no executable")
        if self.timeout is not None and self.timeout < 0:
            raise ValueError(
                f"step {self.name!r} timeout must not be negative, got {self.timeout!r}"
            )
        object.__setattr__(self, "args", tuple(self.args))
        object.__setattr__(self, "kind", StepKind(self.kind))


def build_step(
    spec: StepSpec,
    project_dir: PathLike,
    *,
    default_timeout: float = DEFAULT_TIMEOUT,
) -> Step:
    """Turn a :class:`StepSpec` into the matching executable step."""
    cwd = spec.working_dir if spec.working_dir is not None else project_dir
    args = list(spec.args)

    if spec.kind is StepKind.SILENT:
        return SilentStep(spec.name, spec.executable, cwd, spec.message, args)
    if spec.kind is StepKind.TIMEOUT:
        return TimeoutStep(
            spec.name,
            spec.executable,
            cwd,
            spec.message,
            args,
            timeout=spec.timeout or default_timeout,
        )
    return Step(spec.name, spec.executable, cwd, spec.message, args)


__all__ = [
    "DEFAULT_TIMEOUT",
    "Executor",
    "SilentStep",
    "Step",
    "StepKind",
    "StepSpec",
    "TimeoutStep",
    "build_step",
]
