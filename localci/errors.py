"""Error taxonomy for pipeline runs.

Every error raised out of :func:`localci.run` derives from
:class:`LocalCIError`.  Callers should not match on message text; use
:func:`matches` instead::

    try:
        run(project, sys.stdout, pipeline)
    except LocalCIError as exc:
        if matches(exc, StepError("git-push")) and matches(exc, DeadlineExceeded):
            ...  # the push step timed out
"""

from __future__ import annotations

import signal as _signal
from typing import Optional, Union


class LocalCIError(Exception):
    """Base class for everything a pipeline run can raise."""


class ValidationError(LocalCIError):
    """Raised before any step runs when the run's input is unusable."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Validation failed: {detail}")
        self.detail = detail


class StepError(LocalCIError):
    """A named step failed.

    Two ``StepError`` instances compare equal when they name the same step.
    ``message`` and ``cause`` are informational only, so
    ``StepError("go-test")`` can be used as a matching target.

    The underlying error is stored as ``__cause__`` (``raise ... from cause``)
    and exposed through :attr:`cause`.
    """

    def __init__(
        self,
        step: str,
        message: str = "",
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(step, message)
        self.step = step
        self.message = message
        if cause is not None:
            self.__cause__ = cause

    @property
    def cause(self) -> Optional[BaseException]:
        return self.__cause__

    def __str__(self) -> str:
        return f"Step: {self.step!r}: {self.message}: Cause: {self.cause}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StepError):
            return NotImplemented
        return self.step == other.step

    def __hash__(self) -> int:
        return hash((StepError, self.step))


class SignalError(LocalCIError):
    """The run was aborted because the process received a termination signal."""

    def __init__(self, signum: int) -> None:
        self.signal = _signal.Signals(signum)
        super().__init__(f"{self.signal.name}: Exiting: run aborted by signal")


class DeadlineExceeded(LocalCIError, TimeoutError):
    """Canonical cause attached to a step that ran past its deadline."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout
        if timeout is None:
            super().__init__("deadline exceeded")
        else:
            super().__init__(f"deadline exceeded after {timeout:g}s")


MatchTarget = Union[BaseException, type]


def iter_chain(err: Optional[BaseException]):
    """Yield ``err`` followed by each error in its ``__cause__`` chain."""
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__


def matches(err: Optional[BaseException], target: MatchTarget) -> bool:
    """Report whether any error in ``err``'s cause chain matches ``target``.

    ``target`` is either an exception class (matched with ``isinstance``) or an
    exception instance (matched with ``==``, which for :class:`StepError`
    compares step names only).
    """
    for link in iter_chain(err):
        if isinstance(target, type):
            if isinstance(link, target):
                return True
        elif link == target:
            return True
    return False


__all__ = [
    "LocalCIError",
    "ValidationError",
    "StepError",
    "SignalError",
    "DeadlineExceeded",
    "iter_chain",
    "matches",
]
