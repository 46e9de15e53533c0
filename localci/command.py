"""External command invocation.

Steps never call :mod:`subprocess` themselves.  They ask the process-wide
command factory for a :class:`Command` and run it, which lets tests swap in
a stand-in process::

    with override_command_factory(my_factory):
        run(project, out, pipeline)

The factory is called as ``factory(executable, args, cwd, deadline)`` and
must return an object with a ``run() -> CommandResult`` method.
"""

from __future__ import annotations

import contextlib
import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Protocol, Sequence, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

_HAS_PROCESS_GROUPS = hasattr(os, "killpg")


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a command that exited with status 0."""

    returncode: int
    stdout: str = ""
    stderr: str = ""


class CommandFailedError(Exception):
    """A command exited with a non-zero status (or was killed)."""

    def __init__(
        self,
        argv: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = f"exit status {returncode}"
        if returncode < 0:
            detail = f"killed by signal {-returncode}"
        if stderr.strip():
            detail = f"{detail}: {stderr.strip()[:500]}"
        super().__init__(f"{argv[0] if argv else '<command>'}: {detail}")


class Deadline:
    """A one-shot timer that fires registered callbacks when it expires.

    Use it as a context manager so the timer thread is always released::

        with Deadline(10.0) as deadline:
            command("git", ["push"], cwd, deadline).run()
        if deadline.expired:
            ...
    """

    def __init__(self, timeout: float) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout!r}")
        self.timeout = timeout
        self._expired = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._started_at: Optional[float] = None
        self._timer = threading.Timer(timeout, self._expire)
        self._timer.daemon = True

    def start(self) -> "Deadline":
        self._started_at = time.monotonic()
        self._timer.start()
        return self

    def release(self) -> None:
        """Cancel the timer and drop callbacks. Safe to call more than once."""
        self._timer.cancel()
        with self._lock:
            self._callbacks.clear()

    def __enter__(self) -> "Deadline":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.release()

    @property
    def expired(self) -> bool:
        return self._expired.is_set()

    def remaining(self) -> float:
        if self._started_at is None:
            return self.timeout
        return max(0.0, self.timeout - (time.monotonic() - self._started_at))

    def on_expire(self, callback: Callable[[], None]) -> None:
        """Register ``callback``; it runs immediately if already expired."""
        with self._lock:
            if not self._expired.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def _expire(self) -> None:
        with self._lock:
            self._expired.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        logger.debug(f"Deadline of {self.timeout:g}s expired")
        for callback in callbacks:
            callback()


class Command(Protocol):
    def run(self) -> CommandResult: ...


class SubprocessCommand:
    """Runs ``executable`` with ``args`` verbatim (no shell) in ``cwd``.

    stdout and stderr are captured.  When a ``deadline`` is given, the child
    starts in its own session and its whole process group is killed as soon
    as the deadline expires, so helpers it spawned (``ssh`` under
    ``git push``) cannot hold the output pipes open.

    Raises:
        CommandFailedError: the process exited non-zero or was killed.
        OSError: the executable or working directory does not exist.
    """

    def __init__(
        self,
        executable: str,
        args: Sequence[str] = (),
        cwd: Optional[PathLike] = None,
        deadline: Optional[Deadline] = None,
    ) -> None:
        self.executable = executable
        self.args = list(args)
        self.cwd = cwd
        self.deadline = deadline

    @property
    def argv(self) -> List[str]:
        return [self.executable, *self.args]

    def run(self) -> CommandResult:
        logger.debug(f"Running {self.argv} in {self.cwd or os.getcwd()}")
        proc = subprocess.Popen(
            self.argv,
            cwd=self.cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            start_new_session=self.deadline is not None and _HAS_PROCESS_GROUPS,
        )
        if self.deadline is not None:
            self.deadline.on_expire(lambda: _kill(proc, group=_HAS_PROCESS_GROUPS))
        stdout, stderr = proc.communicate()

        if proc.returncode != 0:
            raise CommandFailedError(self.argv, proc.returncode, stdout, stderr)
        return CommandResult(returncode=proc.returncode, stdout=stdout, stderr=stderr)


def _kill(proc: subprocess.Popen, group: bool = False) -> None:
    with contextlib.suppress(ProcessLookupError):
        if group:
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()


CommandFactory = Callable[
    [str, Sequence[str], Optional[PathLike], Optional[Deadline]], Command
]

_command_factory: CommandFactory = SubprocessCommand


def command(
    executable: str,
    args: Sequence[str] = (),
    cwd: Optional[PathLike] = None,
    deadline: Optional[Deadline] = None,
) -> Command:
    """Build a command through the current factory."""
    return _command_factory(executable, args, cwd, deadline)


def get_command_factory() -> CommandFactory:
    return _command_factory


def set_command_factory(factory: CommandFactory) -> CommandFactory:
    """Install ``factory`` process-wide and return the previous one."""
    global _command_factory
    previous = _command_factory
    _command_factory = factory
    return previous


@contextlib.contextmanager
def override_command_factory(factory: CommandFactory) -> Iterator[CommandFactory]:
    """Temporarily install ``factory``; the previous one is always restored."""
    previous = set_command_factory(factory)
    try:
        yield factory
    finally:
        set_command_factory(previous)


__all__ = [
    "Command",
    "CommandFactory",
    "CommandFailedError",
    "CommandResult",
    "Deadline",
    "SubprocessCommand",
    "command",
    "get_command_factory",
    "override_command_factory",
    "set_command_factory",
]
