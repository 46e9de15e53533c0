"""Shared fixtures: stand-in commands that replace real build tools.

Every external tool is swapped for ``python -c <script>`` through the
command factory, so tests never need go, gofmt, golangci-lint or a remote.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from localci.command import SubprocessCommand, override_command_factory

OK = "import sys; sys.exit(0)"
FAIL = "import sys; sys.stderr.write('boom'); sys.exit(1)"
PRINTS_FILE = "print('file.go')"
SLEEPS = "import time; time.sleep(15)"
SPAWNS_SLEEPER = (
    "import subprocess, sys, time; "
    "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(15)']); "
    "time.sleep(15)"
)

Call = Tuple[str, List[str], Optional[str]]


class StandIn:
    """Command factory that maps executables to Python one-liners.

    Records every command it builds in :attr:`calls` as
    ``(executable, args, cwd)``.  Unknown executables fail.
    """

    def __init__(self, scripts: Dict[str, str]) -> None:
        self.scripts = dict(scripts)
        self.calls: List[Call] = []

    def __call__(self, executable, args, cwd, deadline):
        self.calls.append((executable, list(args), str(cwd) if cwd else None))
        script = self.scripts.get(executable, FAIL)
        return SubprocessCommand(sys.executable, ["-c", script, *args], cwd, deadline)

    @property
    def executables(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def project_dir(tmp_path: Path) -> str:
    return str(tmp_path)


@pytest.fixture
def stand_in():
    """Install a :class:`StandIn` factory for the duration of one test."""
    installed = []

    def install(scripts: Dict[str, str]) -> StandIn:
        factory = StandIn(scripts)
        ctx = override_command_factory(factory)
        ctx.__enter__()
        installed.append(ctx)
        return factory

    yield install

    for ctx in reversed(installed):
        ctx.__exit__(None, None, None)
