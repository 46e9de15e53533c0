"""Git branch discovery and interactive selection."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, TextIO, Union

from .command import CommandFailedError, command
from .errors import ValidationError

logger = logging.getLogger(__name__)


def parse_branches(output: str) -> List[str]:
    """Parse ``git branch`` output, dropping the current-branch marker."""
    branches = []
    for line in output.splitlines():
        name = line.strip()
        if name.startswith("*"):
            name = name[1:].strip()
        if name:
            branches.append(name)
    return branches


def list_branches(project_dir: Optional[Union[str, Path]] = None) -> List[str]:
    """Return the local branches of the repository at ``project_dir``.

    Raises:
        ValidationError: ``git`` is missing or the directory is not a repository.
    """
    try:
        result = command("git", ["branch"], project_dir).run()
    except CommandFailedError as exc:
        raise ValidationError(f"git branch failed: {exc}") from exc
    except OSError as exc:
        raise ValidationError(f"cannot run git: {exc}") from exc

    branches = parse_branches(result.stdout)
    logger.debug(f"Found {len(branches)} branch(es) in {project_dir or Path.cwd()}")
    return branches


def select_branch(branches: List[str], stdin: TextIO, stdout: TextIO) -> str:
    """Print a numbered menu of ``branches`` and read a 1-based choice."""
    if not branches:
        raise ValidationError("no git branches to choose from")

    print("Select a branch", file=stdout)
    for index, branch in enumerate(branches, start=1):
        print(f"[{index}] {branch}", file=stdout)
    print("Input a number to select the branch: ", file=stdout)
    stdout.flush()

    raw = stdin.readline()
    if not raw:
        raise ValidationError("no branch selected")
    choice = raw.strip()
    try:
        index = int(choice)
    except ValueError:
        raise ValidationError(f"invalid branch selection: {choice!r}")
    if index < 1 or index > len(branches):
        raise ValidationError(
            f"invalid branch selection: {index} (choose 1-{len(branches)})"
        )
    return branches[index - 1]


__all__ = ["list_branches", "parse_branches", "select_branch"]
