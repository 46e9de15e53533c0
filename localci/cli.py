"""Command-line entry point.

Usage:
    localci -p <project> [-f pipeline.yaml] [-b <branch>] [-v]

Without ``--branch`` the local git branches are listed and one is chosen
interactively.  Without a pipeline file in the project, the built-in Go
pipeline runs.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from .config import RunnerConfig, load_config
from .definition import load_pipeline
from .errors import LocalCIError, ValidationError
from .git import list_branches, select_branch
from .orchestrator import run
from .presets import go_pipeline
from .steps import StepSpec

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="localci",
        description="Run a project's build/lint/test/format/push pipeline locally.",
    )
    parser.add_argument("-p", "--project", default="", help="Project directory")
    parser.add_argument(
        "-f",
        "--file",
        default=None,
        help="Pipeline file, relative to the project (default: pipeline.yaml)",
    )
    parser.add_argument(
        "-b",
        "--branch",
        default=None,
        help="Branch to push (default: choose interactively)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def resolve_branch(args: argparse.Namespace, stdin: TextIO, stdout: TextIO) -> str:
    if args.branch:
        return args.branch
    return select_branch(list_branches(args.project), stdin, stdout)


def resolve_pipeline(
    args: argparse.Namespace, config: RunnerConfig, branch: str
) -> List[StepSpec]:
    """Load the pipeline file, or fall back to the Go preset if there is none."""
    variables = {"branch": branch}
    if args.file:
        return load_pipeline(args.file, args.project, variables)

    default_file = Path(args.project) / config.pipeline_file
    if default_file.exists():
        return load_pipeline(default_file, variables=variables)

    logger.info(f"No {config.pipeline_file} in {args.project}; using the Go pipeline")
    return go_pipeline(branch)


def main(
    argv: Optional[Sequence[str]] = None,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> int:
    """Run the CLI. Returns the process exit code."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.project or None)
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else config.log_level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            stream=stderr,
        )
        if not args.project:
            raise ValidationError("project directory is required")

        branch = resolve_branch(args, stdin, stdout)
        pipeline = resolve_pipeline(args, config, branch)
        run(args.project, stdout, pipeline, config=config)

    except LocalCIError as e:
        logger.debug(f"Run failed: {e!r}")
        print(e, file=stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
