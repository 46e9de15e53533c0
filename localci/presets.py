"""Built-in pipelines used when a project ships no pipeline file."""

from __future__ import annotations

from typing import List

from .steps import StepKind, StepSpec

GIT_PUSH_TIMEOUT = 10.0


def go_pipeline(branch: str = "main") -> List[StepSpec]:
    """Build, lint, test, format-check, then push ``branch`` to ``origin``."""
    return [
        StepSpec("go-build", "go", ("build", "."), "GO Build: SUCCESS"),
        StepSpec("go-lint", "golangci-lint", ("run",), "GO Lint: SUCCESS"),
        StepSpec("go-test", "go", ("test", "-v"), "GO Test: SUCCESS"),
        StepSpec("go-fmt", "gofmt", ("-l", "."), "GO Fmt: SUCCESS", kind=StepKind.SILENT),
        StepSpec(
            "git-push",
            "git",
            ("push", "origin", branch),
            "Git Push: SUCCESS",
            kind=StepKind.TIMEOUT,
            timeout=GIT_PUSH_TIMEOUT,
        ),
    ]


__all__ = ["GIT_PUSH_TIMEOUT", "go_pipeline"]
