"""Declarative pipeline files.

A pipeline file maps step names to job descriptors, in execution order.
Both a plain mapping and a list of single-key mappings are accepted::

    go-build:
      command: go
      args: [build, "."]
      success_msg: "GO Build: SUCCESS"
    git-push:
      command: git
      args: [push, origin, $branch]
      success_msg: "Git Push: SUCCESS"
      timeout: 10s

Declaration order is execution order; it is never re-sorted.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from string import Template
from typing import Any, List, Mapping, Optional, Set, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .steps import StepKind, StepSpec

logger = logging.getLogger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Union[str, int, float, None]) -> Optional[float]:
    """Parse ``10``, ``2.5``, ``"500ms"``, ``"10s"`` or ``"1m30s"`` into seconds."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            parts = _DURATION_PART.findall(text)
            if not parts or "".join(n + u for n, u in parts) != text:
                raise ValueError(f"invalid duration: {value!r}")
            seconds = sum(float(n) * _UNIT_SECONDS[u] for n, u in parts)
    if seconds < 0:
        raise ValueError(f"duration must not be negative: {value!r}")
    return seconds


class JobDefinition(BaseModel):
    """One job descriptor as written in a pipeline file."""

    model_config = ConfigDict(extra="forbid")

    command: str = Field(..., min_length=1, description="Executable to run")
    args: List[str] = Field(default_factory=list, description="Arguments, verbatim")
    success_msg: str = Field(default="", description="Printed when the step succeeds")
    timeout: Optional[float] = Field(default=None, description="Seconds before the step is killed")
    kind: Optional[StepKind] = Field(default=None, description="plain | silent | timeout")
    working_dir: Optional[str] = Field(default=None, description="Overrides the project directory")

    @field_validator("args", mode="before")
    @classmethod
    def _stringify_args(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        return value

    @field_validator("timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value: Any) -> Optional[float]:
        return parse_duration(value)

    def to_spec(self, name: str, variables: Optional[Mapping[str, str]] = None) -> StepSpec:
        variables = variables or {}
        kind = self.kind
        if kind is None:
            kind = StepKind.TIMEOUT if self.timeout else StepKind.PLAIN
        return StepSpec(
            name=name,
            executable=self.command,
            args=tuple(Template(arg).safe_substitute(variables) for arg in self.args),
            message=self.success_msg,
            kind=kind,
            timeout=self.timeout,
            working_dir=self.working_dir,
        )


def _entries(data: Any) -> List[Tuple[Any, Any]]:
    if isinstance(data, Mapping):
        return list(data.items())
    if isinstance(data, list):
        entries = []
        for position, item in enumerate(data, start=1):
            if not isinstance(item, Mapping) or len(item) != 1:
                raise ValidationError(
                    f"pipeline entry {position} must map exactly one step name to a job"
                )
            entries.extend(item.items())
        return entries
    raise ValidationError(
        f"pipeline must be a mapping or a list of mappings, got {type(data).__name__}"
    )


def parse_pipeline(
    data: Any, variables: Optional[Mapping[str, str]] = None
) -> List[StepSpec]:
    """Turn already-parsed YAML data into an ordered list of :class:`StepSpec`."""
    if not data:
        raise ValidationError("pipeline defines no steps")

    specs: List[StepSpec] = []
    seen: Set[str] = set()
    for name, job in _entries(data):
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f"step names must be non-empty strings, got {name!r}")
        if name in seen:
            raise ValidationError(f"step {name!r} is defined more than once")
        seen.add(name)
        try:
            definition = JobDefinition.model_validate(job or {})
        except PydanticValidationError as exc:
            raise ValidationError(f"step {name!r}: {exc}") from exc
        specs.append(definition.to_spec(name, variables))
    return specs


def load_pipeline(
    path: Union[str, Path],
    project_dir: Optional[Union[str, Path]] = None,
    variables: Optional[Mapping[str, str]] = None,
) -> List[StepSpec]:
    """Read a YAML pipeline file.

    A relative ``path`` is resolved against ``project_dir`` when given.
    """
    file_path = Path(path)
    if project_dir is not None and not file_path.is_absolute():
        file_path = Path(project_dir) / file_path

    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValidationError(f"cannot read pipeline file {file_path}: {exc}") from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValidationError(f"invalid YAML in {file_path}: {exc}") from exc

    specs = parse_pipeline(data, variables)
    logger.debug(f"Loaded {len(specs)} step(s) from {file_path}")
    return specs


__all__ = ["JobDefinition", "load_pipeline", "parse_duration", "parse_pipeline"]
