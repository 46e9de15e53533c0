"""Runner configuration.

Values come from ``LOCALCI_*`` environment variables, optionally seeded from
a ``.env`` file in the project directory or the current directory.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv

from .errors import ValidationError
from .steps import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

ENV_PREFIX = "LOCALCI_"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class RunnerConfig:
    """Configuration for a pipeline run."""

    default_timeout: float = DEFAULT_TIMEOUT  # seconds, for timeout steps without one
    poll_interval: float = 0.05  # seconds between signal checks
    pipeline_file: str = "pipeline.yaml"  # relative to the project directory
    log_level: str = "INFO"


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValidationError(f"{ENV_PREFIX}{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ValidationError(f"{ENV_PREFIX}{key} must be positive, got {raw!r}")
    return value


def load_config(
    project_dir: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> RunnerConfig:
    """Build a :class:`RunnerConfig` from the environment.

    When ``env`` is omitted, the first existing ``.env`` among
    ``<project_dir>/.env`` and ``./.env`` is loaded into ``os.environ``
    (without overriding variables already set) before reading it.
    """
    if env is None:
        candidates = [Path.cwd() / ".env"]
        if project_dir:
            candidates.insert(0, Path(project_dir) / ".env")
        for env_path in candidates:
            if env_path.exists():
                logger.debug(f"Loading environment from {env_path}")
                load_dotenv(env_path)
                break
        env = os.environ

    defaults = RunnerConfig()
    log_level = (env.get(ENV_PREFIX + "LOG_LEVEL") or defaults.log_level).upper()
    if log_level not in LOG_LEVELS:
        raise ValidationError(
            f"{ENV_PREFIX}LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
        )

    return RunnerConfig(
        default_timeout=_env_float(env, "DEFAULT_TIMEOUT", defaults.default_timeout),
        poll_interval=_env_float(env, "POLL_INTERVAL", defaults.poll_interval),
        pipeline_file=env.get(ENV_PREFIX + "PIPELINE_FILE") or defaults.pipeline_file,
        log_level=log_level,
    )


__all__ = ["ENV_PREFIX", "RunnerConfig", "load_config"]
