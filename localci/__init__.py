"""localci — run a project's CI pipeline on the local machine.

Public surface::

    from localci import (
        run,
        Orchestrator,
        Step, SilentStep, TimeoutStep,
        StepSpec, StepKind, build_step,
        LocalCIError, StepError, ValidationError, SignalError, DeadlineExceeded,
        matches,
    )

Pipelines run strictly in order; the first failure stops the run.
"""

from .command import (
    CommandFailedError,
    CommandResult,
    Deadline,
    SubprocessCommand,
    override_command_factory,
    set_command_factory,
)
from .config import RunnerConfig, load_config
from .definition import load_pipeline, parse_pipeline
from .errors import (
    DeadlineExceeded,
    LocalCIError,
    SignalError,
    StepError,
    ValidationError,
    matches,
)
from .orchestrator import Orchestrator, SignalWatcher, run
from .presets import go_pipeline
from .steps import (
    DEFAULT_TIMEOUT,
    Executor,
    SilentStep,
    Step,
    StepKind,
    StepSpec,
    TimeoutStep,
    build_step,
)

__version__ = "0.1.0"

__all__ = [
    # Entry point
    "run",
    "Orchestrator",
    "SignalWatcher",
    # Steps
    "Executor",
    "Step",
    "SilentStep",
    "TimeoutStep",
    "StepSpec",
    "StepKind",
    "build_step",
    "DEFAULT_TIMEOUT",
    # Errors
    "LocalCIError",
    "StepError",
    "ValidationError",
    "SignalError",
    "DeadlineExceeded",
    "matches",
    # Commands
    "CommandFailedError",
    "CommandResult",
    "Deadline",
    "SubprocessCommand",
    "override_command_factory",
    "set_command_factory",
    # Pipelines & config
    "RunnerConfig",
    "load_config",
    "load_pipeline",
    "parse_pipeline",
    "go_pipeline",
]
