"""Pipeline orchestrator — runs steps in order and races them against signals.

The step loop runs on a single background thread, so steps never overlap.
The calling thread waits for whichever comes first:

* a termination signal (``SIGINT``/``SIGTERM``) → :class:`SignalError`,
* the first step failure → that :class:`StepError`,
* the end of the pipeline → ``None``.

On a signal the caller returns at once.  The background thread is not joined;
it may still be inside a step, and its final result goes to an unbounded
queue that nobody reads, so it can never block.  Once the run is abandoned
the thread writes nothing more and starts no further step.
"""

from __future__ import annotations

import logging
import queue
import signal
import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple, Union

from .command import PathLike
from .config import RunnerConfig
from .errors import SignalError, StepError, ValidationError
from .steps import Executor, StepSpec, build_step

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS: Tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)

_DONE = "done"
_ERROR = "error"


class SignalWatcher:
    """Records termination signals while installed.

    The handler only appends to a list, so it never contends for a lock held
    by the interrupted main thread.  Handlers can only be installed from the
    main thread; elsewhere :meth:`install` is a no-op and returns ``False``.
    """

    def __init__(self, signals: Iterable[int] = DEFAULT_SIGNALS) -> None:
        self.signals = tuple(signals)
        self.received: List[int] = []
        self._previous: Dict[int, Any] = {}

    @property
    def installed(self) -> bool:
        return bool(self._previous)

    def install(self) -> bool:
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread; signals will not be watched")
            return False
        for signum in self.signals:
            self._previous[signum] = signal.signal(signum, self._handle)
        return True

    def restore(self) -> None:
        """Put the previous handlers back. Safe to call more than once."""
        for signum, handler in self._previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous.clear()

    def __enter__(self) -> "SignalWatcher":
        self.install()
        return self

    def __exit__(self, *exc_info) -> None:
        self.restore()

    def _handle(self, signum: int, frame) -> None:
        self.received.append(signum)


class Orchestrator:
    """Drives an ordered list of executors to completion or first failure.

    Args:
        steps: Executors to run, in order.
        signals: Signals that abort the run.
        poll_interval: How often (seconds) the waiting thread checks for a
            received signal.
    """

    def __init__(
        self,
        steps: Sequence[Executor],
        *,
        signals: Iterable[int] = DEFAULT_SIGNALS,
        poll_interval: float = 0.05,
    ) -> None:
        self.steps = list(steps)
        self.signals = tuple(signals)
        self.poll_interval = poll_interval

    def run(self, out: TextIO) -> None:
        """Run every step, writing one success line per step to ``out``.

        Raises:
            SignalError: a watched signal arrived before the pipeline finished.
            StepError: a step failed; later steps were not started.
        """
        events: "queue.Queue[Tuple[str, Optional[BaseException]]]" = queue.Queue()
        abandoned = threading.Event()

        with SignalWatcher(self.signals) as watcher:
            worker = threading.Thread(
                target=self._run_steps,
                args=(out, events, abandoned),
                name="localci-pipeline",
                daemon=True,
            )
            worker.start()

            while True:
                if watcher.received:
                    signum = watcher.received[0]
                    abandoned.set()
                    watcher.restore()
                    logger.info(
                        f"Received {signal.Signals(signum).name}, abandoning pipeline"
                    )
                    raise SignalError(signum)

                try:
                    kind, error = events.get(timeout=self.poll_interval)
                except queue.Empty:
                    continue

                if kind == _ERROR and error is not None:
                    raise error
                logger.debug(f"Pipeline finished: {len(self.steps)} step(s) succeeded")
                return

    def _run_steps(
        self, out: TextIO, events: queue.Queue, abandoned: threading.Event
    ) -> None:
        try:
            for index, step in enumerate(self.steps, start=1):
                if abandoned.is_set():
                    logger.debug(f"Run abandoned; not starting {step.name!r}")
                    return
                logger.debug(f"[{index}/{len(self.steps)}] starting {step.name!r}")
                message = step.execute()
                if abandoned.is_set():
                    logger.debug(f"Run abandoned; dropping output of {step.name!r}")
                    return
                try:
                    out.write(f"{message}\n")
                    out.flush()
                except Exception as exc:
                    raise StepError(step.name, "failed to write output", exc) from exc
        except BaseException as exc:
            # the waiting thread must always receive an event
            logger.warning(f"Pipeline stopped: {exc!r}")
            events.put((_ERROR, exc))
            return
        events.put((_DONE, None))


def run(
    project_path: Optional[PathLike],
    out: TextIO,
    pipeline: Sequence[Union[StepSpec, Executor]],
    *,
    config: Optional[RunnerConfig] = None,
) -> None:
    """Run ``pipeline`` against ``project_path``, writing progress to ``out``.

    Steps given as :class:`StepSpec` run in ``project_path`` unless they name
    their own working directory.  Ready-made executors are used as-is.

    Returns ``None`` when every step succeeded.

    Raises:
        ValidationError: ``project_path`` is empty or a step cannot be built;
            nothing was run.
        StepError: the first step that failed.
        SignalError: the run was interrupted.
    """
    if not project_path or not str(project_path).strip():
        raise ValidationError("project directory is required")

    config = config or RunnerConfig()
    steps: List[Executor] = []
    for item in pipeline:
        if isinstance(item, StepSpec):
            try:
                step = build_step(
                    item, project_path, default_timeout=config.default_timeout
                )
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
            steps.append(step)
        else:
            steps.append(item)

    logger.debug(f"Running {len(steps)} step(s) in {project_path}")
    Orchestrator(steps, poll_interval=config.poll_interval).run(out)


__all__ = ["DEFAULT_SIGNALS", "Orchestrator", "SignalWatcher", "run"]
