"""Bounded-concurrency FIFO scheduler for external conversion jobs."""

from __future__ import annotations

import enum
import logging
import os
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path

from PySide6.QtCore import QObject, QTimer, Signal

from .process import ProcessLauncher, QtProcessLauncher, RunningProcess

__all__ = [
    "ConversionJob",
    "JobScheduler",
    "JobState",
    "KILL_GRACE_SECONDS",
]

logger = logging.getLogger(__name__)

KILL_GRACE_SECONDS: float = 1.0
"""Delay between the terminate request and the forced kill of a process."""


class JobState(enum.Enum):
    """Lifecycle of a :class:`ConversionJob`."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (JobState.QUEUED, JobState.RUNNING)


@dataclass(slots=True, eq=False)
class ConversionJob:
    """An external conversion producing *temp_path*, to be cached as *final_path*.

    ``commands`` holds one argument vector per pipeline stage; the standard
    output of each stage feeds the standard input of the next one.
    """

    commands: tuple[tuple[str, ...], ...]
    temp_path: Path
    final_path: Path
    on_finished: Callable[[bool], None] | None = None
    label: str = ""
    state: JobState = field(default=JobState.QUEUED, init=False)
    timed_out: bool = field(default=False, init=False)

    def describe(self) -> str:
        return self.label or " | ".join(" ".join(stage) for stage in self.commands)


@dataclass(slots=True, eq=False)
class _Worker:
    """Accounting for one occupied worker slot."""

    job: ConversionJob
    process: RunningProcess | None = None
    timeout_timer: QTimer | None = None
    kill_timer: QTimer | None = None
    done: bool = False


class JobScheduler(QObject):
    """Run :class:`ConversionJob` objects with at most *concurrency* in flight.

    Jobs are dispatched in submission order. Whenever a running job reaches a
    terminal state its worker slot is released, the job callback runs and the
    queue is pumped again. Completion order is whatever order the processes
    finish in.
    """

    jobStarted = Signal(object)
    jobFinished = Signal(object, bool)
    drained = Signal()

    def __init__(
        self,
        concurrency: int | None = None,
        timeout: float | None = None,
        *,
        launcher: ProcessLauncher | None = None,
        kill_grace: float = KILL_GRACE_SECONDS,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        limit = concurrency if concurrency is not None else (os.cpu_count() or 1)
        if limit < 1:
            raise ValueError("Concurrency limit must be at least 1")
        self._concurrency = int(limit)
        self._timeout = timeout if timeout and timeout > 0 else None
        self._kill_grace = kill_grace
        self._launcher: ProcessLauncher = launcher or QtProcessLauncher()
        self._queue: deque[ConversionJob] = deque()
        self._running: dict[ConversionJob, _Worker] = {}
        self._pumping = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def timeout(self) -> float | None:
        return self._timeout

    @property
    def running_count(self) -> int:
        return len(self._running)

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def idle(self) -> bool:
        return not self._running and not self._queue

    def pending_jobs(self) -> tuple[ConversionJob, ...]:
        return tuple(self._queue)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def submit(self, job: ConversionJob) -> None:
        """Queue *job* and dispatch it at once when a worker slot is free."""

        if job.state is not JobState.QUEUED:
            raise ValueError(f"Job {job.describe()} was already submitted")
        self._queue.append(job)
        logger.debug("Queued %s (%d pending)", job.describe(), len(self._queue))
        self._pump()

    def cancel_all(self) -> int:
        """Stop every running job and drop the queued ones.

        Dropped jobs never invoke their callbacks. Running jobs receive the
        terminate-then-kill sequence and report their real exit status once
        they are gone. Returns the number of dropped jobs.
        """

        dropped = list(self._queue)
        self._queue.clear()
        for job in dropped:
            job.state = JobState.CANCELLED
        for worker in list(self._running.values()):
            self._stop(worker)
        if dropped or self._running:
            logger.info(
                "Cancelled conversions: %d dropped, %d stopping",
                len(dropped),
                len(self._running),
            )
        return len(dropped)

    # ------------------------------------------------------------------
    # Scheduler loop
    # ------------------------------------------------------------------
    def _pump(self) -> None:
        if self._pumping:
            return
        self._pumping = True
        try:
            while self._queue and len(self._running) < self._concurrency:
                self._dispatch(self._queue.popleft())
        finally:
            self._pumping = False

    def _dispatch(self, job: ConversionJob) -> None:
        worker = _Worker(job)
        job.state = JobState.RUNNING
        self._running[job] = worker
        logger.debug("Starting %s", job.describe())
        self.jobStarted.emit(job)

        try:
            worker.process = self._launcher.launch(job.commands, partial(self._on_worker_free, worker))
        except (OSError, ValueError) as exc:
            logger.warning("Unable to launch %s: %s", job.describe(), exc)
            self._on_worker_free(worker, False)
            return

        if self._timeout is not None and not worker.done:
            worker.timeout_timer = self._single_shot(self._timeout, partial(self._on_timeout, worker))

    def _on_worker_free(self, worker: _Worker, success: bool) -> None:
        if worker.done:
            return
        worker.done = True
        self._stop_timers(worker)
        job = worker.job
        self._running.pop(job, None)

        if success:
            job.state = JobState.SUCCEEDED
        elif job.timed_out:
            job.state = JobState.TIMED_OUT
        else:
            job.state = JobState.FAILED
        if success:
            logger.debug("Finished %s", job.describe())
        else:
            logger.warning("Conversion %s: %s", job.state.value, job.describe())

        self.jobFinished.emit(job, success)
        if job.on_finished is not None:
            try:
                job.on_finished(success)
            except Exception:
                logger.exception("Completion handler for %s raised", job.describe())

        self._pump()
        if self.idle:
            self.drained.emit()

    # ------------------------------------------------------------------
    # Timeout handling
    # ------------------------------------------------------------------
    def _on_timeout(self, worker: _Worker) -> None:
        if worker.done:
            return
        worker.job.timed_out = True
        logger.warning("Conversion exceeded %.1fs: %s", self._timeout, worker.job.describe())
        self._stop(worker)

    def _stop(self, worker: _Worker) -> None:
        if worker.done or worker.process is None:
            return
        worker.process.terminate()
        if worker.kill_timer is None:
            worker.kill_timer = self._single_shot(self._kill_grace, partial(self._on_kill_deadline, worker))

    def _on_kill_deadline(self, worker: _Worker) -> None:
        if worker.done or worker.process is None:
            return
        if worker.process.is_running():
            logger.warning("Killing %s", worker.job.describe())
            worker.process.kill()

    def _single_shot(self, seconds: float, callback: Callable[[], None]) -> QTimer:
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.setInterval(max(0, int(seconds * 1000)))
        timer.timeout.connect(callback)
        timer.start()
        return timer

    def _stop_timers(self, worker: _Worker) -> None:
        for timer in (worker.timeout_timer, worker.kill_timer):
            if timer is not None:
                timer.stop()
                timer.deleteLater()
        worker.timeout_timer = None
        worker.kill_timer = None
