"""Launch conversion pipelines as external processes on the Qt event loop."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from functools import partial
from typing import Protocol

from PySide6.QtCore import QObject, QProcess

__all__ = [
    "ExitCallback",
    "ProcessLauncher",
    "QtProcessLauncher",
    "RunningProcess",
]

logger = logging.getLogger(__name__)

ExitCallback = Callable[[bool], None]
"""Called once with ``True`` when every stage of a pipeline exited cleanly."""


class RunningProcess(Protocol):
    """Handle to a launched conversion used for timeouts and cancellation."""

    def terminate(self) -> None: ...

    def kill(self) -> None: ...

    def is_running(self) -> bool: ...


class ProcessLauncher(Protocol):
    """Start a pipeline of commands and report its outcome asynchronously."""

    def launch(
        self,
        commands: Sequence[Sequence[str]],
        on_exit: ExitCallback,
    ) -> RunningProcess: ...


class QtProcessLauncher:
    """Run pipelines with :class:`~PySide6.QtCore.QProcess`."""

    def launch(
        self,
        commands: Sequence[Sequence[str]],
        on_exit: ExitCallback,
    ) -> RunningProcess:
        pipeline = _ProcessPipeline(commands, on_exit)
        pipeline.start()
        return pipeline


class _ProcessPipeline(QObject):
    """One or more processes whose standard streams are chained together.

    Standard input of the first stage and the output streams of the last
    stage are bound to the null device; stderr of every stage is discarded.
    """

    def __init__(self, commands: Sequence[Sequence[str]], on_exit: ExitCallback) -> None:
        super().__init__()
        if not commands or any(not command for command in commands):
            raise ValueError("A conversion pipeline needs at least one non-empty command")

        self._on_exit = on_exit
        self._finished = [False] * len(commands)
        self._clean = True
        self._reported = False
        self._processes: list[QProcess] = []

        for index, command in enumerate(commands):
            process = QProcess(self)
            process.setProgram(str(command[0]))
            process.setArguments([str(argument) for argument in command[1:]])
            process.setStandardErrorFile(QProcess.nullDevice())
            process.finished.connect(partial(self._on_finished, index))
            process.errorOccurred.connect(partial(self._on_error, index))
            self._processes.append(process)

        for upstream, downstream in zip(self._processes, self._processes[1:]):
            upstream.setStandardOutputProcess(downstream)
        self._processes[0].setStandardInputFile(QProcess.nullDevice())
        self._processes[-1].setStandardOutputFile(QProcess.nullDevice())

    def start(self) -> None:
        for index, process in enumerate(self._processes):
            if not self._clean:
                # An earlier stage failed to start; later stages never run.
                self._stage_done(index, False)
                continue
            process.start()

    # ------------------------------------------------------------------
    # RunningProcess
    # ------------------------------------------------------------------
    def terminate(self) -> None:
        for process in self._processes:
            if process.state() != QProcess.ProcessState.NotRunning:
                process.terminate()

    def kill(self) -> None:
        for process in self._processes:
            if process.state() != QProcess.ProcessState.NotRunning:
                process.kill()

    def is_running(self) -> bool:
        return any(process.state() != QProcess.ProcessState.NotRunning for process in self._processes)

    # ------------------------------------------------------------------
    # Signal handlers
    # ------------------------------------------------------------------
    def _on_finished(self, index: int, exit_code: int, exit_status: QProcess.ExitStatus) -> None:
        clean = exit_status == QProcess.ExitStatus.NormalExit and exit_code == 0
        if not clean:
            logger.debug(
                "%s exited with code %s (%s)",
                self._processes[index].program(),
                exit_code,
                exit_status.name,
            )
        self._stage_done(index, clean)

    def _on_error(self, index: int, error: QProcess.ProcessError) -> None:
        if error != QProcess.ProcessError.FailedToStart:
            # A finished signal follows every other error.
            return
        logger.warning("Unable to start %s", self._processes[index].program())
        self._stage_done(index, False)
        self.kill()

    def _stage_done(self, index: int, clean: bool) -> None:
        if self._finished[index]:
            return
        self._finished[index] = True
        self._clean = self._clean and clean
        if all(self._finished) and not self._reported:
            self._reported = True
            self._on_exit(self._clean)
            self.deleteLater()
