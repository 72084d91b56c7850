"""Tests for the bounded FIFO conversion scheduler."""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from dcmview.jobs import ConversionJob, JobScheduler, JobState


class FakeProcess:
    """Stand-in for a launched pipeline whose exit is driven by the test."""

    def __init__(self, commands, on_exit, *, exits_on_terminate: bool = False) -> None:
        self.commands = commands
        self._on_exit = on_exit
        self._exits_on_terminate = exits_on_terminate
        self.running = True
        self.terminated_at: float | None = None
        self.killed_at: float | None = None

    def finish(self, success: bool) -> None:
        self.running = False
        self._on_exit(success)

    def terminate(self) -> None:
        if self.terminated_at is None:
            self.terminated_at = time.monotonic()
        if self._exits_on_terminate and self.running:
            self.finish(False)

    def kill(self) -> None:
        self.killed_at = time.monotonic()
        if self.running:
            self.finish(False)

    def is_running(self) -> bool:
        return self.running


class FakeLauncher:
    def __init__(self, *, exits_on_terminate: bool = False, fail_names: tuple[str, ...] = ()) -> None:
        self.processes: list[FakeProcess] = []
        self.started_at: list[float] = []
        self._exits_on_terminate = exits_on_terminate
        self._fail_names = fail_names

    def launch(self, commands, on_exit) -> FakeProcess:
        if commands[0][0] in self._fail_names:
            raise OSError(f"cannot start {commands[0][0]}")
        process = FakeProcess(commands, on_exit, exits_on_terminate=self._exits_on_terminate)
        self.processes.append(process)
        self.started_at.append(time.monotonic())
        return process

    def names(self) -> list[str]:
        return [process.commands[0][-1] for process in self.processes]


def _job(name: str, results: list[tuple[str, bool]] | None = None, *, program: str = "convert") -> ConversionJob:
    def _record(success: bool) -> None:
        if results is not None:
            results.append((name, success))

    return ConversionJob(
        commands=((program, name),),
        temp_path=Path(f"/tmp/{name}.tmp.png"),
        final_path=Path(f"/tmp/{name}.png"),
        on_finished=_record,
        label=name,
    )


def test_pool_of_two_runs_five_jobs_in_submission_order(qapp) -> None:
    launcher = FakeLauncher()
    scheduler = JobScheduler(2, None, launcher=launcher)
    results: list[tuple[str, bool]] = []
    jobs = [_job(f"job{index}", results) for index in range(5)]

    for job in jobs:
        scheduler.submit(job)

    assert launcher.names() == ["job0", "job1"]
    assert scheduler.running_count == 2
    assert scheduler.pending_jobs() == tuple(jobs[2:])

    # Completion order differs from dispatch order.
    launcher.processes[1].finish(True)
    assert launcher.names() == ["job0", "job1", "job2"]
    launcher.processes[0].finish(True)
    assert launcher.names() == ["job0", "job1", "job2", "job3"]
    assert scheduler.running_count == 2

    launcher.processes[3].finish(True)
    launcher.processes[2].finish(True)
    launcher.processes[4].finish(True)

    assert launcher.names() == [f"job{index}" for index in range(5)]
    assert [name for name, _ in results] == ["job1", "job0", "job3", "job2", "job4"]
    assert all(job.state is JobState.SUCCEEDED for job in jobs)
    assert scheduler.idle


def test_running_count_never_exceeds_limit(qapp) -> None:
    launcher = FakeLauncher()
    scheduler = JobScheduler(3, None, launcher=launcher)
    peak = 0

    def _observe(_job: ConversionJob) -> None:
        nonlocal peak
        peak = max(peak, scheduler.running_count)

    scheduler.jobStarted.connect(_observe)
    for index in range(10):
        scheduler.submit(_job(f"job{index}"))
    while launcher.processes and any(process.running for process in launcher.processes):
        next(process for process in launcher.processes if process.running).finish(True)

    assert peak == 3
    assert len(launcher.processes) == 10


def test_failure_is_isolated(qapp) -> None:
    launcher = FakeLauncher()
    scheduler = JobScheduler(1, None, launcher=launcher)
    results: list[tuple[str, bool]] = []
    first, second = _job("bad", results), _job("good", results)

    scheduler.submit(first)
    scheduler.submit(second)
    launcher.processes[0].finish(False)
    launcher.processes[1].finish(True)

    assert results == [("bad", False), ("good", True)]
    assert first.state is JobState.FAILED
    assert second.state is JobState.SUCCEEDED


def test_launch_error_counts_as_failure(qapp) -> None:
    launcher = FakeLauncher(fail_names=("missing",))
    scheduler = JobScheduler(1, None, launcher=launcher)
    results: list[tuple[str, bool]] = []

    scheduler.submit(_job("broken", results, program="missing"))
    scheduler.submit(_job("next", results))

    assert results == [("broken", False)]
    assert launcher.names() == ["next"]
    assert scheduler.running_count == 1


def test_callback_exception_does_not_stall_queue(qapp) -> None:
    launcher = FakeLauncher()
    scheduler = JobScheduler(1, None, launcher=launcher)

    def _explode(success: bool) -> None:
        raise RuntimeError("handler failure")

    failing = ConversionJob(
        commands=(("convert", "a"),),
        temp_path=Path("/tmp/a.tmp.png"),
        final_path=Path("/tmp/a.png"),
        on_finished=_explode,
    )
    scheduler.submit(failing)
    scheduler.submit(_job("b"))

    launcher.processes[0].finish(True)

    assert failing.state is JobState.SUCCEEDED
    assert launcher.names() == ["a", "b"]


def test_submit_rejects_resubmission(qapp) -> None:
    scheduler = JobScheduler(1, None, launcher=FakeLauncher())
    job = _job("once")
    scheduler.submit(job)

    with pytest.raises(ValueError):
        scheduler.submit(job)


def test_cancel_all_drops_queue_without_callbacks(qapp) -> None:
    launcher = FakeLauncher(exits_on_terminate=True)
    scheduler = JobScheduler(1, None, launcher=launcher)
    results: list[tuple[str, bool]] = []
    jobs = [_job(f"job{index}", results) for index in range(3)]
    for job in jobs:
        scheduler.submit(job)

    dropped = scheduler.cancel_all()

    assert dropped == 2
    assert launcher.processes[0].terminated_at is not None
    assert results == [("job0", False)]
    assert jobs[0].state is JobState.FAILED
    assert [job.state for job in jobs[1:]] == [JobState.CANCELLED, JobState.CANCELLED]
    assert launcher.names() == ["job0"]
    assert scheduler.idle


def test_drained_emitted_when_idle(qapp) -> None:
    launcher = FakeLauncher()
    scheduler = JobScheduler(2, None, launcher=launcher)
    drained: list[bool] = []
    scheduler.drained.connect(lambda: drained.append(True))

    scheduler.submit(_job("a"))
    scheduler.submit(_job("b"))
    launcher.processes[0].finish(True)
    assert drained == []
    launcher.processes[1].finish(True)
    assert drained == [True]


def test_timeout_terminates_then_kills(qapp, wait_until) -> None:
    launcher = FakeLauncher()
    scheduler = JobScheduler(1, 0.1, launcher=launcher, kill_grace=0.3)
    results: list[tuple[str, bool]] = []
    job = _job("stuck", results)

    scheduler.submit(job)
    wait_until(lambda: job.state.is_terminal, timeout=5.0)

    process = launcher.processes[0]
    assert process.terminated_at is not None
    assert process.killed_at is not None
    assert process.terminated_at - launcher.started_at[0] >= 0.09
    assert process.killed_at - process.terminated_at >= 0.25
    assert job.state is JobState.TIMED_OUT
    assert results == [("stuck", False)]


def test_timeout_without_kill_when_process_exits(qapp, wait_until) -> None:
    launcher = FakeLauncher(exits_on_terminate=True)
    scheduler = JobScheduler(1, 0.05, launcher=launcher, kill_grace=0.2)
    job = _job("slow")

    scheduler.submit(job)
    wait_until(lambda: job.state.is_terminal, timeout=5.0)

    assert launcher.processes[0].killed_at is None
    assert job.state is JobState.TIMED_OUT


def test_job_finishing_in_time_is_not_stopped(qapp, wait_until) -> None:
    launcher = FakeLauncher()
    scheduler = JobScheduler(1, 0.05, launcher=launcher, kill_grace=0.05)
    job = _job("quick")

    scheduler.submit(job)
    launcher.processes[0].finish(True)
    deadline = time.monotonic() + 0.2
    wait_until(lambda: time.monotonic() > deadline)

    assert launcher.processes[0].terminated_at is None
    assert job.state is JobState.SUCCEEDED
