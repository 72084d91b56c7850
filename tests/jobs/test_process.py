"""Run real processes through the Qt launcher."""

from __future__ import annotations

import sys
import time
from pathlib import Path

import pytest

from dcmview.jobs import ConversionJob, JobScheduler, JobState, QtProcessLauncher

pytestmark = pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX signals required")


def _python(code: str) -> tuple[str, ...]:
    return (sys.executable, "-c", code)


def _run(scheduler: JobScheduler, job: ConversionJob, wait_until, timeout: float = 15.0) -> list[bool]:
    outcome: list[bool] = []
    job.on_finished = outcome.append
    scheduler.submit(job)
    wait_until(lambda: bool(outcome), timeout=timeout)
    return outcome


def test_successful_process(qapp, wait_until, tmp_path: Path) -> None:
    target = tmp_path / "out.tmp.png"
    code = f"open({str(target)!r}, 'wb').write(b'png')"
    job = ConversionJob((_python(code),), target, tmp_path / "out.png")

    outcome = _run(JobScheduler(1, None, launcher=QtProcessLauncher()), job, wait_until)

    assert outcome == [True]
    assert job.state is JobState.SUCCEEDED
    assert target.read_bytes() == b"png"


def test_non_zero_exit_fails(qapp, wait_until, tmp_path: Path) -> None:
    job = ConversionJob((_python("import sys; sys.exit(3)"),), tmp_path / "a", tmp_path / "b")

    outcome = _run(JobScheduler(1, None), job, wait_until)

    assert outcome == [False]
    assert job.state is JobState.FAILED


def test_missing_program_fails(qapp, wait_until, tmp_path: Path) -> None:
    job = ConversionJob((("dcmview-no-such-program", "x"),), tmp_path / "a", tmp_path / "b")

    outcome = _run(JobScheduler(1, None), job, wait_until)

    assert outcome == [False]
    assert job.state is JobState.FAILED


def test_pipeline_feeds_stdout_into_next_stage(qapp, wait_until, tmp_path: Path) -> None:
    target = tmp_path / "video.tmp.mp4"
    producer = _python("import sys; sys.stdout.write('frame-data')")
    consumer = _python(f"import sys; open({str(target)!r}, 'w').write(sys.stdin.read())")
    job = ConversionJob((producer, consumer), target, tmp_path / "video.mp4")

    outcome = _run(JobScheduler(1, None), job, wait_until)

    assert outcome == [True]
    assert target.read_text() == "frame-data"


def test_pipeline_fails_when_any_stage_fails(qapp, wait_until, tmp_path: Path) -> None:
    producer = _python("import sys; sys.stdout.write('x'); sys.exit(1)")
    consumer = _python("import sys; sys.stdin.read()")
    job = ConversionJob((producer, consumer), tmp_path / "a", tmp_path / "b")

    outcome = _run(JobScheduler(1, None), job, wait_until)

    assert outcome == [False]


def test_timeout_terminates_process(qapp, wait_until, tmp_path: Path) -> None:
    job = ConversionJob((_python("import time; time.sleep(30)"),), tmp_path / "a", tmp_path / "b")
    scheduler = JobScheduler(1, 0.5, kill_grace=5.0)

    started = time.monotonic()
    outcome = _run(scheduler, job, wait_until)
    elapsed = time.monotonic() - started

    assert outcome == [False]
    assert job.state is JobState.TIMED_OUT
    assert elapsed < 5.0


def test_timeout_kills_process_ignoring_terminate(qapp, wait_until, tmp_path: Path) -> None:
    code = (
        "import signal, sys, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(30)\n"
    )
    job = ConversionJob((_python(code),), tmp_path / "a", tmp_path / "b")
    scheduler = JobScheduler(1, 1.5, kill_grace=0.5)

    started = time.monotonic()
    outcome = _run(scheduler, job, wait_until)
    elapsed = time.monotonic() - started

    assert outcome == [False]
    assert job.state is JobState.TIMED_OUT
    assert 1.9 <= elapsed < 10.0
