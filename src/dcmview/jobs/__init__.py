"""Asynchronous conversion jobs executed as external processes."""

from __future__ import annotations

from .process import ProcessLauncher, QtProcessLauncher, RunningProcess
from .scheduler import KILL_GRACE_SECONDS, ConversionJob, JobScheduler, JobState

__all__ = [
    "ConversionJob",
    "JobScheduler",
    "JobState",
    "KILL_GRACE_SECONDS",
    "ProcessLauncher",
    "QtProcessLauncher",
    "RunningProcess",
]
