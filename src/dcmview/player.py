"""Playback of multi-frame DICOM files through an external video player."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from functools import partial
from pathlib import Path

from .cache import CacheCommitError, CacheEntry
from .config import ViewerConfig
from .jobs import ConversionJob
from .render.session import ViewSession
from .tools import frame_pipeline_commands, player_arguments

__all__ = ["PlayerLaunchError", "launch_player", "play"]

logger = logging.getLogger(__name__)

NoticeCallback = Callable[[str], None]


class PlayerLaunchError(RuntimeError):
    """Raised when the external player cannot be started."""


def launch_player(config: ViewerConfig, artifact: Path, *, frame_rate: float) -> None:
    """Start the configured player on *artifact* without waiting for it."""

    try:
        arguments = player_arguments(config.player_command, artifact, frame_rate=frame_rate)
    except (ValueError, KeyError) as exc:
        raise PlayerLaunchError(f"Invalid player command {config.player_command!r}: {exc}") from exc

    logger.info("Launching player: %s", " ".join(arguments))
    try:
        subprocess.Popen(
            arguments,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as exc:
        raise PlayerLaunchError(f"Unable to start {arguments[0]}: {exc}") from exc


def play(session: ViewSession, notify: NoticeCallback) -> ConversionJob | None:
    """Play the multi-frame file of *session*, converting it first if needed.

    Failures are reported through *notify* and never raise. Returns the
    conversion job when one had to be submitted (or is still pending).
    """

    tree = session.tree
    if tree is None or tree.frame_count <= 1:
        notify("This file has no frames to play.")
        return None
    if session.video_job is not None:
        return session.video_job

    config = session.config
    rate = tree.frame_rate(config.default_frame_rate)
    entry = session.cache.lookup(f"video:{session.source}", "mp4")
    if entry.exists:
        _launch(config, entry.final_path, rate, notify)
        return None

    commands = frame_pipeline_commands(config.tools, session.source, entry.temp_path, frame_rate=rate)
    job = ConversionJob(
        commands=commands,
        temp_path=entry.temp_path,
        final_path=entry.final_path,
        label=f"mp4 {session.source.name}",
    )
    job.on_finished = partial(_on_video_finished, session, entry, rate, notify)
    session.video_job = job
    session.scheduler.submit(job)
    notify(f"Converting {tree.frame_count} frames for playback...")
    return job


def _on_video_finished(
    session: ViewSession,
    entry: CacheEntry,
    rate: float,
    notify: NoticeCallback,
    success: bool,
) -> None:
    session.video_job = None
    if not success:
        session.cache.discard(entry)
        if not session.closed:
            notify(f"Video conversion of {session.source.name} failed.")
        return
    try:
        artifact = session.cache.commit(entry)
    except CacheCommitError as exc:
        session.cache.discard(entry)
        notify(str(exc))
        return
    if not session.closed:
        _launch(session.config, artifact, rate, notify)


def _launch(config: ViewerConfig, artifact: Path, rate: float, notify: NoticeCallback) -> None:
    try:
        launch_player(config, artifact, frame_rate=rate)
    except PlayerLaunchError as exc:
        logger.warning("%s", exc)
        notify(str(exc))
