"""Command lines for the external DICOM and video tools."""

from __future__ import annotations

import logging
import shlex
import shutil
from pathlib import Path

from .config import ToolPaths, ViewerConfig

__all__ = [
    "SetupError",
    "frame_pipeline_commands",
    "metadata_command",
    "player_arguments",
    "require_tools",
    "still_image_command",
]

logger = logging.getLogger(__name__)


class SetupError(RuntimeError):
    """Raised when a required external tool or platform feature is missing."""


def require_tools(config: ViewerConfig) -> None:
    """Raise :class:`SetupError` unless every required capability is present."""

    missing = [tool for tool in config.tools.required() if shutil.which(tool) is None]
    if missing:
        raise SetupError(f"Required DICOM tools not found on PATH: {', '.join(missing)}")
    logger.debug("External tools available: %s", ", ".join(config.tools.required()))

    from PySide6.QtGui import QImageReader

    formats = {bytes(fmt.data()).decode("ascii", "ignore").lower() for fmt in QImageReader.supportedImageFormats()}
    if "png" not in formats:
        raise SetupError("The Qt installation cannot display PNG images")


def metadata_command(tools: ToolPaths, source: Path) -> list[str]:
    return [
        tools.metadata,
        "--quiet",
        "--charset-assume",
        "latin-1",
        "--convert-to-utf8",
        str(source),
    ]


def still_image_command(
    tools: ToolPaths,
    source: Path,
    output: Path,
    *,
    height: int | None = None,
) -> tuple[str, ...]:
    """Return the converter invocation writing a PNG of *source* to *output*."""

    command = [tools.still_image, "--write-png"]
    if height is not None:
        command.extend(["--scale-y-size", str(int(height))])
    command.extend([str(source), str(output)])
    return tuple(command)


def frame_pipeline_commands(
    tools: ToolPaths,
    source: Path,
    output: Path,
    *,
    frame_rate: float,
) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Return the two piped commands that encode all frames of *source* as MP4.

    The first command dumps every frame as a bitmap on standard output, the
    second reads that stream and encodes it.
    """

    dump = (tools.frame_dump, "--all-frames", "--write-bmp", str(source))
    encode = (
        tools.video_encoder,
        "-loglevel",
        "error",
        "-y",
        "-framerate",
        _format_rate(frame_rate),
        "-f",
        "image2pipe",
        "-i",
        "-",
        "-pix_fmt",
        "yuv420p",
        str(output),
    )
    return dump, encode


def player_arguments(template: str, artifact: Path, *, frame_rate: float) -> list[str]:
    """Expand the player *template* into an argument vector.

    The template is split like a shell command line before substitution so
    paths containing spaces stay a single argument.
    """

    tokens = shlex.split(template)
    if not tokens:
        raise ValueError("Player command template is empty")
    substitutions = {"file": str(artifact), "rate": _format_rate(frame_rate)}
    arguments = [token.format_map(substitutions) for token in tokens]
    if "{file}" not in template:
        arguments.append(str(artifact))
    return arguments


def _format_rate(rate: float) -> str:
    text = f"{rate:.3f}".rstrip("0").rstrip(".")
    return text or "1"
