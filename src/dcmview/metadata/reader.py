"""Synchronous metadata extraction through the external dump tool."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from ..config import ViewerConfig
from ..tools import metadata_command
from .filters import ExclusionRules
from .model import MetadataTree
from .parser import MetadataParseError, parse_metadata

__all__ = ["MetadataReadError", "read_metadata"]

logger = logging.getLogger(__name__)


class MetadataReadError(RuntimeError):
    """Raised when the metadata of a DICOM file cannot be read."""


def read_metadata(source: Path, config: ViewerConfig) -> MetadataTree:
    """Return the filtered metadata tree of *source*.

    The dump tool runs to completion before this function returns; nothing
    can be rendered without its output. Any failure is fatal for the load.
    """

    command = metadata_command(config.tools, source)
    logger.debug("Reading metadata: %s", " ".join(command))
    try:
        completed = subprocess.run(
            command,
            capture_output=True,
            check=True,
            stdin=subprocess.DEVNULL,
        )
    except FileNotFoundError as exc:
        raise MetadataReadError(f"Metadata tool {config.tools.metadata!r} is not installed") from exc
    except OSError as exc:
        raise MetadataReadError(f"Unable to run {config.tools.metadata!r} on {source}: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or b"").decode("utf-8", "replace").strip()
        message = f"Reading DICOM metadata of {source} failed with exit code {exc.returncode}"
        if detail:
            message = f"{message}: {detail}"
        raise MetadataReadError(message) from exc

    try:
        return parse_metadata(
            completed.stdout,
            rules=ExclusionRules.from_config(config),
            source=source,
        )
    except MetadataParseError as exc:
        raise MetadataReadError(str(exc)) from exc
