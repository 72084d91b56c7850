"""Configuration helpers for the dcmview application."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Final

from .utils.paths import coerce_required_path

__all__ = [
    "CACHE_DIR_ENV_VAR",
    "CONCURRENCY_ENV_VAR",
    "DEFAULT_CACHE_ROOT",
    "DEFAULT_EXCLUDED_NAMES",
    "DEFAULT_EXCLUDED_PATTERNS",
    "DEFAULT_PLAYER_COMMAND",
    "PLAYER_ENV_VAR",
    "TIMEOUT_ENV_VAR",
    "ToolPaths",
    "ViewerConfig",
    "configure",
    "get_config",
]

CACHE_DIR_ENV_VAR: Final[str] = "DCMVIEW_CACHE_DIR"
"""Environment variable that overrides the artifact cache location."""

CONCURRENCY_ENV_VAR: Final[str] = "DCMVIEW_CONCURRENCY"
"""Environment variable that overrides the conversion worker pool size."""

TIMEOUT_ENV_VAR: Final[str] = "DCMVIEW_TIMEOUT"
"""Environment variable holding the conversion timeout in seconds (``0`` disables it)."""

PLAYER_ENV_VAR: Final[str] = "DCMVIEW_PLAYER"
"""Environment variable that overrides the player command template."""

DEFAULT_CACHE_ROOT: Final[Path] = Path.home() / ".cache" / "dcmview"
"""Default filesystem path where converted artifacts are cached."""

DEFAULT_TIMEOUT: Final[float] = 10.0
"""Seconds a conversion may run before it is terminated."""

DEFAULT_EXCLUDED_NAMES: Final[frozenset[str]] = frozenset(
    {
        "FileMetaInformationGroupLength",
        "FileMetaInformationVersion",
        "FileSetConsistencyFlag",
        "RecordInUseFlag",
        "SpecificCharacterSet",
    }
)
"""Attribute names that are never shown."""

DEFAULT_EXCLUDED_PATTERNS: Final[tuple[str, ...]] = (
    r"Offset",
    r"UID\Z",
    r"\APrivateCreator",
    r"GroupLength",
    r" ",
)
"""Regular expressions matched against attribute names that are never shown."""

DEFAULT_PLAYER_COMMAND: Final[str] = "mpv --loop --osc=no --fps={rate} {file}"
"""Template used to launch the external video player."""


@dataclass(frozen=True, slots=True)
class ToolPaths:
    """Executables invoked by the conversion pipeline."""

    metadata: str = "dcm2xml"
    still_image: str = "dcmj2pnm"
    frame_dump: str = "dcm2pnm"
    video_encoder: str = "ffmpeg"

    def required(self) -> tuple[str, ...]:
        """Return the tools that must be present for any view to open."""

        return (self.metadata, self.still_image)


@dataclass(frozen=True, slots=True)
class ViewerConfig:
    """Runtime configuration for the dcmview application."""

    cache_root: Path
    concurrency: int = field(default_factory=lambda: os.cpu_count() or 1)
    timeout: float | None = DEFAULT_TIMEOUT
    field_width: int = 25
    thumbnail_height: int = 200
    image_height: int = 640
    default_frame_rate: float = 25.0
    excluded_names: frozenset[str] = DEFAULT_EXCLUDED_NAMES
    excluded_patterns: tuple[str, ...] = DEFAULT_EXCLUDED_PATTERNS
    player_command: str = DEFAULT_PLAYER_COMMAND
    tools: ToolPaths = field(default_factory=ToolPaths)

    def __post_init__(self) -> None:
        normalized = coerce_required_path(self.cache_root)
        object.__setattr__(self, "cache_root", normalized)
        if self.concurrency < 1:
            raise ValueError("Conversion concurrency must be at least 1")
        if self.timeout is not None and self.timeout <= 0:
            object.__setattr__(self, "timeout", None)
        if self.field_width < 1:
            raise ValueError("Field width must be positive")
        object.__setattr__(self, "excluded_names", frozenset(self.excluded_names))
        object.__setattr__(self, "excluded_patterns", tuple(self.excluded_patterns))


_CONFIG: ViewerConfig | None = None


def get_config() -> ViewerConfig:
    """Return the cached :class:`ViewerConfig` instance."""

    global _CONFIG
    if _CONFIG is None:
        _CONFIG = _build_config()
    return _CONFIG


def configure(**overrides: Any) -> ViewerConfig:
    """Rebuild the global configuration with optional overrides.

    Keyword arguments whose value is ``None`` are ignored, so
    ``configure(cache_root=None)`` restores the environment-derived defaults.
    """

    global _CONFIG
    _CONFIG = _build_config(**overrides)
    return _CONFIG


def _build_config(**overrides: Any) -> ViewerConfig:
    values: dict[str, Any] = {}

    env_cache = os.environ.get(CACHE_DIR_ENV_VAR)
    if env_cache:
        values["cache_root"] = coerce_required_path(
            env_cache,
            empty_error="Cache path overrides cannot be empty",
        )

    env_concurrency = os.environ.get(CONCURRENCY_ENV_VAR)
    if env_concurrency:
        values["concurrency"] = _parse_int(env_concurrency, CONCURRENCY_ENV_VAR)

    env_timeout = os.environ.get(TIMEOUT_ENV_VAR)
    if env_timeout:
        values["timeout"] = _parse_float(env_timeout, TIMEOUT_ENV_VAR)

    env_player = os.environ.get(PLAYER_ENV_VAR)
    if env_player and env_player.strip():
        values["player_command"] = env_player.strip()

    values.update({key: value for key, value in overrides.items() if value is not None})

    cache_root = values.pop("cache_root", DEFAULT_CACHE_ROOT)
    config = ViewerConfig(cache_root=cache_root)
    return replace(config, **values) if values else config


def _parse_int(text: str, name: str) -> int:
    try:
        return int(text.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {text!r}") from exc


def _parse_float(text: str, name: str) -> float:
    try:
        return float(text.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {text!r}") from exc
