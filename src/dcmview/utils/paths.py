"""Utilities for coercing user-provided values into :class:`~pathlib.Path` objects."""

from __future__ import annotations

from os import PathLike
from pathlib import Path

__all__ = ["coerce_required_path", "resolve_file_id"]


def _normalize_path(path: Path) -> Path:
    return path.expanduser().resolve()


def coerce_required_path(
    value: str | Path | PathLike[str],
    *,
    empty_error: str | None = None,
) -> Path:
    """Return *value* coerced into an absolute :class:`~pathlib.Path`.

    Parameters
    ----------
    value:
        Path-like object that must resolve to a non-empty filesystem location.
    empty_error:
        Optional custom error message raised when *value* cannot be coerced
        because it resolves to an empty string.
    """

    if isinstance(value, Path):
        candidate = value
    else:
        text = str(value).strip()
        if not text:
            msg = empty_error or "Path value cannot be empty."
            raise ValueError(msg)
        candidate = Path(text)

    return _normalize_path(candidate)


def resolve_file_id(base_dir: Path, file_id: str) -> Path | None:
    """Return the file referenced by a DICOMDIR ``ReferencedFileID`` value.

    File identifiers are stored as backslash separated components relative to
    the directory holding the DICOMDIR, e.g. ``IMAGES\\IM0001``.
    """

    parts = [part.strip() for part in file_id.replace("/", "\\").split("\\")]
    parts = [part for part in parts if part]
    if not parts:
        return None
    return base_dir.joinpath(*parts)
