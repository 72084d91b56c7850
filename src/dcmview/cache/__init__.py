"""On-disk cache for converted artifacts.

Artifacts are keyed by a digest of a caller-supplied identity string,
normally the source path optionally qualified with a variant prefix such as
``"large:"``. Conversions write to a sibling temporary file that is renamed
into place, so a final path that exists always holds a complete artifact.
"""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

__all__ = [
    "ArtifactStore",
    "CacheCommitError",
    "CacheEntry",
    "CacheStore",
    "identity_digest",
]

logger = logging.getLogger(__name__)


class CacheCommitError(RuntimeError):
    """Raised when a converted artifact cannot be moved into the cache."""


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Locations of one cached artifact."""

    identity: str
    final_path: Path
    temp_path: Path
    exists: bool


class ArtifactStore(Protocol):
    """Interface the render binder uses to reach the artifact cache."""

    def lookup(self, identity: str, ext: str) -> CacheEntry: ...

    def commit(self, entry: CacheEntry) -> Path: ...

    def discard(self, entry: CacheEntry) -> None: ...


def identity_digest(identity: str) -> str:
    """Return the file-name stem used for *identity*."""

    return hashlib.blake2s(identity.encode("utf-8"), digest_size=16).hexdigest()


class CacheStore:
    """Persist converted artifacts under a cache root directory."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def lookup(self, identity: str, ext: str) -> CacheEntry:
        """Return the cache entry for *identity* creating the root on demand."""

        self._root.mkdir(parents=True, exist_ok=True)
        suffix = ext.lstrip(".")
        stem = identity_digest(identity)
        final_path = self._root / f"{stem}.{suffix}"
        temp_path = self._root / f"{stem}.tmp.{suffix}"
        return CacheEntry(identity, final_path, temp_path, final_path.exists())

    def commit(self, entry: CacheEntry) -> Path:
        """Atomically move the temporary artifact of *entry* into place."""

        try:
            os.replace(entry.temp_path, entry.final_path)
        except OSError as exc:
            raise CacheCommitError(
                f"Unable to commit {entry.temp_path.name} for {entry.identity}: {exc}"
            ) from exc
        logger.debug("Cached %s as %s", entry.identity, entry.final_path.name)
        return entry.final_path

    def discard(self, entry: CacheEntry) -> None:
        """Remove the temporary artifact of *entry* if one was written."""

        try:
            entry.temp_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Unable to remove %s: %s", entry.temp_path, exc)
