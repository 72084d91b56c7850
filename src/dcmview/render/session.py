"""Per-view state shared by the render binder and the viewer."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path

from PySide6.QtGui import QTextDocument

from ..cache import ArtifactStore, CacheStore
from ..config import ViewerConfig
from ..jobs import ConversionJob, JobScheduler
from ..metadata import MetadataTree
from ..tools import require_tools

__all__ = ["RenderSlot", "SlotState", "ViewSession", "open_session"]

logger = logging.getLogger(__name__)


class SlotState(enum.Enum):
    PLACEHOLDER = "placeholder"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(slots=True, eq=False)
class RenderSlot:
    """Document position where an artifact is shown once it exists.

    A slot is bound to a placeholder or to an artifact when it is created and
    rebound at most once, when its conversion job completes.
    """

    position: int
    identity: str
    source: Path
    size: tuple[int, int]
    anchor: str | None = None
    state: SlotState = SlotState.PLACEHOLDER
    artifact: Path | None = None
    job: ConversionJob | None = None

    def resolve(self, artifact: Path) -> None:
        if self.state is not SlotState.PLACEHOLDER:
            raise RuntimeError(f"Render slot for {self.identity} was already rebound")
        self.state = SlotState.RESOLVED
        self.artifact = artifact

    def fail(self) -> None:
        if self.state is SlotState.PLACEHOLDER:
            self.state = SlotState.FAILED


@dataclass(slots=True, eq=False)
class ViewSession:
    """Everything one open view owns: its file, document, cache and jobs."""

    source: Path
    config: ViewerConfig
    document: QTextDocument
    cache: ArtifactStore
    scheduler: JobScheduler
    tree: MetadataTree | None = None
    slots: list[RenderSlot] = field(default_factory=list)
    full_keys: dict[int, str] = field(default_factory=dict)
    waiting: dict[str, list[RenderSlot]] = field(default_factory=dict)
    video_job: ConversionJob | None = None
    closed: bool = False

    def close(self) -> None:
        """Stop outstanding conversions; later completions no longer patch."""

        if self.closed:
            return
        self.closed = True
        self.scheduler.cancel_all()
        logger.debug("Closed view session for %s", self.source)


def open_session(
    source: Path,
    config: ViewerConfig,
    *,
    scheduler: JobScheduler | None = None,
    cache: ArtifactStore | None = None,
    document: QTextDocument | None = None,
    check_tools: bool = True,
) -> ViewSession:
    """Create a :class:`ViewSession` after verifying the external tools.

    :class:`~dcmview.tools.SetupError` is raised before anything is created
    when a required tool is missing.
    """

    if check_tools:
        require_tools(config)
    return ViewSession(
        source=source,
        config=config,
        document=document if document is not None else QTextDocument(),
        cache=cache if cache is not None else CacheStore(config.cache_root),
        scheduler=scheduler
        if scheduler is not None
        else JobScheduler(config.concurrency, config.timeout),
    )
