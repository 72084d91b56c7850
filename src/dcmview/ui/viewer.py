"""Text browser that shows the metadata and images of one DICOM file."""

from __future__ import annotations

import logging
from functools import partial
from pathlib import Path

from PySide6.QtCore import QEvent, QUrl, Signal, Slot
from PySide6.QtGui import QCloseEvent, QHelpEvent
from PySide6.QtWidgets import QTextBrowser, QToolTip, QWidget

from ..config import ViewerConfig, get_config
from ..metadata import read_metadata
from ..player import play
from ..render import PLAY_ANCHOR, ViewSession, full_key_at, open_session, render_tree
from ..tools import require_tools
from ..utils.paths import coerce_required_path

__all__ = ["DicomView"]

logger = logging.getLogger(__name__)


class DicomView(QTextBrowser):
    """Render a DICOM file or DICOMDIR and patch in images as they convert.

    :meth:`load` raises :class:`~dcmview.tools.SetupError` or
    :class:`~dcmview.metadata.MetadataReadError` synchronously; nothing is
    shown when either occurs.
    """

    openRequested = Signal(str)
    noticeRaised = Signal(str)
    loaded = Signal(str)

    def __init__(
        self,
        path: str | Path,
        *,
        config: ViewerConfig | None = None,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._path = coerce_required_path(path)
        self._config = config or get_config()
        self._session: ViewSession | None = None
        self._retired: list[ViewSession] = []

        self.setReadOnly(True)
        self.setOpenLinks(False)
        self.setOpenExternalLinks(False)
        self.setMouseTracking(True)
        self.anchorClicked.connect(self._on_anchor_clicked)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def path(self) -> Path:
        return self._path

    @property
    def session(self) -> ViewSession | None:
        return self._session

    def load(self) -> ViewSession:
        """Read the file and render it, replacing any previous rendering."""

        self.teardown()
        require_tools(self._config)
        tree = read_metadata(self._path, self._config)

        session = open_session(self._path, self._config, check_tools=False)
        self.setDocument(session.document)
        self._session = session
        render_tree(session, tree)
        self.loaded.emit(str(self._path))
        return session

    def reload(self) -> ViewSession:
        """Stop all outstanding conversions and rebuild the view."""

        return self.load()

    def teardown(self) -> None:
        """Stop every job of the current session and detach it."""

        session = self._session
        if session is None:
            return
        self._session = None
        session.close()
        if not session.scheduler.idle:
            # Keep the scheduler alive until its stopped processes exit.
            self._retired.append(session)
            session.scheduler.drained.connect(partial(self._forget, session))

    def full_key_at(self, position: int) -> str | None:
        """Return the full attribute name shown on the line at *position*."""

        if self._session is None:
            return None
        return full_key_at(self._session, position)

    # ------------------------------------------------------------------
    # Qt overrides
    # ------------------------------------------------------------------
    def closeEvent(self, event: QCloseEvent) -> None:  # noqa: N802 - Qt API
        self.teardown()
        super().closeEvent(event)

    def viewportEvent(self, event: QEvent) -> bool:  # noqa: N802 - Qt API
        if event.type() == QEvent.Type.ToolTip and isinstance(event, QHelpEvent):
            cursor = self.cursorForPosition(event.pos())
            text = cursor.charFormat().toolTip()
            if text:
                QToolTip.showText(event.globalPos(), text, self.viewport())
            else:
                QToolTip.hideText()
                event.ignore()
            return True
        return super().viewportEvent(event)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @Slot(QUrl)
    def _on_anchor_clicked(self, url: QUrl) -> None:
        if self._session is None:
            return
        if url.toString() == PLAY_ANCHOR:
            play(self._session, self._notify)
        elif url.isLocalFile():
            self.openRequested.emit(url.toLocalFile())
        else:
            logger.debug("Ignoring link %s", url.toString())

    def _notify(self, message: str) -> None:
        logger.info("%s", message)
        self.noticeRaised.emit(message)

    def _forget(self, session: ViewSession) -> None:
        if session in self._retired:
            self._retired.remove(session)
