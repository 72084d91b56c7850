"""Main window hosting one tab per opened DICOM file."""

from __future__ import annotations

import logging
from pathlib import Path

from PySide6.QtWidgets import QMainWindow, QMessageBox, QTabWidget, QWidget

from ..config import ViewerConfig, get_config
from ..metadata import MetadataReadError
from .viewer import DicomView

__all__ = ["MainWindow"]

logger = logging.getLogger(__name__)

_NOTICE_TIMEOUT_MS = 6000


class MainWindow(QMainWindow):
    """Top-level window of the dcmview application."""

    def __init__(self, *, config: ViewerConfig | None = None, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._config = config or get_config()
        self._tabs = QTabWidget(self)
        self._tabs.setDocumentMode(True)
        self._tabs.setTabsClosable(True)
        self._tabs.tabCloseRequested.connect(self._close_tab)
        self.setCentralWidget(self._tabs)
        self.statusBar()
        self.resize(960, 1080)

    def open_path(self, path: str | Path) -> DicomView | None:
        """Open *path* in a new tab.

        Metadata read failures are shown to the user and leave no tab behind.
        :class:`~dcmview.tools.SetupError` propagates to the caller.
        """

        view = DicomView(path, config=self._config, parent=self._tabs)
        try:
            view.load()
        except MetadataReadError as exc:
            logger.error("%s", exc)
            view.deleteLater()
            QMessageBox.critical(self, "Unable to open file", str(exc))
            return None

        view.openRequested.connect(self.open_path)
        view.noticeRaised.connect(self._show_notice)
        index = self._tabs.addTab(view, view.path.name)
        self._tabs.setTabToolTip(index, str(view.path))
        self._tabs.setCurrentIndex(index)
        self.setWindowTitle(f"{view.path.name} - dcmview")
        return view

    def views(self) -> list[DicomView]:
        return [
            widget
            for widget in (self._tabs.widget(index) for index in range(self._tabs.count()))
            if isinstance(widget, DicomView)
        ]

    def closeEvent(self, event) -> None:  # noqa: N802 - Qt API
        for view in self.views():
            view.teardown()
        super().closeEvent(event)

    def _close_tab(self, index: int) -> None:
        widget = self._tabs.widget(index)
        self._tabs.removeTab(index)
        if isinstance(widget, DicomView):
            widget.teardown()
            widget.deleteLater()

    def _show_notice(self, message: str) -> None:
        self.statusBar().showMessage(message, _NOTICE_TIMEOUT_MS)
