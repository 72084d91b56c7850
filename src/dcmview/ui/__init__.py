"""Qt widgets for the dcmview shell."""

from __future__ import annotations

from .main_window import MainWindow
from .viewer import DicomView

__all__ = ["DicomView", "MainWindow"]
