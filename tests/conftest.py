"""Pytest configuration helpers for dcmview tests."""

from __future__ import annotations

import os
import sys
import time
from collections.abc import Callable
from pathlib import Path

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

try:  # pragma: no cover - dependency availability varies between environments
    from PySide6.QtCore import QCoreApplication, QEventLoop
    from PySide6.QtWidgets import QApplication
except ImportError:  # pragma: no cover - used when Qt is unavailable
    QApplication = None  # type: ignore[assignment]

# Ensure the source directory is importable without requiring an editable install.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


@pytest.fixture(autouse=True)
def reset_viewer_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Ensure each test runs with default configuration and a private cache."""

    from dcmview.config import CACHE_DIR_ENV_VAR, CONCURRENCY_ENV_VAR, PLAYER_ENV_VAR, TIMEOUT_ENV_VAR, configure

    for name in (CONCURRENCY_ENV_VAR, PLAYER_ENV_VAR, TIMEOUT_ENV_VAR):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv(CACHE_DIR_ENV_VAR, str(tmp_path / "cache"))
    configure()
    yield
    for name in (CACHE_DIR_ENV_VAR, CONCURRENCY_ENV_VAR, PLAYER_ENV_VAR, TIMEOUT_ENV_VAR):
        monkeypatch.delenv(name, raising=False)
    configure()


@pytest.fixture(scope="session")
def qapp():
    """Provide a ``QApplication`` instance for Qt-driven tests."""

    if QApplication is None:
        pytest.skip("PySide6 is unavailable in this environment")

    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    yield app


@pytest.fixture()
def wait_until(qapp) -> Callable[..., None]:
    """Return a helper that spins the Qt event loop until a predicate holds."""

    def _wait(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("Timed out waiting for the Qt event loop")
            QCoreApplication.processEvents(QEventLoop.ProcessEventsFlag.AllEvents, 50)
            time.sleep(0.005)

    return _wait
