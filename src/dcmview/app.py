"""Application bootstrap for the dcmview desktop shell."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from typing import Final

from PySide6.QtWidgets import QApplication

from . import __version__
from .config import configure
from .tools import SetupError
from .ui import MainWindow

WINDOW_TITLE: Final[str] = "dcmview"
"""Default title applied to the main Qt window."""

__all__ = ["MainWindow", "WINDOW_TITLE", "build_parser", "main"]

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dcmview", description="Browse DICOM files and DICOMDIR listings.")
    parser.add_argument("paths", nargs="+", help="DICOM files or DICOMDIR files to open")
    parser.add_argument("--cache-dir", help="directory for converted images and videos")
    parser.add_argument("-j", "--jobs", type=int, help="number of concurrent conversions")
    parser.add_argument("--timeout", type=float, help="seconds before a conversion is stopped (0 disables)")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Launch the dcmview Qt application."""

    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = configure(cache_root=args.cache_dir, concurrency=args.jobs, timeout=args.timeout)

    app = QApplication.instance()
    owns_application = False
    if app is None:
        app = QApplication(sys.argv[:1])
        owns_application = True

    window = MainWindow(config=config)
    window.setWindowTitle(WINDOW_TITLE)
    try:
        opened = [view for view in (window.open_path(path) for path in args.paths) if view is not None]
    except SetupError as exc:
        logger.error("%s", exc)
        print(f"dcmview: {exc}", file=sys.stderr)
        return 2

    if not opened:
        return 1

    window.show()
    if owns_application:
        logger.info("Starting Qt event loop")
        return app.exec()
    return 0
