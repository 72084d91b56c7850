"""Top-level package for the dcmview application.

dcmview shows DICOM metadata trees and images, converting pixel data with
external tools in the background and caching the results on disk.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
