#!/usr/bin/env python3
"""Entry-point shim for frozen builds and running from a checkout."""

from __future__ import annotations

from dcmview.app import main


if __name__ == "__main__":
    raise SystemExit(main())
