#!/usr/bin/env python3
"""CLI shim for page snapshots.

Delegates to :mod:`page_snapshot.cli` so automation that executes
``scripts/snapshot.py`` directly keeps working without the console script.
"""
from __future__ import annotations

from page_snapshot.cli import main

if __name__ == "__main__":
    main()
