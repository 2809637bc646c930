#!/usr/bin/env python3
"""Print the blind watermark of one or more images as JSON lines."""
from __future__ import annotations

import argparse
import json

from page_snapshot.logging import configure_logging
from page_snapshot.watermark import extract_watermark


def main() -> None:
    configure_logging()
    ap = argparse.ArgumentParser(description="Extract blind watermarks from images")
    ap.add_argument("images", nargs="+")
    args = ap.parse_args()

    for path in args.images:
        with open(path, "rb") as fh:
            watermark = extract_watermark(fh.read())
        print(json.dumps({"path": path, "watermark": watermark}, ensure_ascii=False))


if __name__ == "__main__":
    main()
