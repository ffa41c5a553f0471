#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "numpy<2",
#   "whisperx==3.3.0",
# ]
# ///

"""Entry point for the reelplan timeline builder."""

from __future__ import annotations

import sys

from reelplan.build_timeline import main


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
