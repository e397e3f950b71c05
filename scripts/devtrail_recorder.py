#!/usr/bin/env python3
"""
Recover development history or record a live session.

Checkout wrapper for the `devtrail-recorder` console script.

Usage:
    python scripts/devtrail_recorder.py --help
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from devtrail.cli.recorder import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
