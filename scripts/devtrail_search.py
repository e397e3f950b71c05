#!/usr/bin/env python3
"""
Query the devtrail knowledge index.

Checkout wrapper for the `devtrail-search` console script.

Usage:
    python scripts/devtrail_search.py --help
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from devtrail.cli.search import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
