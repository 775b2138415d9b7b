"""
Run this script once to migrate the legacy Firebase data into the relational store.
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from taskboard.cli import main


if __name__ == "__main__":
    sys.exit(main())
