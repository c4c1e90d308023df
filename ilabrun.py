#!/usr/bin/env python3
"""ilab-e2e CLI entrypoint -- run without pip install.

Usage:
    python ilabrun.py run
    python ilabrun.py --help
"""

import sys
from pathlib import Path

# Add src/ to import path so the ilabe2e package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from ilabe2e.cli import app

if __name__ == "__main__":
    app()
