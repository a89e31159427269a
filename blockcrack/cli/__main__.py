"""
blockcrack CLI entry point.

Usage:
    python -m blockcrack.cli fetch
    python -m blockcrack.cli process
    python -m blockcrack.cli crack
    python -m blockcrack.cli show
"""

import sys
from .main import main

if __name__ == "__main__":
    sys.exit(main())
