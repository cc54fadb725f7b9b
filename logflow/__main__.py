"""
Entry point for running logflow as a module

Usage:
    python -m logflow serve
    python -m logflow compare 2024-05-01 10:00 AM 2024-05-01 02:30 PM
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
