"""
Allow running the client as a module.

Usage:
    python -m unisphere events
    python -m unisphere login --email me@college.edu
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
