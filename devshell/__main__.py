"""
devshell CLI entry point.

Usage:
    python -m devshell self-upgrade
"""

import sys

from devshell.cli import main

if __name__ == "__main__":
    sys.exit(main())
