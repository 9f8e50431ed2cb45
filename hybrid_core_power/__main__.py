"""
Main entry point.

Usage:
    sudo python -m hybrid_core_power {status|powersave|restore|monitor|benchmark}
"""

import sys

from .cli import main


if __name__ == "__main__":
    sys.exit(main())
