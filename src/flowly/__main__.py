"""
Entry point for running Flowly as a module.

Usage:
    python -m flowly inspect graph.json
"""

import sys

from flowly.main import main

if __name__ == "__main__":
    sys.exit(main())
