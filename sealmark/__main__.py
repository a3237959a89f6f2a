"""Entry point for ``python -m sealmark``."""

import sys

from sealmark.cli import main

if __name__ == "__main__":
    sys.exit(main())
