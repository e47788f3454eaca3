"""Entry point for `python -m biomelsp`."""

import sys

from biomelsp.cli import main

if __name__ == "__main__":
    sys.exit(main())
