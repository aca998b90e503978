"""SplitRisk CLI entry point (python -m splitrisk)"""

from __future__ import annotations

import sys

from splitrisk.cli import main

if __name__ == "__main__":
    sys.exit(main())
