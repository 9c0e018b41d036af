"""
Entry point for module execution (``python -m flowlint``).

This module delegates execution to the CLI handler in ``flowlint.cli.__main__``.
"""

import sys
from flowlint.cli.__main__ import main

if __name__ == "__main__":
  sys.exit(main())
