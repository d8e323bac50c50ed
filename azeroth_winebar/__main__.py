#!/usr/bin/env python3
"""
Entry point for `python -m azeroth_winebar`.
"""

import sys

from azeroth_winebar.frontends.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
