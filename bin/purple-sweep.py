#!/usr/bin/env python3
"""
Purple Sweep - Launcher
Runs the CLI from a source checkout without installing the package.
"""

import sys
from pathlib import Path

# Setup paths
SCRIPT_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(SCRIPT_DIR.parent))

from purplesweep.cli import main

if __name__ == '__main__':
    sys.exit(main())
