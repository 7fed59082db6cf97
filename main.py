#!/usr/bin/env python3
"""
Creator Post Archiver - Main Entry Point

Runs the archiver CLI from a source checkout.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.abspath(os.path.dirname(__file__)), "src"))

from post_archiver.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
