#!/usr/bin/env python3
"""
Offline Sync - Main entry point for python -m offline_sync
"""

import sys

from offline_sync.cli import main

if __name__ == "__main__":
    sys.exit(main())
