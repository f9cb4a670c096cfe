#!/usr/bin/env python3
"""
DIRHOUND - Concurrent Web Content Discovery

Main entry point for running the CLI from a source checkout.

Usage:
    python main.py scan --url https://example.com --word-list common.txt
    python main.py scan -u https://example.com -w big.txt --detect-wildcards --save-state scan.state
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from dirhound.cli import cli


if __name__ == '__main__':
    cli()
