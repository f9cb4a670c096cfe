"""
DIRHOUND - Concurrent Web Content Discovery Scanner

Probes candidate paths from a wordlist against a target, filters out
server-generated wildcard responses and reports what survives.
Interrupted scans can be resumed from a checkpoint file.

Copyright (c) 2025
Licensed under MIT License
"""

__version__ = "1.0.0"
__author__ = "DIRHOUND Team"
__status__ = "Development"
