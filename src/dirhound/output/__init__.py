"""
Output module - Result sinks and file reporters.

- ResultSink: receiver interface used by the scan engine
- MemorySink / ConsoleSink / MultiSink: in-memory, terminal and fan-out sinks
- save_results: JSON, CSV, XML and text reports
"""

from .sinks import ResultSink, MemorySink, ConsoleSink, MultiSink
from .reporters import save_results, build_report, OUTPUT_FORMATS


__all__ = [
    # Sinks
    "ResultSink",
    "MemorySink",
    "ConsoleSink",
    "MultiSink",
    # Reporters
    "save_results",
    "build_report",
    "OUTPUT_FORMATS",
]
