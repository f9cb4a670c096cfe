"""
Structured logging setup.

Log events go to stderr so they never interleave with results printed on
stdout.
"""

import logging
import sys

import structlog


def configure_logging(verbosity: int = 0, json_logs: bool = False):
    """
    Configure structlog for the CLI.

    Args:
        verbosity: 0 = warnings only, 1 = info, 2+ = debug
        json_logs: Render one JSON object per line instead of console output
    """
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
