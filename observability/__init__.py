"""Observability infrastructure for the news fetcher.

setup_logging:
    Console + rotating file logging, text or JSON.

set_run_context / clear_context:
    Tag every log line of a run with its run id.

Example:
    >>> from observability import setup_logging, set_run_context
    >>> setup_logging(config)
    >>> set_run_context("1a2b3c4d")
"""

from observability.logging import clear_context, set_run_context, setup_logging

__all__ = [
    "setup_logging",
    "set_run_context",
    "clear_context",
]
