"""
Logging Module
==============

Structured logging using structlog with JSON output for batch runs
and colored console output for interactive use.

Usage:
    from shared.logging import get_logger, setup_logging

    setup_logging()
    logger = get_logger(__name__)
    logger.info("record_saved", domain="trees", jurisdiction="NY-Rye-City")
"""

from shared.logging.logger import bind_context, clear_context, get_logger, setup_logging


__all__ = [
    "bind_context",
    "clear_context",
    "get_logger",
    "setup_logging",
]
