"""
Structured logging configuration using structlog.

Log lines go to stderr so that command output on stdout stays clean.
"""

import logging
import sys

import structlog

from .configuration import LipyantarConfig


def setup_logging(config: LipyantarConfig, *, verbose: bool = False) -> None:
    """
    Configure structlog for console or JSON logging.

    Args:
        config: Loaded configuration (``log_level`` and ``log_json``)
        verbose: Force DEBUG level regardless of configuration
    """
    level = "DEBUG" if verbose else config.log_level
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.processors.JSONRenderer()
                if config.log_json
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
