"""Logging configuration for blockgraph."""

import sys

from loguru import logger


def configure_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Route loguru output to stderr.

    ``verbose`` enables rendered-query debug output; ``quiet`` keeps only
    warnings and errors (used when stdout carries JSON or an MCP stream).
    """
    logger.remove()
    if verbose:
        level = "DEBUG"
    elif quiet:
        level = "WARNING"
    else:
        level = "INFO"
    logger.add(sys.stderr, level=level, format="{level.icon} {message}")
