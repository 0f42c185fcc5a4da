"""Temporary log suppression helpers.

Used by the CLI to keep command output readable: configuration and sandbox
loggers are quieted to WARNING while a command prints its own Rich output.

Examples:
    >>> with quiet_logger(['CONFIG', 'sandbox']):
    ...     run_health_checks()
"""

import logging
from contextlib import contextmanager


@contextmanager
def suppress_logger_level(logger_name: str | list[str], level: int):
    """Temporarily raise the level of one or more loggers.

    Args:
        logger_name: Logger name or list of names
        level: Temporary level; messages below it are suppressed

    Yields:
        Mapping of logger names to their original levels
    """
    logger_names = [logger_name] if isinstance(logger_name, str) else logger_name

    loggers = [logging.getLogger(name) for name in logger_names]
    original_levels = {name: logger.level for name, logger in zip(logger_names, loggers)}

    for logger in loggers:
        logger.setLevel(level)

    try:
        yield original_levels
    finally:
        for name, logger in zip(logger_names, loggers):
            logger.setLevel(original_levels[name])


@contextmanager
def quiet_logger(logger_name: str | list[str]):
    """Suppress INFO and DEBUG output from logger(s), keeping WARNING and above."""
    with suppress_logger_level(logger_name, logging.WARNING) as levels:
        yield levels


__all__ = [
    "quiet_logger",
    "suppress_logger_level",
]
