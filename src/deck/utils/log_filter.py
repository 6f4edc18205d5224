"""Temporary log-level suppression.

Used to keep noisy components quiet during operations like ``deck doctor``
port sweeps, while still letting warnings and errors through.

Examples:
    Quiet a single logger::

        >>> with quiet_logger('ports'):
        ...     await engine.check_ports(ports)

    Suppress everything except errors from several loggers::

        >>> with suppress_logger_level(['engine', 'CONFIG'], logging.ERROR):
        ...     detect_engine()
"""

import logging
from contextlib import contextmanager


@contextmanager
def suppress_logger_level(logger_name: str | list[str], level: int):
    """Context manager to temporarily raise logger level to suppress messages.

    Args:
        logger_name: Name of logger(s) to modify. Can be a single string
            or list of strings for multiple loggers.
        level: The temporary log level to set. Messages below this level
            will be suppressed.

    Yields:
        Dictionary mapping logger names to their original levels
    """
    names = [logger_name] if isinstance(logger_name, str) else list(logger_name)
    original_levels = {}
    for name in names:
        target = logging.getLogger(name)
        original_levels[name] = target.level
        target.setLevel(level)
    try:
        yield original_levels
    finally:
        for name, original in original_levels.items():
            logging.getLogger(name).setLevel(original)


@contextmanager
def quiet_logger(logger_name: str | list[str]):
    """Context manager to temporarily suppress INFO-level messages from logger(s).

    Equivalent to ``suppress_logger_level(logger_name, logging.WARNING)``.

    Yields:
        Dictionary mapping logger names to their original levels
    """
    with suppress_logger_level(logger_name, logging.WARNING) as levels:
        yield levels
