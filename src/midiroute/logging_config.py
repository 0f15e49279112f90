"""
Centralized logging configuration using rich.logging.

The host calls setup_logging() once at startup to get rich formatted log
output. Failing action handlers and preference watchers are logged with
logger.exception(), so rich tracebacks show where a binding went wrong
without interrupting MIDI routing.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# Set once the root logger carries our handler
_logging_configured = False


def setup_logging(
    level: int = logging.INFO,
    show_time: bool = True,
    show_path: bool = True,
    rich_tracebacks: bool = True,
    console: Optional[Console] = None,
    module_levels: Optional[dict[str, int]] = None,
) -> None:
    """
    Configure rich logging for midiroute.

    Subsequent calls are ignored to avoid duplicate handlers.

    Args:
        level: Logging level (logging.DEBUG, logging.INFO, etc.)
        show_time: Show timestamp in log messages
        show_path: Show file path in log messages
        rich_tracebacks: Enable rich formatted tracebacks for exceptions
        console: Optional rich Console instance (creates a stderr console if None)
        module_levels: Per-module overrides, e.g. {"midiroute.dispatcher": logging.DEBUG}

    Example:
        >>> from midiroute.logging_config import setup_logging
        >>> import logging
        >>> setup_logging(level=logging.DEBUG)
    """
    global _logging_configured

    # Only the first call installs a handler
    if _logging_configured:
        return

    # Log to stderr so CLI tables on stdout stay clean
    if console is None:
        console = Console(stderr=True)

    handler = RichHandler(
        console=console,
        show_time=show_time,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
        markup=True,
        log_time_format="[%X]",
    )

    # Replace whatever the host configured on the root logger
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )

    for module_name, module_level in (module_levels or {}).items():
        set_module_level(module_name, module_level)

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the given name.

    Every midiroute module logs through get_logger(__name__), so log
    records carry the module path (midiroute.compiler, midiroute.midi_io).

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def set_module_level(module_name: str, level: int) -> None:
    """
    Set logging level for a specific module.

    Useful for tracing a single stage of the router, e.g. every lookup the
    dispatcher makes, without debug output from the device input loop.

    Args:
        module_name: Full module name (e.g., 'midiroute.dispatcher')
        level: Logging level (logging.DEBUG, logging.INFO, etc.)

    Example:
        >>> set_module_level('midiroute.midi_io', logging.DEBUG)
    """
    logging.getLogger(module_name).setLevel(level)
