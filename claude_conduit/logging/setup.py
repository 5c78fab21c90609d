"""Logging setup for the claude_conduit package logger.

As a library, the package logs to a NullHandler unless stderr output is
enabled in settings. Records go through a non-blocking queue so logging from
the event loop never waits on the terminal.
"""

import atexit
import logging
import logging.handlers
import queue
import sys
from typing import Optional

from claude_conduit.config import Settings, get_settings
from claude_conduit.utils.logging_filter import RedactionFilter

LOGGER_NAME = "claude_conduit"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_listener: Optional[logging.handlers.QueueListener] = None


def setup_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Configure the package logger from settings.

    Safe to call more than once; each call replaces the previous handlers.

    Args:
        settings: Settings override (defaults to get_settings())

    Returns:
        The configured package logger
    """
    global _listener
    settings = settings or get_settings()

    app_logger = logging.getLogger(LOGGER_NAME)
    app_logger.setLevel(settings.logging.level)

    shutdown_logging()
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)

    if not settings.logging.stderr_enabled:
        app_logger.addHandler(logging.NullHandler())
        app_logger.propagate = True
        return app_logger

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(settings.logging.level)
    stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(-1)
    queue_handler = logging.handlers.QueueHandler(log_queue)
    queue_handler.addFilter(RedactionFilter())

    _listener = logging.handlers.QueueListener(
        log_queue, stderr_handler, respect_handler_level=True
    )
    _listener.start()

    app_logger.addHandler(queue_handler)
    app_logger.propagate = False
    return app_logger


def shutdown_logging() -> None:
    """Flush and stop the queue listener, if one is running."""
    global _listener
    if _listener is not None:
        _listener.stop()
        _listener = None


atexit.register(shutdown_logging)
