"""
Logging helpers shared across CytoGate.

All messages go through the standard library logger named ``cytogate``.
Nothing here installs handlers on import; the CLI calls
``configure_logging()`` once at start-up.
"""

import logging
import sys

LOGGER_NAME = "cytogate"
LOG_FORMAT = "[CytoGate] %(levelname)s: %(message)s"

_logger = logging.getLogger(LOGGER_NAME)


def get_logger(name=None):
    """
    Return the package logger, or a child of it for a module name.
    """
    if not name or name == LOGGER_NAME:
        return _logger
    if name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return _logger.getChild(name)


def configure_logging(level="INFO", stream=None):
    """
    Attach a single stream handler to the package logger.

    Calling it again only updates the level.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    _logger.setLevel(level)
    if not any(getattr(h, "_cytogate", False) for h in _logger.handlers):
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._cytogate = True
        _logger.addHandler(handler)
    return _logger


def log_debug(msg):
    _logger.debug(msg)


def log_info(msg):
    _logger.info(msg)


def log_warn(msg):
    _logger.warning(msg)


def log_error(msg):
    _logger.error(msg)
