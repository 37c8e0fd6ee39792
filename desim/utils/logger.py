"""Logging setup shared by all simulator components."""

import logging
import sys
from typing import Optional, Union

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATEFMT = "%H:%M:%S"

_default_level = logging.INFO


def set_default_level(level: Union[int, str]) -> None:
    """Set the level used by loggers created without an explicit level."""
    global _default_level
    _default_level = _to_level(level)


def setup_logger(name: str, level: Optional[Union[int, str]] = None) -> logging.Logger:
    """Create (or fetch) a configured logger.

    Calling this repeatedly with the same name returns the same logger
    without attaching duplicate handlers.

    Args:
        name: Logger name, usually the component's class name
        level: Logging level name or number

    Returns:
        Configured logger
    """
    logger = logging.getLogger(f"desim.{name}")

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT, datefmt=DEFAULT_DATEFMT))
        logger.addHandler(handler)
        logger.propagate = False
        logger.setLevel(_default_level)

    if level is not None:
        logger.setLevel(_to_level(level))

    return logger


def _to_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown logging level: {level}")
    return resolved
