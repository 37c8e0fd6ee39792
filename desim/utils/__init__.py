"""Utility functions and helpers."""

from .logger import setup_logger, set_default_level

__all__ = ["setup_logger", "set_default_level"]
