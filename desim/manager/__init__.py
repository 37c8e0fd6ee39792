"""Orchestration of multiple simulation runs."""

from .run_config import ProcessSpec, RunConfig, TerminalSnapshot
from .manager import Manager, RunHandle

__all__ = ["ProcessSpec", "RunConfig", "TerminalSnapshot", "Manager", "RunHandle"]
