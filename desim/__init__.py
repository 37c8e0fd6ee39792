"""desim: discrete event simulation engine."""

from .core.simulator import Scheduler, RunOutcome, RunStatus, TraceRecord
from .core.event_queue import Event, EventHandle, EventQueue
from .core.process import (
    Condition,
    Process,
    ProcessState,
    ScheduleAt,
    Signal,
    Timeout,
    WaitFor,
    WaitUntil,
    YieldTurn,
)
from .core.errors import (
    SimulationError,
    InvalidDuration,
    UnknownProcess,
    InvalidRequest,
    CausalityViolation,
    Interrupt,
)
from .core.metrics_collector import MetricsCollector
from .manager import Manager, RunHandle, RunConfig, ProcessSpec, TerminalSnapshot
from .resources import Resource, Store, Container
from .utils.logger import setup_logger

__version__ = "0.1.0"
__all__ = [
    "Scheduler",
    "RunOutcome",
    "RunStatus",
    "TraceRecord",
    "Event",
    "EventHandle",
    "EventQueue",
    "Condition",
    "Process",
    "ProcessState",
    "ScheduleAt",
    "Signal",
    "Timeout",
    "WaitFor",
    "WaitUntil",
    "YieldTurn",
    "SimulationError",
    "InvalidDuration",
    "UnknownProcess",
    "InvalidRequest",
    "CausalityViolation",
    "Interrupt",
    "MetricsCollector",
    "Manager",
    "RunHandle",
    "RunConfig",
    "ProcessSpec",
    "TerminalSnapshot",
    "Resource",
    "Store",
    "Container",
    "setup_logger",
]
