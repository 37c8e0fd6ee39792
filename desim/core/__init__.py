"""Core simulation components."""

from .errors import (
    SimulationError,
    InvalidDuration,
    UnknownProcess,
    InvalidRequest,
    CausalityViolation,
    Interrupt,
)
from .event_queue import Event, EventHandle, EventQueue, EPOCH, LATE_PRIORITY, NORMAL_PRIORITY, URGENT_PRIORITY
from .metrics_collector import MetricsCollector
from .process import (
    Condition,
    Process,
    ProcessState,
    Request,
    ScheduleAt,
    Signal,
    Timeout,
    WaitFor,
    WaitUntil,
    YieldTurn,
)
from .simulator import Scheduler, RunOutcome, RunStatus, TraceRecord

__all__ = [
    "SimulationError",
    "InvalidDuration",
    "UnknownProcess",
    "InvalidRequest",
    "CausalityViolation",
    "Interrupt",
    "Event",
    "EventHandle",
    "EventQueue",
    "EPOCH",
    "LATE_PRIORITY",
    "NORMAL_PRIORITY",
    "URGENT_PRIORITY",
    "MetricsCollector",
    "Condition",
    "Process",
    "ProcessState",
    "Request",
    "ScheduleAt",
    "Signal",
    "Timeout",
    "WaitFor",
    "WaitUntil",
    "YieldTurn",
    "Scheduler",
    "RunOutcome",
    "RunStatus",
    "TraceRecord",
]
