"""Processes and the requests they yield to suspend themselves.

A process body is a generator function. Each ``yield`` hands one request to
the scheduler, which suspends the generator until the request is satisfied
and then resumes it with ``send`` (or ``throw`` for interrupts). The
generator object is the continuation: it captures the locals and the resume
point of the body.
"""

from enum import Enum
from typing import Any, Callable, Generator, List, Optional, Union

from .event_queue import EventHandle, NORMAL_PRIORITY, validate_duration


class ProcessState(Enum):
    """Lifecycle states of a process."""
    CREATED = "created"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    WAITING = "waiting"
    TERMINATED = "terminated"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessState.TERMINATED, ProcessState.FAILED)


class Request:
    """Base class for everything a process body may yield."""

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in vars(self).items())
        return f"{self.__class__.__name__}({fields})"


class Timeout(Request):
    """Resume after ``duration`` units of simulated time.

    Raises:
        InvalidDuration: At construction, if ``duration`` is negative
    """

    def __init__(self, duration: float, priority: int = NORMAL_PRIORITY):
        self.duration = validate_duration(duration)
        self.priority = priority


class ScheduleAt(Request):
    """Resume at an absolute simulated time (checked against the clock when yielded)."""

    def __init__(self, time: float, priority: int = NORMAL_PRIORITY):
        self.time = validate_duration(time)
        self.priority = priority


class WaitFor(Request):
    """Resume once another process has terminated or failed.

    The resumption value is the waited-on ``Process``, so the waiter can
    inspect ``state``, ``value`` and ``error``.
    """

    def __init__(self, process: Union["Process", int]):
        self.process_id = process.pid if isinstance(process, Process) else process


class WaitUntil(Request):
    """Resume the first time ``condition`` evaluates true."""

    def __init__(self, condition: Union["Condition", Callable[[], Any]]):
        self.condition = condition if isinstance(condition, Condition) else Condition(condition)


class YieldTurn(Request):
    """Give up the turn without advancing the clock."""

    def __init__(self):
        pass


class Condition:
    """Predicate over scheduler-visible state.

    Re-evaluated after every fired event while a process waits on it.

    Args:
        predicate: Callable returning a truthy value once satisfied
        description: Label used in logs and reprs
    """

    def __init__(self, predicate: Callable[[], Any], description: Optional[str] = None):
        if not callable(predicate):
            raise TypeError(f"Condition predicate must be callable, got {predicate!r}")
        self.predicate = predicate
        self.description = description or getattr(predicate, "__name__", "condition")

    def evaluate(self) -> Any:
        return self.predicate()

    @classmethod
    def process_finished(cls, process: "Process") -> "Condition":
        """Condition that holds once ``process`` is terminated or failed."""
        return cls(lambda: process.state.is_terminal, f"finished({process.pid})")

    @classmethod
    def all_of(cls, *conditions: "Condition") -> "Condition":
        return cls(lambda: all(c.evaluate() for c in conditions), "all_of")

    @classmethod
    def any_of(cls, *conditions: "Condition") -> "Condition":
        return cls(lambda: any(c.evaluate() for c in conditions), "any_of")

    def __repr__(self) -> str:
        return f"Condition({self.description})"


class Signal(Request):
    """One-shot event that processes can yield and something else triggers.

    Resources hand these out: a process yields the signal and is resumed with
    the value passed to ``succeed``. Yielding a signal that already fired
    resumes the process at the current time.

    ``on_abandon`` is called with the signal when its last waiter is
    interrupted or killed before resuming, so the owner can withdraw the
    request or take back what it already granted.
    """

    def __init__(self, scheduler, name: Optional[str] = None,
                 on_abandon: Optional[Callable[["Signal"], Any]] = None):
        self.scheduler = scheduler
        self.name = name or "signal"
        self.on_abandon = on_abandon
        self.triggered = False
        self.value: Any = None
        self.waiters: List["Process"] = []

    def succeed(self, value: Any = None) -> "Signal":
        if self.triggered:
            raise RuntimeError(f"{self.name} has already been triggered")
        self.triggered = True
        self.value = value
        waiters, self.waiters = self.waiters, []
        for process in waiters:
            self.scheduler._wake(process, value, action=self.name, source=self)
        return self

    def abandon(self) -> None:
        if self.on_abandon is not None and not self.waiters:
            self.on_abandon(self)

    def __repr__(self) -> str:
        return f"Signal(name={self.name!r}, triggered={self.triggered})"


class Process:
    """A cooperative unit of simulation logic.

    Created by ``Scheduler.process``; owned by that scheduler for its whole
    lifetime.

    Attributes:
        pid: Process id, unique within the owning scheduler
        name: Human readable name
        state: Current ``ProcessState``
        pending_event: Handle of the event that will resume the process
        value: Return value of the body once terminated
        error: Exception raised by the body once failed
    """

    def __init__(self, pid: int, name: str, generator: Generator, created_at: float = 0.0):
        self.pid = pid
        self.name = name
        self.state = ProcessState.CREATED
        self.pending_event: Optional[EventHandle] = None
        self.value: Any = None
        self.error: Optional[BaseException] = None
        self.created_at = created_at
        self.finished_at: Optional[float] = None

        # Processes blocked in WaitFor(self)
        self.waiters: List["Process"] = []

        self._generator: Optional[Generator] = generator
        # What the process is currently registered on (condition or signal)
        self._registration: Any = None

    @property
    def is_alive(self) -> bool:
        return not self.state.is_terminal

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def ok(self) -> bool:
        """True if the process terminated without error."""
        return self.state == ProcessState.TERMINATED

    def __repr__(self) -> str:
        return f"Process(pid={self.pid}, name={self.name!r}, state={self.state.value})"


__all__ = [
    "ProcessState",
    "Request",
    "Timeout",
    "ScheduleAt",
    "WaitFor",
    "WaitUntil",
    "YieldTurn",
    "Condition",
    "Signal",
    "Process",
]
