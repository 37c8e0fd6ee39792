"""Scheduler: one discrete event simulation run."""

import inspect
import logging
import threading
import time
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Union

import numpy as np

from .errors import (
    CausalityViolation,
    InvalidDuration,
    Interrupt,
    InvalidRequest,
    SimulationError,
    UnknownProcess,
)
from .event_queue import (
    EPOCH,
    LATE_PRIORITY,
    NORMAL_PRIORITY,
    URGENT_PRIORITY,
    Event,
    EventHandle,
    EventQueue,
    validate_duration,
)
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
from ..utils.logger import setup_logger


class RunStatus(Enum):
    """Lifecycle of a scheduler run."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class RunOutcome(Enum):
    """How a run ended."""
    COMPLETED = "completed"
    ABORTED = "aborted"
    EXHAUSTED = "exhausted"


class TraceRecord(NamedTuple):
    """One (time, process, action) entry of the execution trace."""
    time: float
    process_id: Optional[int]
    action: str


ProcessRef = Union[Process, int]


class Scheduler:
    """Discrete event scheduler driving one simulation run.

    Owns the clock, the event queue and the process table. Processes are
    generator functions called as ``body(scheduler, *args, **kwargs)`` that
    yield requests (``Timeout``, ``WaitFor``, ``WaitUntil``, ``YieldTurn``,
    ``ScheduleAt`` or a ``Signal``).

    Execution inside a run is single threaded: at most one process runs at
    a time and it only gives up control at a yield point. Events at the same
    time run by ascending priority, then in insertion order, so identical
    process bodies inserted in identical order always produce the same trace.
    """

    def __init__(
        self,
        seed: int = 0,
        max_time: Optional[float] = None,
        max_events: Optional[int] = None,
        name: Optional[str] = None,
        trace: bool = True,
        params: Optional[Dict[str, Any]] = None,
    ):
        """Initialize scheduler.

        Args:
            seed: Seed for the run's random number generator
            max_time: Events scheduled after this time are not executed
            max_events: Maximum number of events to execute
            name: Name used in log messages
            trace: Whether to record the (time, process, action) trace
            params: Read-only run parameters available to process bodies
        """
        if max_time is not None:
            max_time = validate_duration(max_time)
        if max_events is not None and max_events < 0:
            raise ValueError("max_events cannot be negative")

        self.seed = seed
        self.name = name or f"run-{seed}"
        self.max_time = max_time
        self.max_events = max_events
        self.params: Dict[str, Any] = dict(params or {})
        self.logger = setup_logger(self.__class__.__name__)

        # Simulation state
        self.now = EPOCH
        self.queue = EventQueue()
        self.processes: Dict[int, Process] = {}
        self.rng = np.random.default_rng(seed)

        # Run state
        self.status = RunStatus.IDLE
        self.outcome: Optional[RunOutcome] = None
        self.diagnostic: Optional[str] = None
        self.events_processed = 0
        self.wall_time = 0.0

        # User-collected metrics, carried into the terminal snapshot
        self.metrics = MetricsCollector()

        self.trace_enabled = trace
        self.trace: List[TraceRecord] = []

        self.active_process: Optional[Process] = None
        self._conditions: Dict[int, Condition] = {}
        self._next_pid = 0
        self._stop_requested = threading.Event()
        self._stop_reason: Optional[str] = None

        self._handlers = {
            Timeout: self._handle_timeout,
            ScheduleAt: self._handle_schedule_at,
            WaitFor: self._handle_wait_for,
            WaitUntil: self._handle_wait_until,
            YieldTurn: self._handle_yield,
            Signal: self._handle_signal,
        }

    # ------------------------------------------------------------------
    # Process construction
    # ------------------------------------------------------------------

    def process(
        self,
        body: Callable,
        *args,
        name: Optional[str] = None,
        delay: float = 0.0,
        priority: int = NORMAL_PRIORITY,
        **kwargs,
    ) -> Process:
        """Register a process body and schedule its start.

        Args:
            body: Generator function called as ``body(self, *args, **kwargs)``,
                or an already created generator
            name: Process name, defaults to the body's name
            delay: Simulated time to wait before the first step

        Returns:
            The new process
        """
        delay = validate_duration(delay)

        if inspect.isgenerator(body):
            generator = body
            default_name = body.__name__
        else:
            generator = body(self, *args, **kwargs)
            default_name = getattr(body, "__name__", "process")
            if not inspect.isgenerator(generator):
                raise TypeError(f"Process body {default_name!r} must be a generator function")

        pid = self._next_pid
        self._next_pid += 1
        process = Process(pid, name or f"{default_name}-{pid}", generator, created_at=self.now)
        self.processes[pid] = process

        self._schedule_resume(process, self.now + delay, priority, action="start")
        self.logger.debug(f"[{self.name}] Registered {process} starting at {self.now + delay}")
        return process

    def add_process(self, body: Callable, *args, **kwargs) -> int:
        """Register a process body and return its id."""
        return self.process(body, *args, **kwargs).pid

    def get_process(self, process: ProcessRef) -> Process:
        """Look up a process by id.

        Raises:
            UnknownProcess: If no such process was registered here
        """
        pid = process.pid if isinstance(process, Process) else process
        try:
            found = self.processes[pid]
        except (KeyError, TypeError):
            raise UnknownProcess(f"Unknown process id: {pid!r}")
        if isinstance(process, Process) and found is not process:
            raise UnknownProcess(f"Process {pid} belongs to another scheduler")
        return found

    @property
    def live_processes(self) -> List[Process]:
        return [p for p in self.processes.values() if p.is_alive]

    # ------------------------------------------------------------------
    # Scheduling primitives (yielded by process bodies)
    # ------------------------------------------------------------------

    def schedule_timeout(self, duration: float, priority: int = NORMAL_PRIORITY) -> Timeout:
        return Timeout(duration, priority)

    timeout = schedule_timeout

    def schedule_at(self, at: float, priority: int = NORMAL_PRIORITY) -> ScheduleAt:
        if at < self.now:
            raise InvalidDuration(f"Cannot schedule at {at}, clock is already at {self.now}")
        return ScheduleAt(at, priority)

    def wait_for(self, process: ProcessRef) -> WaitFor:
        return WaitFor(process)

    def wait_until(self, condition: Union[Condition, Callable[[], Any]]) -> WaitUntil:
        return WaitUntil(condition)

    def yield_turn(self) -> YieldTurn:
        return YieldTurn()

    def signal(self, name: Optional[str] = None,
               on_abandon: Optional[Callable[[Signal], Any]] = None) -> Signal:
        """Create a one-shot signal owned by this scheduler."""
        return Signal(self, name, on_abandon)

    def schedule_callback(
        self,
        delay: float,
        callback: Callable[[], Any],
        priority: int = NORMAL_PRIORITY,
        action: str = "callback",
    ) -> EventHandle:
        """Schedule a plain callback ``delay`` time units from now.

        Returns:
            Handle that can be passed to ``cancel``
        """
        delay = validate_duration(delay)
        event = Event(
            time=self.now + delay,
            priority=priority,
            callback=lambda _event: callback(),
            action=action,
        )
        return self.queue.insert(event)

    def cancel(self, handle: EventHandle) -> bool:
        """Cancel a pending event. Returns False if it already fired."""
        return self.queue.cancel(handle)

    def peek(self) -> float:
        """Time of the next pending event, or infinity if there is none."""
        event = self.queue.peek_min()
        return event.time if event is not None else float("inf")

    # ------------------------------------------------------------------
    # Process control
    # ------------------------------------------------------------------

    def interrupt(self, process: ProcessRef, cause: Any = None) -> None:
        """Interrupt a suspended process.

        Its pending event or registration is dropped and ``Interrupt(cause)``
        is raised inside the body at its yield point, at the current time
        and ahead of other same-time events.
        """
        process = self.get_process(process)
        if process.is_terminal:
            raise SimulationError(f"Cannot interrupt {process}: already finished")
        if process is self.active_process:
            raise SimulationError(f"{process} cannot interrupt itself")

        self._detach(process)
        self._schedule_resume(
            process, self.now, URGENT_PRIORITY, throw=Interrupt(cause), action="interrupt"
        )

    def kill(self, process: ProcessRef) -> bool:
        """Terminate a process immediately, without running the rest of its body.

        Returns:
            False if the process had already finished
        """
        process = self.get_process(process)
        if process.is_terminal:
            return False
        if process is self.active_process:
            raise SimulationError(f"{process} cannot kill itself; return from the body instead")

        self._detach(process)
        process._generator.close()
        self._terminate(process, None, action="killed")
        return True

    def request_stop(self, reason: str = "stop requested") -> None:
        """Ask the run to stop before the next event. Safe to call from another thread."""
        self._stop_reason = reason
        self._stop_requested.set()

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def step(self) -> bool:
        """Execute the next event.

        Returns:
            False if the queue was empty
        """
        event = self.queue.pop_min()
        if event is None:
            return False

        if event.time < self.now:
            raise CausalityViolation(
                f"Event {event} scheduled at {event.time} popped with clock at {self.now}"
            )

        self.now = event.time
        self.events_processed += 1
        if self.trace_enabled:
            self.trace.append(TraceRecord(self.now, event.process_id, event.action))

        if event.callback is not None:
            event.callback(event)

        if self._conditions:
            self._check_conditions()
        return True

    def run(
        self,
        until: Optional[float] = None,
        stop_condition: Optional[Callable[["Scheduler"], bool]] = None,
        wall_clock_limit: Optional[float] = None,
    ) -> RunOutcome:
        """Run the simulation.

        Args:
            until: Do not execute events later than this time
            stop_condition: Checked before each event; aborts the run when true
            wall_clock_limit: Real seconds after which the run is exhausted

        Returns:
            Outcome of the run
        """
        if self.status != RunStatus.IDLE:
            raise SimulationError(f"[{self.name}] Run already {self.status.value}")

        horizon = self.max_time
        if until is not None:
            until = validate_duration(until)
            horizon = until if horizon is None else min(horizon, until)
        deadline = time.monotonic() + wall_clock_limit if wall_clock_limit is not None else None

        self.status = RunStatus.RUNNING
        self.logger.info(f"[{self.name}] Starting run with {len(self.processes)} processes")
        start_time = time.time()

        try:
            outcome = self._loop(horizon, stop_condition, deadline)
        except CausalityViolation as exc:
            self.logger.error(f"[{self.name}] {exc}")
            self.diagnostic = str(exc)
            outcome = RunOutcome.ABORTED
        except Exception as exc:
            self.wall_time = time.time() - start_time
            self.outcome = RunOutcome.ABORTED
            self.status = RunStatus.ABORTED
            self.diagnostic = f"{type(exc).__name__}: {exc}"
            raise

        self.wall_time = time.time() - start_time
        self.outcome = outcome
        self.status = RunStatus.COMPLETED if outcome == RunOutcome.COMPLETED else RunStatus.ABORTED

        log = self.logger.warning if outcome == RunOutcome.ABORTED else self.logger.info
        log(
            f"[{self.name}] Run {outcome.value} at t={self.now} after "
            f"{self.events_processed} events in {self.wall_time:.2f}s"
        )
        return outcome

    def _loop(self, horizon, stop_condition, deadline) -> RunOutcome:
        while True:
            if self._stop_requested.is_set():
                self.diagnostic = self._stop_reason
                return RunOutcome.ABORTED

            next_event = self.queue.peek_min()
            if next_event is None:
                return RunOutcome.COMPLETED

            if self.max_events is not None and self.events_processed >= self.max_events:
                self.diagnostic = f"max_events={self.max_events} reached"
                return RunOutcome.EXHAUSTED

            if deadline is not None and time.monotonic() >= deadline:
                self.diagnostic = "wall clock limit reached"
                return RunOutcome.EXHAUSTED

            if horizon is not None and next_event.time > horizon:
                self.now = max(self.now, horizon)
                self.diagnostic = f"max_time={horizon} reached"
                return RunOutcome.EXHAUSTED

            if stop_condition is not None and stop_condition(self):
                self.diagnostic = "stop condition met"
                return RunOutcome.ABORTED

            self.step()

    # ------------------------------------------------------------------
    # Resumption
    # ------------------------------------------------------------------

    def _schedule_resume(
        self,
        process: Process,
        at: float,
        priority: int,
        value: Any = None,
        throw: Optional[BaseException] = None,
        action: str = "resume",
    ) -> EventHandle:
        event = Event(
            time=at,
            priority=priority,
            callback=partial(self._fire, process, value, throw),
            process_id=process.pid,
            action=action,
        )
        process.pending_event = self.queue.insert(event)
        if process.state != ProcessState.WAITING:
            process.state = ProcessState.SCHEDULED
        return process.pending_event

    def _wake(self, process: Process, value: Any = None, action: str = "wake",
              priority: int = NORMAL_PRIORITY, source: Optional[Signal] = None) -> None:
        """Resume a process whose registration was satisfied, at the current time.

        ``source`` is the signal that granted the wake-up; it stays attached to
        the process until the resume event fires so that a detach can hand
        the grant back.
        """
        process._registration = source
        process.state = ProcessState.SCHEDULED
        self._schedule_resume(process, self.now, priority, value=value, action=action)

    def _fire(self, process: Process, value: Any, throw: Optional[BaseException], _event: Event) -> None:
        process.pending_event = None
        process._registration = None
        process.state = ProcessState.SCHEDULED
        self._resume(process, value, throw)

    def _resume(self, process: Process, value: Any = None, throw: Optional[BaseException] = None) -> None:
        process.state = ProcessState.RUNNING
        self.active_process = process
        try:
            if throw is not None:
                request = process._generator.throw(throw)
            else:
                request = process._generator.send(value)
        except StopIteration as stop:
            self._terminate(process, stop.value)
        except Exception as exc:
            self._fail(process, exc)
        else:
            self._dispatch(process, request)
        finally:
            self.active_process = None

    def _dispatch(self, process: Process, request: Any) -> None:
        if request is None:
            request = YieldTurn()

        handler = None
        if isinstance(request, Request):
            for klass in type(request).__mro__:
                handler = self._handlers.get(klass)
                if handler is not None:
                    break

        if handler is None:
            self._fail(process, InvalidRequest(f"{process} yielded {request!r}, expected a request"))
            return

        process.state = ProcessState.WAITING
        handler(process, request)

    def _handle_timeout(self, process: Process, request: Timeout) -> None:
        at = self.now + request.duration
        self._schedule_resume(process, at, request.priority, value=at, action="timeout")

    def _handle_schedule_at(self, process: Process, request: ScheduleAt) -> None:
        if request.time < self.now:
            self._fail(process, InvalidDuration(
                f"Cannot schedule at {request.time}, clock is already at {self.now}"
            ))
            return
        self._schedule_resume(process, request.time, request.priority, value=request.time, action="timeout")

    def _handle_wait_for(self, process: Process, request: WaitFor) -> None:
        target = self.processes.get(request.process_id)
        if target is None or target is process:
            self._fail(process, UnknownProcess(
                f"{process} cannot wait for process {request.process_id!r}"
            ))
            return

        if target.is_terminal:
            # Never resume on the caller's stack: let same-time logic finish first.
            self._wake(process, target, action="wait_for", priority=LATE_PRIORITY)
        else:
            target.waiters.append(process)
            process._registration = target

    def _handle_wait_until(self, process: Process, request: WaitUntil) -> None:
        try:
            result = request.condition.evaluate()
        except Exception as exc:
            self._fail(process, exc)
            return

        if result:
            self._wake(process, result, action="condition")
        else:
            self._conditions[process.pid] = request.condition
            process._registration = request.condition

    def _handle_yield(self, process: Process, request: YieldTurn) -> None:
        self._schedule_resume(process, self.now, NORMAL_PRIORITY, action="yield")

    def _handle_signal(self, process: Process, request: Signal) -> None:
        if request.scheduler is not self:
            self._fail(process, InvalidRequest(f"{request!r} belongs to another scheduler"))
            return
        if request.triggered:
            self._wake(process, request.value, action=request.name, source=request)
        else:
            request.waiters.append(process)
            process._registration = request

    def _check_conditions(self) -> None:
        for pid, condition in list(self._conditions.items()):
            if pid not in self._conditions:
                continue
            process = self.processes[pid]
            try:
                result = condition.evaluate()
            except Exception as exc:
                del self._conditions[pid]
                process._registration = None
                self._fail(process, exc)
                continue
            if result:
                del self._conditions[pid]
                self._wake(process, result, action="condition")

    def _detach(self, process: Process) -> None:
        """Drop whatever would resume ``process``."""
        if process.pending_event is not None:
            self.queue.cancel(process.pending_event)
            process.pending_event = None

        registration = process._registration
        process._registration = None
        if isinstance(registration, Process):
            registration.waiters.remove(process)
        elif isinstance(registration, Condition):
            self._conditions.pop(process.pid, None)
        elif isinstance(registration, Signal):
            if process in registration.waiters:
                registration.waiters.remove(process)
            registration.abandon()

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def _terminate(self, process: Process, value: Any, action: str = "terminate") -> None:
        process.state = ProcessState.TERMINATED
        process.value = value
        self._finish(process, action)
        self.logger.debug(f"[{self.name}] {process} terminated at t={self.now}")

    def _fail(self, process: Process, error: BaseException) -> None:
        if process._generator is not None and inspect.getgeneratorstate(process._generator) == inspect.GEN_SUSPENDED:
            process._generator.close()
        process.state = ProcessState.FAILED
        process.error = error
        self._finish(process, "fail")
        self.logger.warning(f"[{self.name}] {process} failed at t={self.now}: {error!r}")
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f"[{self.name}] Failure of {process}", exc_info=error)

    def _finish(self, process: Process, action: str) -> None:
        process.finished_at = self.now
        process.pending_event = None
        process._registration = None
        process._generator = None
        if self.trace_enabled:
            self.trace.append(TraceRecord(self.now, process.pid, action))

        waiters, process.waiters = process.waiters, []
        for waiter in waiters:
            self._wake(waiter, process, action="wait_for")

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def process_states(self) -> Dict[int, ProcessState]:
        return {pid: p.state for pid, p in self.processes.items()}

    def snapshot(self, run_id: int = 0):
        """Summarise this run as a ``TerminalSnapshot``."""
        from ..manager.run_config import TerminalSnapshot

        return TerminalSnapshot.from_scheduler(run_id, self)

    def __repr__(self) -> str:
        return (
            f"Scheduler(name={self.name!r}, now={self.now}, status={self.status.value}, "
            f"pending={len(self.queue)}, processes={len(self.processes)})"
        )
