"""Run configuration and terminal snapshots exchanged with the Manager."""

import copy
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from dataclasses_json import dataclass_json

from ..core.process import ProcessState
from ..core.simulator import RunOutcome, Scheduler


@dataclass
class ProcessSpec:
    """Description of one initial process of a run.

    Attributes:
        body: Generator function called as ``body(scheduler, *args, **kwargs)``
        args: Positional arguments passed after the scheduler
        kwargs: Keyword arguments
        name: Process name
        delay: Simulated time before the first step
        priority: Tie-break priority of the start event
    """
    body: Callable
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None
    delay: float = 0.0
    priority: int = 0

    def register(self, scheduler: Scheduler):
        return scheduler.process(
            self.body,
            *self.args,
            name=self.name,
            delay=self.delay,
            priority=self.priority,
            **copy.deepcopy(self.kwargs),
        )


@dataclass
class RunConfig:
    """Everything needed to build one isolated simulation run.

    Attributes:
        processes: Initial processes, registered in order
        seed: Seed of the run's random number generator
        max_time: Simulated time bound (run ends ``exhausted`` past it)
        max_events: Event count bound
        wall_clock_limit: Real seconds the run may take
        name: Run name used in logs
        params: Parameters exposed to bodies as ``scheduler.params``
        setup: Optional callable invoked with the fresh scheduler before the
            initial processes are registered (create resources here)
        trace: Whether the scheduler records its event trace
    """
    processes: List[ProcessSpec] = field(default_factory=list)
    seed: int = 0
    max_time: Optional[float] = None
    max_events: Optional[int] = None
    wall_clock_limit: Optional[float] = None
    name: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    setup: Optional[Callable[[Scheduler], Any]] = None
    trace: bool = True

    def build(self, run_id: int) -> Scheduler:
        """Create a fresh scheduler for this configuration.

        Parameters are deep-copied so runs never share mutable state.
        """
        scheduler = Scheduler(
            seed=self.seed,
            max_time=self.max_time,
            max_events=self.max_events,
            name=self.name or f"run-{run_id}",
            trace=self.trace,
            params=copy.deepcopy(self.params),
        )
        if self.setup is not None:
            self.setup(scheduler)
        for spec in self.processes:
            spec.register(scheduler)
        return scheduler

    def replace(self, **changes) -> "RunConfig":
        """Return a copy with some fields replaced."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_dict(cls, config: Mapping[str, Any], registry: Mapping[str, Callable]) -> "RunConfig":
        """Build a run configuration from a loaded YAML mapping.

        Args:
            config: The ``simulation`` section: ``seed``, ``max_time``,
                ``max_events``, ``wall_clock_limit``, ``name``, ``params``
                and a ``processes`` list whose entries name a body in
                ``registry`` (``{'body': 'customer', 'delay': 1.0, 'kwargs': {...}}``)
            registry: Mapping of body names to generator functions

        Returns:
            Run configuration
        """
        processes = []
        for entry in config.get('processes', []):
            body_name = entry['body']
            if body_name not in registry:
                raise KeyError(f"Unknown process body: {body_name}")
            count = entry.get('count', 1)
            for _ in range(count):
                processes.append(ProcessSpec(
                    body=registry[body_name],
                    args=tuple(entry.get('args', ())),
                    kwargs=dict(entry.get('kwargs', {})),
                    name=entry.get('name'),
                    delay=entry.get('delay', 0.0),
                    priority=entry.get('priority', 0),
                ))

        return cls(
            processes=processes,
            seed=config.get('seed', 0),
            max_time=config.get('max_time'),
            max_events=config.get('max_events'),
            wall_clock_limit=config.get('wall_clock_limit'),
            name=config.get('name'),
            params=dict(config.get('params', {})),
            trace=config.get('trace', True),
        )


@dataclass_json
@dataclass
class TerminalSnapshot:
    """Terminal state of one run, as reported by the Manager.

    Attributes:
        run_id: Id of the run handle this snapshot belongs to
        seed: Seed the run was built with
        final_clock: Clock value when the run stopped
        outcome: ``completed``, ``aborted`` or ``exhausted``
        process_states: Final state of every process, by process id
        process_values: Return values of terminated processes
        failures: Error descriptions of failed processes
        events_processed: Number of executed events
        metrics: Aggregated user metrics
        diagnostic: Why the run stopped, when not simply completed
        wall_time: Real seconds spent in the main loop
    """
    run_id: int
    seed: int
    final_clock: float
    outcome: RunOutcome
    process_states: Dict[int, ProcessState] = field(default_factory=dict)
    process_values: Dict[int, Any] = field(default_factory=dict)
    failures: Dict[int, str] = field(default_factory=dict)
    events_processed: int = 0
    metrics: Dict[str, Any] = field(default_factory=dict)
    diagnostic: Optional[str] = None
    wall_time: float = 0.0
    name: Optional[str] = None

    @classmethod
    def from_scheduler(cls, run_id: int, scheduler: Scheduler) -> "TerminalSnapshot":
        processes = scheduler.processes.values()
        return cls(
            run_id=run_id,
            seed=scheduler.seed,
            final_clock=scheduler.now,
            outcome=scheduler.outcome or RunOutcome.ABORTED,
            process_states={p.pid: p.state for p in processes},
            process_values={p.pid: p.value for p in processes if p.state == ProcessState.TERMINATED},
            failures={p.pid: repr(p.error) for p in processes if p.state == ProcessState.FAILED},
            events_processed=scheduler.events_processed,
            metrics=scheduler.metrics.compute_metrics(),
            diagnostic=scheduler.diagnostic,
            wall_time=scheduler.wall_time,
            name=scheduler.name,
        )

    def count_states(self) -> Dict[str, int]:
        """Number of processes in each state."""
        counts = {state.value: 0 for state in ProcessState}
        for state in self.process_states.values():
            counts[state.value] += 1
        return counts
