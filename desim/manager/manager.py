"""Manager orchestrating many independent simulation runs."""

import itertools
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
from tqdm import tqdm

from .run_config import RunConfig, TerminalSnapshot
from ..core.simulator import RunOutcome, RunStatus, Scheduler
from ..utils.logger import setup_logger


class RunHandle:
    """Handle to one run created by ``Manager.new_run``.

    Attributes:
        run_id: Position of the run in the manager, starting at 0
        config: Configuration the run was built from
        scheduler: The run's scheduler; released once the snapshot is taken
            unless the manager retains schedulers
        snapshot: Terminal snapshot once the run finished
    """

    def __init__(self, run_id: int, config: RunConfig, scheduler: Scheduler):
        self.run_id = run_id
        self.config = config
        self.scheduler: Optional[Scheduler] = scheduler
        self.snapshot: Optional[TerminalSnapshot] = None

    @property
    def done(self) -> bool:
        return self.snapshot is not None

    def __repr__(self) -> str:
        state = self.snapshot.outcome.value if self.snapshot else "pending"
        return f"RunHandle(run_id={self.run_id}, seed={self.config.seed}, state={state})"


class Manager:
    """Create, drive and collect independent simulation runs.

    Each run owns its scheduler (clock, queue, processes, random generator);
    the only thing shared between runs is the read-only configuration. Runs
    can be executed one after another or on a thread pool, one task per run,
    with results handed back through futures.
    """

    def __init__(self, parallelism: int = 1, retain: bool = False, progress: bool = False):
        """Initialize manager.

        Args:
            parallelism: Default number of runs executed concurrently
            retain: Keep each run's scheduler after its snapshot is taken
            progress: Show a progress bar in ``run_all`` by default
        """
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self.parallelism = parallelism
        self.retain = retain
        self.progress = progress
        self.logger = setup_logger(self.__class__.__name__)

        self.runs: List[RunHandle] = []
        self.results: Dict[int, TerminalSnapshot] = {}

    def new_run(self, config: RunConfig) -> RunHandle:
        """Create a fresh run from ``config``.

        Returns:
            Handle used to run, cancel and look up the run
        """
        run_id = len(self.runs)
        scheduler = config.build(run_id)
        handle = RunHandle(run_id, config, scheduler)
        self.runs.append(handle)
        self.logger.debug(f"Created run {run_id} (seed={config.seed}, processes={len(scheduler.processes)})")
        return handle

    def sweep(self, base_config: RunConfig, seeds: Optional[Iterable[int]] = None,
              **param_grid: Sequence[Any]) -> List[RunHandle]:
        """Create one run per seed and parameter combination.

        Args:
            base_config: Configuration every run starts from
            seeds: Seeds for replications, defaults to the base seed only
            **param_grid: Parameter name -> values; every combination is run
                and merged into ``params``

        Returns:
            Handles of the new runs, seeds varying slowest
        """
        seeds = list(seeds) if seeds is not None else [base_config.seed]
        names = list(param_grid)
        combinations = list(itertools.product(*(param_grid[name] for name in names)))

        handles = []
        for seed in seeds:
            for values in combinations:
                params = dict(base_config.params)
                params.update(zip(names, values))
                handles.append(self.new_run(base_config.replace(seed=seed, params=params)))

        self.logger.info(f"Sweep created {len(handles)} runs ({len(seeds)} seeds x {len(combinations)} points)")
        return handles

    def run(self, handle: RunHandle) -> TerminalSnapshot:
        """Drive one run to completion.

        Returns:
            Terminal snapshot of the run
        """
        snapshot = self._execute(handle)
        self._record(handle, snapshot)
        return snapshot

    def run_all(
        self,
        handles: Optional[Sequence[RunHandle]] = None,
        parallelism: Optional[int] = None,
        progress: Optional[bool] = None,
    ) -> List[TerminalSnapshot]:
        """Execute several runs, possibly concurrently.

        Args:
            handles: Runs to execute, defaults to every run not yet done
            parallelism: Number of concurrent runs, defaults to the manager's
            progress: Show a progress bar

        Returns:
            Snapshots in the same order as ``handles``

        Raises:
            ValueError: If a handle appears more than once
        """
        if handles is None:
            handles = [h for h in self.runs if not h.done]
        handles = list(handles)
        if len({id(h) for h in handles}) != len(handles):
            raise ValueError("run_all got the same run more than once")
        parallelism = parallelism or self.parallelism
        progress = self.progress if progress is None else progress

        start_time = time.time()
        self.logger.info(f"Running {len(handles)} runs with parallelism={parallelism}")

        bar = tqdm(total=len(handles), desc="runs", disable=not progress)
        try:
            if parallelism == 1 or len(handles) <= 1:
                snapshots = []
                for handle in handles:
                    snapshots.append(self._execute(handle))
                    bar.update(1)
            else:
                with ThreadPoolExecutor(max_workers=parallelism, thread_name_prefix="desim-run") as pool:
                    futures = {pool.submit(self._execute, handle): i for i, handle in enumerate(handles)}
                    snapshots = [None] * len(handles)
                    for future in as_completed(futures):
                        snapshots[futures[future]] = future.result()
                        bar.update(1)
        finally:
            bar.close()

        for handle, snapshot in zip(handles, snapshots):
            self._record(handle, snapshot)

        elapsed_time = time.time() - start_time
        outcomes = dict(Counter(s.outcome.value for s in snapshots))
        self.logger.info(f"Finished {len(snapshots)} runs in {elapsed_time:.2f}s: {outcomes}")
        return snapshots

    def cancel(self, handle: RunHandle, reason: str = "cancelled by manager") -> bool:
        """Ask a run to stop before its next event.

        Returns:
            False if the run already finished
        """
        if handle.done or handle.scheduler is None:
            return False
        handle.scheduler.request_stop(reason)
        return True

    def results_frame(self) -> pd.DataFrame:
        """Tabulate all collected snapshots, one row per run, with the run's params."""
        rows = []
        for run_id in sorted(self.results):
            snapshot = self.results[run_id]
            row = {
                'run_id': snapshot.run_id,
                'name': snapshot.name,
                'seed': snapshot.seed,
                'outcome': snapshot.outcome.value,
                'final_clock': snapshot.final_clock,
                'events_processed': snapshot.events_processed,
                'wall_time': snapshot.wall_time,
            }
            row.update(self.runs[run_id].config.params)
            row.update(snapshot.count_states())
            row.update(snapshot.metrics)
            rows.append(row)
        return pd.DataFrame(rows)

    def _execute(self, handle: RunHandle) -> TerminalSnapshot:
        """Run ``handle`` and build its snapshot. Never raises for kernel errors."""
        if handle.snapshot is not None:
            return handle.snapshot

        scheduler = handle.scheduler
        if scheduler.status == RunStatus.IDLE:
            try:
                scheduler.run(wall_clock_limit=handle.config.wall_clock_limit)
            except Exception as e:
                self.logger.error(f"Run {handle.run_id} aborted: {e}", exc_info=True)
                scheduler.outcome = RunOutcome.ABORTED

        return TerminalSnapshot.from_scheduler(handle.run_id, scheduler)

    def _record(self, handle: RunHandle, snapshot: TerminalSnapshot) -> None:
        handle.snapshot = snapshot
        self.results[handle.run_id] = snapshot
        if not self.retain:
            handle.scheduler = None

    def __len__(self) -> int:
        return len(self.runs)

    def __repr__(self) -> str:
        return f"Manager(runs={len(self.runs)}, finished={len(self.results)})"
