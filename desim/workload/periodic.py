"""Process bodies that repeat an action at constant, deterministic or random intervals."""

from typing import Any, Callable, Optional, Union

from .distributions import Constant, Distribution, create_distribution
from ..core.event_queue import validate_duration
from ..core.process import ScheduleAt, Timeout


def periodic(
    action: Callable[[Any], Any],
    interval: Optional[float] = None,
    distribution: Optional[Union[Distribution, dict]] = None,
    path: Optional[Callable[[float], float]] = None,
    start: float = 0.0,
    end: Optional[float] = None,
    round_to_int: bool = False,
    max_activations: Optional[int] = None,
):
    """Build a process body that calls ``action(scheduler)`` repeatedly.

    Exactly one of ``interval``, ``distribution`` or ``path`` selects how the
    delta to the next activation is obtained:

    - ``interval``: constant delta
    - ``distribution``: delta sampled from the scheduler's seeded generator
    - ``path``: deterministic function of the current time

    The first activation happens at ``start``. With ``end`` set the process
    terminates once the next activation would fall after ``end``; without it
    the process runs until the scheduler stops. A zero delta also ends the
    process, since it would never let the clock move.

    Args:
        action: Called with the scheduler at each activation
        round_to_int: Round sampled deltas to whole time units
        max_activations: Stop after this many activations

    Returns:
        Generator function suitable for ``Scheduler.process``; it returns
        the number of activations when it terminates
    """
    modes = [m for m in (interval, distribution, path) if m is not None]
    if len(modes) != 1:
        raise ValueError("Exactly one of interval, distribution or path must be given")

    start = validate_duration(start)
    if end is not None and end < start:
        raise ValueError("end cannot be before start")

    if interval is not None:
        distribution = Constant(validate_duration(interval))
    elif isinstance(distribution, dict):
        distribution = create_distribution(distribution)

    def next_delta(scheduler) -> float:
        if path is not None:
            delta = validate_duration(path(scheduler.now))
        else:
            delta = distribution.sample(scheduler.rng)
        if round_to_int:
            delta = float(round(delta))
        return delta

    def body(scheduler):
        if start > scheduler.now:
            yield ScheduleAt(start)

        activations = 0
        while True:
            action(scheduler)
            activations += 1
            if max_activations is not None and activations >= max_activations:
                return activations

            delta = next_delta(scheduler)
            if delta <= 0 or (end is not None and scheduler.now + delta > end):
                return activations
            yield Timeout(delta)

    body.__name__ = getattr(action, "__name__", "periodic")
    return body
