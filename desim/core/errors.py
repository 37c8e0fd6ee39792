"""Exceptions raised by the simulation kernel."""


class SimulationError(Exception):
    """Base class for all simulation errors."""


class InvalidDuration(SimulationError, ValueError):
    """A negative (or NaN) duration, or a target time in the past."""


class UnknownProcess(SimulationError, KeyError):
    """A process id that the scheduler does not know about."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else "unknown process"


class InvalidRequest(SimulationError, TypeError):
    """A process body yielded something that is not a request."""


class CausalityViolation(SimulationError):
    """An event was popped with a time earlier than the clock.

    This is an internal consistency check and should never happen.
    """


class Interrupt(Exception):
    """Thrown into a waiting process by ``Scheduler.interrupt``.

    Attributes:
        cause: Optional object describing why the process was interrupted
    """

    def __init__(self, cause=None):
        super().__init__(cause)
        self.cause = cause

    def __repr__(self) -> str:
        return f"Interrupt(cause={self.cause!r})"
