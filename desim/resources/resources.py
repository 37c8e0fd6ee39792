"""Shared resources that processes contend for.

Every blocking operation returns a ``Signal``; the calling process yields it
and is resumed (at the current time, FIFO among waiters) once the operation
can complete.
"""

from collections import deque
from typing import Any, Deque, Optional, Tuple

from ..core.errors import SimulationError
from ..core.process import Signal
from ..utils.logger import setup_logger


class Resource:
    """A pool of ``capacity`` identical slots.

    Example::

        def customer(scheduler, counter):
            yield counter.request()
            yield scheduler.schedule_timeout(5)
            counter.release()
    """

    def __init__(self, scheduler, capacity: int = 1, name: Optional[str] = None):
        if capacity < 1:
            raise ValueError("Resource capacity must be at least 1")
        self.scheduler = scheduler
        self.capacity = capacity
        self.name = name or "resource"
        self.count = 0
        self.queue: Deque[Signal] = deque()
        self.logger = setup_logger(self.__class__.__name__)

    @property
    def available(self) -> int:
        return self.capacity - self.count

    @property
    def queue_length(self) -> int:
        return len(self.queue)

    def request(self) -> Signal:
        """Ask for a slot; the returned signal fires once it is granted."""
        signal = self.scheduler.signal(f"{self.name}.request", on_abandon=self._abandon)
        if self.count < self.capacity and not self.queue:
            self.count += 1
            signal.succeed(self)
        else:
            self.queue.append(signal)
            self.logger.debug(
                f"{self.name}: request queued at t={self.scheduler.now} ({len(self.queue)} waiting)"
            )
        return signal

    def cancel(self, signal: Signal) -> bool:
        """Withdraw a request that has not been granted yet."""
        try:
            self.queue.remove(signal)
        except ValueError:
            return False
        return True

    def _abandon(self, signal: Signal) -> None:
        # Requester was interrupted or killed: withdraw, or hand back the slot.
        if not self.cancel(signal) and signal.triggered:
            self.release()

    def release(self) -> None:
        """Give a slot back, handing it to the oldest queued request if any."""
        if self.count == 0:
            raise SimulationError(f"{self.name}: release without a matching request")
        if self.queue:
            # The slot passes straight to the next requester.
            self.queue.popleft().succeed(self)
        else:
            self.count -= 1

    def __repr__(self) -> str:
        return f"Resource(name={self.name!r}, count={self.count}/{self.capacity}, queued={len(self.queue)})"


class Store:
    """FIFO buffer of items with an optional capacity."""

    def __init__(self, scheduler, capacity: float = float("inf"), name: Optional[str] = None):
        if capacity < 1:
            raise ValueError("Store capacity must be at least 1")
        self.scheduler = scheduler
        self.capacity = capacity
        self.name = name or "store"
        self.items: Deque[Any] = deque()
        self._getters: Deque[Signal] = deque()
        self._putters: Deque[Tuple[Signal, Any]] = deque()

    def put(self, item: Any) -> Signal:
        """Add an item; the signal fires once it is in the store."""
        signal = self.scheduler.signal(f"{self.name}.put", on_abandon=self._abandon_put)
        self._putters.append((signal, item))
        self._trigger()
        return signal

    def get(self) -> Signal:
        """Take the oldest item; the signal fires with the item."""
        signal = self.scheduler.signal(f"{self.name}.get", on_abandon=self._abandon_get)
        self._getters.append(signal)
        self._trigger()
        return signal

    def _abandon_put(self, signal: Signal) -> None:
        # A completed put stays in the store.
        for entry in self._putters:
            if entry[0] is signal:
                self._putters.remove(entry)
                return

    def _abandon_get(self, signal: Signal) -> None:
        try:
            self._getters.remove(signal)
        except ValueError:
            if signal.triggered:
                self.items.appendleft(signal.value)
                self._trigger()

    def _trigger(self) -> None:
        progress = True
        while progress:
            progress = False
            while self._putters and len(self.items) < self.capacity:
                signal, item = self._putters.popleft()
                self.items.append(item)
                signal.succeed(item)
                progress = True
            while self._getters and self.items:
                self._getters.popleft().succeed(self.items.popleft())
                progress = True

    def __len__(self) -> int:
        return len(self.items)

    def __repr__(self) -> str:
        return f"Store(name={self.name!r}, items={len(self.items)}, capacity={self.capacity})"


class Container:
    """Continuous amount of some substance (fuel, money, ...).

    ``put`` never blocks: amounts above capacity are discarded. ``get``
    blocks until the level covers the requested amount.
    """

    def __init__(self, scheduler, capacity: float, init: float = 0.0, name: Optional[str] = None):
        if capacity <= 0:
            raise ValueError("Container capacity must be positive")
        if not 0 <= init <= capacity:
            raise ValueError("Initial level must be between 0 and capacity")
        self.scheduler = scheduler
        self.capacity = capacity
        self.level = init
        self.name = name or "container"
        self._getters: Deque[Tuple[Signal, float]] = deque()

    def put(self, amount: float) -> float:
        """Add ``amount``, clamped at capacity.

        Returns:
            The amount actually added
        """
        if amount < 0:
            raise ValueError("Cannot put a negative amount")
        added = min(amount, self.capacity - self.level)
        self.level += added
        self._trigger()
        return added

    def get(self, amount: float) -> Signal:
        """Withdraw ``amount``; the signal fires with the amount once available."""
        if amount < 0:
            raise ValueError("Cannot get a negative amount")
        if amount > self.capacity:
            raise ValueError(f"Cannot get {amount} from a container of capacity {self.capacity}")
        signal = self.scheduler.signal(f"{self.name}.get", on_abandon=self._abandon_get)
        self._getters.append((signal, amount))
        self._trigger()
        return signal

    def _abandon_get(self, signal: Signal) -> None:
        for entry in self._getters:
            if entry[0] is signal:
                self._getters.remove(entry)
                break
        else:
            if signal.triggered:
                self.level = min(self.capacity, self.level + signal.value)
        self._trigger()

    def _trigger(self) -> None:
        while self._getters and self._getters[0][1] <= self.level:
            signal, amount = self._getters.popleft()
            self.level -= amount
            signal.succeed(amount)

    def __repr__(self) -> str:
        return f"Container(name={self.name!r}, level={self.level}/{self.capacity})"
