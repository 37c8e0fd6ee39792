"""Event queue implementation for discrete event simulation."""

import heapq
import math
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .errors import InvalidDuration

EPOCH = 0.0

# Priorities for events sharing the same timestamp (lower = sooner).
URGENT_PRIORITY = -1
NORMAL_PRIORITY = 0
LATE_PRIORITY = 2 ** 31 - 1


def validate_duration(duration: float) -> float:
    """Return ``duration`` as a float, rejecting negative and NaN values.

    Raises:
        InvalidDuration: If the duration is negative or not a number
    """
    try:
        value = float(duration)
    except (TypeError, ValueError):
        raise InvalidDuration(f"Duration must be a number, got {duration!r}")
    if math.isnan(value) or value < 0:
        raise InvalidDuration(f"Duration cannot be negative: {duration!r}")
    return value


@dataclass
class Event:
    """Event in the discrete event simulation.

    Attributes:
        time: Event timestamp
        priority: Priority for tie-breaking (lower = higher priority)
        callback: Continuation invoked with the event when it fires
        process_id: Process the event belongs to, if any
        action: Short label recorded in the run trace
        sequence: Insertion sequence number, assigned by the queue
    """
    time: float
    priority: int = 0
    callback: Optional[Callable[["Event"], Any]] = field(default=None, repr=False)
    process_id: Optional[int] = None
    action: str = "callback"
    sequence: int = -1
    cancelled: bool = False

    def __post_init__(self):
        """Validate event after initialization."""
        if self.time < 0:
            raise InvalidDuration("Event time cannot be negative")

    @property
    def key(self):
        """Total ordering key: (time, priority, sequence)."""
        return (self.time, self.priority, self.sequence)

    def __lt__(self, other: "Event") -> bool:
        return self.key < other.key


class EventHandle:
    """Handle to an event inserted in an ``EventQueue``.

    Used to cancel the event before it fires.
    """

    __slots__ = ("slot", "sequence", "_queue")

    def __init__(self, slot: int, sequence: int, queue: "EventQueue"):
        self.slot = slot
        self.sequence = sequence
        self._queue = queue

    @property
    def pending(self) -> bool:
        """True while the event is still waiting in the queue."""
        return self._queue._lookup(self) is not None

    @property
    def event(self) -> Optional[Event]:
        """The pending event, or None once fired or cancelled."""
        return self._queue._lookup(self)

    def __repr__(self) -> str:
        return f"EventHandle(slot={self.slot}, sequence={self.sequence}, pending={self.pending})"


class EventQueue:
    """Priority queue for managing simulation events.

    Events are ordered by time, then priority, then insertion order, so no
    two events ever compare equal. Events live in an arena of stable slots;
    the heap only stores ``(time, priority, sequence, slot)`` entries.
    Cancelling an event tombstones its slot and the heap entry is skipped
    lazily when it reaches the top.
    """

    def __init__(self):
        """Initialize empty event queue."""
        self._heap: List[tuple] = []
        self._slots: List[Optional[Event]] = []
        self._free: List[int] = []
        self._sequence = 0
        self._live = 0

    def insert(self, event: Event) -> EventHandle:
        """Add event to the queue.

        Args:
            event: Event to add; its ``sequence`` is overwritten

        Returns:
            Handle that can be passed to ``cancel``
        """
        event.sequence = self._sequence
        self._sequence += 1
        event.cancelled = False

        if self._free:
            slot = self._free.pop()
            self._slots[slot] = event
        else:
            slot = len(self._slots)
            self._slots.append(event)

        heapq.heappush(self._heap, (event.time, event.priority, event.sequence, slot))
        self._live += 1
        return EventHandle(slot, event.sequence, self)

    def pop_min(self) -> Optional[Event]:
        """Remove and return the next event.

        Returns:
            Next event to process, or None if queue is empty
        """
        while self._heap:
            _, _, sequence, slot = heapq.heappop(self._heap)
            event = self._slots[slot]
            if event is None or event.sequence != sequence:
                # Tombstone left behind by cancel()
                continue
            self._release(slot)
            return event
        return None

    def peek_min(self) -> Optional[Event]:
        """Return the next event without removing it.

        Returns:
            Next event, or None if queue is empty
        """
        while self._heap:
            _, _, sequence, slot = self._heap[0]
            event = self._slots[slot]
            if event is not None and event.sequence == sequence:
                return event
            heapq.heappop(self._heap)
        return None

    def cancel(self, handle: EventHandle) -> bool:
        """Remove a pending event.

        Args:
            handle: Handle returned by ``insert``

        Returns:
            True if the event was pending and is now removed, False if it
            already fired, was already cancelled or is unknown
        """
        event = self._lookup(handle)
        if event is None:
            return False
        event.cancelled = True
        self._release(handle.slot)
        return True

    def is_empty(self) -> bool:
        """Check if queue is empty.

        Returns:
            True if queue is empty
        """
        return self._live == 0

    def size(self) -> int:
        """Get number of pending events.

        Returns:
            Number of events
        """
        return self._live

    def clear(self) -> None:
        """Remove all events from queue."""
        for event in self._slots:
            if event is not None:
                event.cancelled = True
        self._heap.clear()
        self._slots.clear()
        self._free.clear()
        self._live = 0

    def _lookup(self, handle: EventHandle) -> Optional[Event]:
        if handle is None or handle._queue is not self:
            return None
        if not 0 <= handle.slot < len(self._slots):
            return None
        event = self._slots[handle.slot]
        if event is None or event.sequence != handle.sequence:
            return None
        return event

    def _release(self, slot: int) -> None:
        self._slots[slot] = None
        self._free.append(slot)
        self._live -= 1

    def __len__(self) -> int:
        """Get number of pending events."""
        return self._live

    def __bool__(self) -> bool:
        return self._live > 0

    def __repr__(self) -> str:
        """String representation of event queue."""
        return f"EventQueue(size={self._live}, next={self.peek_min()})"
