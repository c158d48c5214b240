from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple
import heapq
import itertools


@dataclass(order=True)
class _ScheduledEvent:
    scheduled_time: int
    priority: int
    order: int
    callback: Callable[..., None] = field(compare=False)
    args: Tuple[Any, ...] = field(default_factory=tuple, compare=False)
    kwargs: dict = field(default_factory=dict, compare=False)


class Simulator:
    """Discrete-event clock counting integer ticks with deterministic ordering."""

    def __init__(self, start_time: int = 0):
        self._clock = start_time
        self._queue: List[_ScheduledEvent] = []
        self._order_counter = itertools.count()
        self._running = False

    @property
    def now(self) -> int:
        """Return the current simulated tick."""
        return self._clock

    @property
    def pending(self) -> int:
        return len(self._queue)

    def next_event_time(self) -> Optional[int]:
        if not self._queue:
            return None
        return self._queue[0].scheduled_time

    def schedule_at(
        self,
        scheduled_time: int,
        callback: Callable[..., None],
        *args: Any,
        priority: int = 0,
        **kwargs: Any,
    ) -> None:
        """Schedule a callback to run at an absolute tick."""
        if scheduled_time < self._clock:
            raise ValueError("Cannot schedule events in the past")

        event = _ScheduledEvent(
            scheduled_time=int(scheduled_time),
            priority=priority,
            order=next(self._order_counter),
            callback=callback,
            args=args,
            kwargs=kwargs,
        )
        heapq.heappush(self._queue, event)

    def schedule_in(
        self,
        delay: int,
        callback: Callable[..., None],
        *args: Any,
        priority: int = 0,
        **kwargs: Any,
    ) -> None:
        """Schedule a callback relative to the current tick."""
        if delay < 0:
            raise ValueError("Delay must be non-negative")
        self.schedule_at(self._clock + delay, callback, *args, priority=priority, **kwargs)

    def step(self) -> bool:
        """Advance to the next scheduled tick and fire every event due at it.

        Events scheduled for that same tick while firing are processed too.
        Returns False without moving the clock when nothing is pending.
        """
        if not self._queue:
            return False

        self._clock = self._queue[0].scheduled_time
        while self._queue and self._queue[0].scheduled_time == self._clock:
            event = heapq.heappop(self._queue)
            event.callback(*event.args, **event.kwargs)
        return True

    def run(self, until: Optional[int] = None, max_events: Optional[int] = None) -> None:
        """Run the simulation until the queue empties or a limit is hit."""
        processed = 0
        self._running = True

        while self._queue and self._running:
            event = heapq.heappop(self._queue)
            if until is not None and event.scheduled_time > until:
                heapq.heappush(self._queue, event)
                break

            self._clock = event.scheduled_time
            event.callback(*event.args, **event.kwargs)

            processed += 1
            if max_events is not None and processed >= max_events:
                break

        self._running = False

    def run_until(self, predicate: Callable[[], bool]) -> bool:
        """Step the clock until ``predicate`` holds or no events remain."""
        while not predicate():
            if not self.step():
                return predicate()
        return True

    def stop(self) -> None:
        """Stop processing after the current event."""
        self._running = False

    def clear(self) -> None:
        """Remove all scheduled events; the clock keeps its current tick."""
        self._queue.clear()
