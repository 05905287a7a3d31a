"""
Clocks and periodic schedulers.

Periodic actions are not callbacks into the controller: a scheduler posts a
message to the controller's inbox every interval, and the controller handles
it like any other message. The thread scheduler drives live sessions; the
virtual scheduler drives replays and tests on a manual clock.
"""

import threading
import time
from typing import Any, Callable, List, Optional, Protocol

Sink = Callable[[Any], None]


class Clock(Protocol):
    """Monotonic time source in milliseconds."""

    def now(self) -> float: ...


class MonotonicClock:
    """Wall-independent clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic() * 1000.0


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)

    def now(self) -> float:
        return self._now

    def set(self, value_ms: float) -> None:
        if value_ms < self._now:
            raise ValueError(f"Clock cannot move backwards: {value_ms} < {self._now}")
        self._now = float(value_ms)

    def advance(self, delta_ms: float) -> None:
        self.set(self._now + delta_ms)


class Scheduler(Protocol):
    """Posts a message to a sink every interval until cancelled."""

    def every(self, interval_ms: int, message: Any, sink: Sink) -> None: ...

    def cancel_all(self) -> None: ...


class ThreadScheduler:
    """
    Real-time scheduler with one daemon thread per periodic message.

    Threads only post to the sink; they never touch controller state.
    """

    def __init__(self):
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    def every(self, interval_ms: int, message: Any, sink: Sink) -> None:
        if self._stop.is_set():
            self._stop = threading.Event()
        stop = self._stop

        def loop() -> None:
            interval = interval_ms / 1000.0
            next_due = time.monotonic() + interval
            while not stop.wait(max(0.0, next_due - time.monotonic())):
                sink(message)
                next_due += interval

        thread = threading.Thread(target=loop, name=f"chant-tick-{interval_ms}ms", daemon=True)
        self._threads.append(thread)
        thread.start()

    def cancel_all(self) -> None:
        self._stop.set()
        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current:
                thread.join(timeout=1.0)
        self._threads = []


class _Entry:
    __slots__ = ("next_due", "interval_ms", "message", "sink", "order")

    def __init__(self, next_due: float, interval_ms: int, message: Any, sink: Sink, order: int):
        self.next_due = next_due
        self.interval_ms = interval_ms
        self.message = message
        self.sink = sink
        self.order = order


class VirtualScheduler:
    """
    Scheduler on a ManualClock.

    Nothing fires by itself; fire_until() moves the clock through every due
    time in order and posts the due messages.
    """

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self._entries: List[_Entry] = []
        self._counter = 0

    def every(self, interval_ms: int, message: Any, sink: Sink) -> None:
        self._counter += 1
        self._entries.append(_Entry(self.clock.now() + interval_ms, interval_ms, message, sink, self._counter))

    def cancel_all(self) -> None:
        self._entries = []

    def next_due(self) -> Optional[float]:
        """Earliest pending due time, or None when nothing is scheduled."""
        if not self._entries:
            return None
        return min(entry.next_due for entry in self._entries)

    def fire_due(self, after_each: Optional[Callable[[], None]] = None) -> int:
        """
        Post every message due at the current clock time.

        Args:
            after_each: Called after each posted message (e.g. to pump the controller)

        Returns:
            Number of messages posted
        """
        fired = 0
        now = self.clock.now()
        while True:
            due = sorted((e for e in self._entries if e.next_due <= now), key=lambda e: (e.next_due, e.order))
            if not due:
                return fired
            entry = due[0]
            entry.next_due += entry.interval_ms
            entry.sink(entry.message)
            fired += 1
            if after_each is not None:
                after_each()

    def fire_until(self, until_ms: float, after_each: Optional[Callable[[], None]] = None) -> int:
        """Advance the clock through every due time up to until_ms."""
        fired = 0
        while True:
            due = self.next_due()
            if due is None or due > until_ms:
                break
            self.clock.set(due)
            fired += self.fire_due(after_each)
        if until_ms > self.clock.now():
            self.clock.set(until_ms)
        return fired
