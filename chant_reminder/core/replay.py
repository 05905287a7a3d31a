"""
Scripted replay of a listening session in virtual time.

A replay script lists timed recognition results, one per line:

    # ms   kind     conf  text
    0      final    0.9   om namah shivaya
    1200   interim  0.4   om nama
    4000   end
    4100   error    network dropped

Times are milliseconds from session start. Ticks and fragments are delivered
in time order on a ManualClock, so a replay always produces the same
reminders.
"""

from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .scheduler import VirtualScheduler
from .session import SessionController
from .types import Fragment, SourceEvent


class ReplayError(Exception):
    """Raised when a replay script cannot be parsed."""

    pass


class ReplayEvent(BaseModel):
    """One scripted message and the time it is delivered."""

    model_config = ConfigDict(frozen=True)

    at_ms: float = Field(..., ge=0.0, description="Delivery time from session start")
    message: Union[Fragment, SourceEvent] = Field(..., description="Fragment or source lifecycle event")


def parse_script(text: str) -> List[ReplayEvent]:
    """
    Parse a replay script.

    Raises:
        ReplayError: On the first malformed line, naming its line number
    """
    events: List[ReplayEvent] = []
    for lineno, line in enumerate(text.splitlines(), 1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        parts = stripped.split(None, 3)
        try:
            at_ms = float(parts[0])
        except ValueError:
            raise ReplayError(f"Line {lineno}: time must be a number of milliseconds, got '{parts[0]}'")
        if at_ms < 0:
            raise ReplayError(f"Line {lineno}: time cannot be negative")
        if len(parts) < 2:
            raise ReplayError(f"Line {lineno}: missing event kind")

        kind = parts[1].lower()
        if kind == "end":
            message: Any = SourceEvent(kind="ended")
        elif kind == "error":
            detail = stripped.split(None, 2)[2] if len(parts) > 2 else None
            message = SourceEvent(kind="errored", detail=detail)
        elif kind in ("final", "interim"):
            if len(parts) < 4:
                raise ReplayError(f"Line {lineno}: expected '<ms> {kind} <confidence> <text>'")
            try:
                confidence = float(parts[2])
            except ValueError:
                raise ReplayError(f"Line {lineno}: confidence must be a number, got '{parts[2]}'")
            if not 0.0 <= confidence <= 1.0:
                raise ReplayError(f"Line {lineno}: confidence must be within [0, 1]")
            message = Fragment(text=parts[3], is_final=kind == "final", confidence=confidence)
        else:
            raise ReplayError(f"Line {lineno}: unknown event kind '{parts[1]}' (use final, interim, end or error)")

        events.append(ReplayEvent(at_ms=at_ms, message=message))
    return events


def load_script(path: Union[str, Path]) -> List[ReplayEvent]:
    """Read and parse a replay script file."""
    script_path = Path(path)
    if not script_path.is_file():
        raise FileNotFoundError(f"Replay script not found: {path}")
    return parse_script(script_path.read_text(encoding="utf-8"))


class ReplaySource:
    """Speech source fed by the replay runner instead of a recognizer."""

    def __init__(self):
        self._sink: Optional[Any] = None
        self.open_count = 0
        self.locale: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self._sink is not None

    def open(self, sink: Any, locale: str = "en-IN") -> None:
        self._sink = sink
        self.locale = locale
        self.open_count += 1

    def close(self) -> None:
        self._sink = None

    def deliver(self, message: Any) -> bool:
        """Post a message if the source is open; closed sources drop it."""
        if self._sink is None:
            return False
        self._sink(message)
        return True


def run_replay(
    controller: SessionController,
    scheduler: VirtualScheduler,
    source: ReplaySource,
    events: Iterable[ReplayEvent],
    duration_ms: float,
) -> None:
    """
    Start the controller and play the script to duration_ms.

    The controller must use the given scheduler, the scheduler's clock and
    the given source. Ticks due at the same time as a script event are
    delivered first.
    """
    clock = scheduler.clock
    controller.start()
    base = clock.now()
    end = base + duration_ms

    for event in sorted(events, key=lambda e: e.at_ms):
        at = base + event.at_ms
        if at > end:
            break
        scheduler.fire_until(at, controller.pump)
        if not controller.is_active:
            return
        source.deliver(event.message)
        controller.pump()
        if not controller.is_active:
            return

    scheduler.fire_until(end, controller.pump)
