"""
Console status reporting for the Chant Reminder.

This module provides a centralized reporter that shows setup steps with
checkmarks and then keeps a single live status line current while recording
or listening.
"""

from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.status import Status

from .types import SessionState

# Characters of live transcript shown on the status line
STATUS_TRANSCRIPT_CHARS = 60


def format_chant_time(seconds: int) -> str:
    """Format seconds as '45s' or '2m 5s'."""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"


def live_panel_text(state: SessionState) -> str:
    """Final transcript followed by the interim fragment in parentheses."""
    parts = [state.live_final_text, f"({state.live_interim_text})" if state.live_interim_text else ""]
    return " ".join(part for part in parts if part)


def render_session_status(state: SessionState, chant_label: str = "Chant Time Since Reminder") -> str:
    """One-line summary of a listening session for the status spinner."""
    live = live_panel_text(state)
    if len(live) > STATUS_TRANSCRIPT_CHARS:
        live = "…" + live[-STATUS_TRANSCRIPT_CHARS:]
    line = f"{chant_label}: [bold]{format_chant_time(state.chant_elapsed_sec)}[/bold]  🔔 {state.reminder_count}"
    if live:
        line += f"  [dim]{escape(live)}[/dim]"
    return line


class ProgressReporter:
    """
    Status reporter with step completion tracking.

    Steps are printed with a checkmark once the next one begins; update()
    changes the spinner text without completing anything.
    """

    def __init__(self):
        self._status: Optional[Status] = None
        self._console: Optional[Console] = None
        self._completed_steps: List[str] = []
        self._current_step: Optional[str] = None

    def initialize(self, console: Console, initial_message: str = "Starting...") -> Status:
        """
        Initialize the reporter with a console and create a status object.

        Returns:
            Status object that should be used in a context manager
        """
        self._console = console
        self._status = console.status(f"[dim]{initial_message}[/dim]")
        self._completed_steps = []
        self._current_step = initial_message
        return self._status

    def step(self, message: str) -> None:
        """Mark the current step completed and start a new one."""
        if self._status is None:
            return
        if self._current_step is not None:
            self._completed_steps.append(self._current_step)
            if self._console is not None:
                self._console.print(f"[green]✓[/green] [dim]{self._current_step}[/dim]")
        self._current_step = message
        self._status.update(f"[dim]{message}[/dim]")

    def complete_step(self, message: Optional[str] = None) -> None:
        """Mark the current step as completed without starting a new one."""
        if self._current_step is not None:
            completion_msg = message or self._current_step
            self._completed_steps.append(completion_msg)
            if self._console is not None:
                self._console.print(f"[green]✓[/green] [dim]{completion_msg}[/dim]")
            self._current_step = None

    def update(self, message: str) -> None:
        """Replace the spinner text (markup allowed)."""
        if self._status is not None:
            self._status.update(message)


# Global reporter instance
reporter = ProgressReporter()
