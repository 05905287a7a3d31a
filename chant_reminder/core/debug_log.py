"""
Debug trace for listening sessions.

When CR_DEBUG=1 every fragment, match decision, reminder and source event of a
session is appended as one JSON object per line to
{project_root}/.chant_reminder/debug/session_<timestamp>/events.jsonl, so a
wrongly timed beep can be explained after the fact.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .types import Fragment, SessionState, SourceEvent


class SessionDebugLogger:
    """
    Appends session events to a JSON-lines file.

    Does nothing (and creates no directories) unless enabled.
    """

    def __init__(self, project_root: str = ".", enabled: Optional[bool] = None):
        """
        Initialize debug logger.

        Args:
            project_root: Project root directory for log storage
            enabled: Override debug enable flag, uses CR_DEBUG env var if None
        """
        self.project_root = project_root
        self.enabled = enabled if enabled is not None else is_debug_enabled()
        self.session_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file: Optional[Path] = None

        if self.enabled:
            self._setup_log_directory()

    def _setup_log_directory(self) -> None:
        """Create debug log directory structure."""
        session_dir = Path(self.project_root) / ".chant_reminder" / "debug" / f"session_{self.session_id}"
        session_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = session_dir / "events.jsonl"

    def is_enabled(self) -> bool:
        return self.enabled

    def _write(self, step: str, clock_ms: float, data: Dict[str, Any]) -> None:
        if not self.enabled or self.log_file is None:
            return
        record = {
            "timestamp": datetime.now().isoformat(),
            "session_id": self.session_id,
            "clock_ms": round(clock_ms, 1),
            "step": step,
            **data,
        }
        with open(self.log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")

    def log_fragment(self, clock_ms: float, fragment: Fragment, matched: bool, flagged: bool) -> None:
        """Log one fragment together with the match engine's decision."""
        self._write(
            "fragment",
            clock_ms,
            {
                "text": fragment.text,
                "is_final": fragment.is_final,
                "confidence": fragment.confidence,
                "matched": matched,
                "flagged": flagged,
            },
        )

    def log_reminder(self, clock_ms: float, reason: str, state: SessionState) -> None:
        """Log a fired reminder and the session counters after it."""
        self._write(
            "reminder",
            clock_ms,
            {
                "reason": reason,
                "reminder_count": state.reminder_count,
                "last_valid_utterance_at": state.last_valid_utterance_at,
                "last_mismatch_reminder_at": state.last_mismatch_reminder_at,
            },
        )

    def log_source_event(self, clock_ms: float, event: SourceEvent, restart_delay_ms: Optional[float]) -> None:
        """Log a source end/error and the restart decision (None means gave up)."""
        self._write(
            "source_event",
            clock_ms,
            {"kind": event.kind, "detail": event.detail, "restart_delay_ms": restart_delay_ms},
        )


def is_debug_enabled() -> bool:
    """
    Check if debug logging is enabled via environment variable.

    Returns:
        True if CR_DEBUG=1 is set
    """
    return os.getenv("CR_DEBUG", "0") == "1"
