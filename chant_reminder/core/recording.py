"""
Mantra recording.

Recording runs the speech source without any matching: every final fragment
is kept, the latest interim fragment trails the preview, and committing turns
the preview into the phrase to save.
"""

import logging
import re
from typing import Any, List, Optional, Tuple

from .channel import MessagePump
from .reconnect import ReconnectPolicy
from .scheduler import Clock, MonotonicClock
from .speech import RecognitionTransientError, RecognitionUnavailable, SpeechSource
from .types import Fragment, SourceEvent

logger = logging.getLogger(__name__)

WHITESPACE_PATTERN = re.compile(r"\s+")

# Word pairs recognizers commonly glue together
DEGLUE_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\bsitaram\b", re.IGNORECASE), "sita ram"),
    (re.compile(r"\bsitaramji\b", re.IGNORECASE), "sita ram ji"),
]


class NoAudioCaptured(Exception):
    """Raised when a recording is committed without any recognized speech."""

    pass


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def prettify_mantra(raw: str) -> str:
    """Split commonly glued word pairs and normalize spacing."""
    text = (raw or "").strip()
    for pattern, replacement in DEGLUE_RULES:
        text = pattern.sub(replacement, text)
    return collapse_whitespace(text)


class RecordingController(MessagePump):
    """
    Captures a mantra from a speech source.

    The source is reopened under the reconnect policy when it ends while the
    recording is still running.
    """

    def __init__(
        self,
        source: Optional[SpeechSource] = None,
        locale: str = "en-IN",
        clock: Optional[Clock] = None,
        reconnect: Optional[ReconnectPolicy] = None,
    ):
        super().__init__()
        self.source = source
        self.locale = locale
        self.clock = clock or MonotonicClock()
        self.reconnect = reconnect or ReconnectPolicy()
        self.is_recording = False
        self.error: Optional[Exception] = None
        self._finals: List[str] = []
        self._interim = ""
        self._restart_due_at: Optional[float] = None

    @property
    def preview(self) -> str:
        """Final fragments plus the trailing interim fragment."""
        return collapse_whitespace(" ".join(part for part in [*self._finals, self._interim] if part))

    def start(self) -> None:
        """
        Begin a new recording, discarding any previous one.

        Raises:
            RecognitionUnavailable: The speech source cannot be opened
        """
        self.stop(commit=False)
        self.error = None
        self.is_recording = True
        self.reconnect.reset()
        if self.source is not None:
            try:
                self._open_source()
            except RecognitionUnavailable:
                self.stop(commit=False)
                raise

    def stop(self, commit: bool = True) -> Optional[str]:
        """
        End the recording.

        Args:
            commit: Return the prettified phrase instead of discarding it

        Returns:
            The phrase to save when committing, else None

        Raises:
            NoAudioCaptured: Committing with nothing recognized
        """
        self._advance_generation()
        if self.source is not None:
            self.source.close()
        self._restart_due_at = None

        was_recording = self.is_recording
        combined = self.preview
        self.is_recording = False
        self._finals = []
        self._interim = ""

        if not (commit and was_recording):
            return None
        phrase = prettify_mantra(combined)
        if not phrase:
            raise NoAudioCaptured("No audio captured. Please record again.")
        return phrase

    def handle(self, message: Any) -> None:
        if not self.is_recording:
            return
        if isinstance(message, Fragment):
            self.on_fragment(message)
        elif isinstance(message, SourceEvent):
            self.on_source_event(message)

    def on_fragment(self, fragment: Fragment) -> None:
        self.reconnect.heard()
        text = fragment.text.strip()
        if fragment.is_final:
            if text:
                self._finals.append(text)
            self._interim = ""
        else:
            self._interim = text

    def on_source_event(self, event: SourceEvent) -> None:
        """Reopen the recognizer, at once or after a backoff carried out by poll()."""
        if self.source is None:
            return
        if event.kind == "errored":
            logger.warning("Recording recognition error: %s", event.detail)
        now = self.clock.now()
        self.source.close()
        delay = self.reconnect.next_delay(now)
        if delay is None:
            # What was captured so far can still be committed
            self.error = RecognitionTransientError("Speech recognition kept failing during recording")
            logger.error("%s", self.error)
        elif delay <= 0:
            self._reopen()
        else:
            self._restart_due_at = now + delay

    def poll(self, timeout_sec: float = 0.1) -> int:
        """
        Handle pending messages and carry out a due restart.

        Returns:
            Number of messages handled
        """
        handled = self.wait(timeout_sec)
        if self.is_recording and self._restart_due_at is not None and self.clock.now() >= self._restart_due_at:
            self._reopen()
        return handled

    def _open_source(self) -> None:
        self._restart_due_at = None
        self.reconnect.opened(self.clock.now())
        try:
            self.source.open(self._sink(), self.locale)
        except RecognitionTransientError as e:
            self.on_source_event(SourceEvent(kind="errored", detail=str(e)))

    def _reopen(self) -> None:
        try:
            self._open_source()
        except RecognitionUnavailable as e:
            # Stop reopening; what was captured so far can still be committed
            self.error = e
            self._restart_due_at = None
            logger.error("Speech recognition is no longer available: %s", e)
