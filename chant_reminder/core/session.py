"""
Listening session controller.

The controller is the state machine behind a listening session: it consumes
fragments, scheduler ticks and source lifecycle events from its inbox one at a
time, keeps the SessionState current and fires reminders on silence or on
unrelated speech.

States are Idle and Listening. start() enters Listening with a fresh state;
stop() cancels both periodic ticks, closes the speech source and advances the
message generation in the same call, so nothing fires after a stop.
"""

import logging
import unicodedata
from typing import Any, Callable, Optional

from .channel import MessagePump
from .debug_log import SessionDebugLogger
from .matching import is_match, is_mismatch_worth_flagging
from .reconnect import ReconnectPolicy
from .reminder import ReminderEmitter
from .scheduler import Clock, MonotonicClock, Scheduler, ThreadScheduler
from .speech import RecognitionTransientError, RecognitionUnavailable, SpeechSource
from .types import Fragment, MantraIndex, SessionState, SourceEvent, Tick

logger = logging.getLogger(__name__)

ELAPSED_TICK_MS = 1000
SILENCE_POLL_MS = 250
MISMATCH_COOLDOWN_MS = 1500
TRANSCRIPT_MAX_CHARS = 2000
INTERIM_MIN_CONFIDENCE = 0.1

DEFAULT_SILENCE_MS = 3000
MIN_SILENCE_MS = 1000
MAX_SILENCE_MS = 10000


class NoMantraRecorded(Exception):
    """Raised when a session is started without a saved mantra."""

    pass


def clamp_silence_ms(value_ms: float) -> int:
    """Clamp a silence threshold to [1000, 10000] ms."""
    return int(max(MIN_SILENCE_MS, min(MAX_SILENCE_MS, value_ms)))


def trim_transcript(text: str, max_chars: int = TRANSCRIPT_MAX_CHARS) -> str:
    """
    Keep only the most recent max_chars characters of a rolling transcript.

    The cut never leaves a dangling combining mark (e.g. a Devanagari vowel
    sign) at the front.
    """
    if len(text) <= max_chars:
        return text.strip()
    tail = text[-max_chars:]
    start = 0
    while start < len(tail) and unicodedata.category(tail[start]).startswith("M"):
        start += 1
    return tail[start:].lstrip()


class SessionController(MessagePump):
    """
    Drives one listening session at a time.

    Args:
        index: Mantra index consulted for every fragment (shared read-only)
        emitter: Reminder output
        source: Speech source; None when fragments are fed directly
        scheduler: Posts the periodic ticks; a ThreadScheduler by default
        clock: Monotonic millisecond clock
        silence_threshold_ms: Silence gap before a reminder, clamped to [1000, 10000]
        locale: Recognizer locale passed to the source
        reconnect: Restart policy for the source
        debug_logger: Optional JSON-lines trace
    """

    def __init__(
        self,
        index: MantraIndex,
        emitter: ReminderEmitter,
        source: Optional[SpeechSource] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Clock] = None,
        silence_threshold_ms: float = DEFAULT_SILENCE_MS,
        locale: str = "en-IN",
        reconnect: Optional[ReconnectPolicy] = None,
        debug_logger: Optional[SessionDebugLogger] = None,
    ):
        super().__init__()
        self.index = index
        self.emitter = emitter
        self.source = source
        self.scheduler = scheduler or ThreadScheduler()
        self.clock = clock or MonotonicClock()
        self.silence_threshold_ms = clamp_silence_ms(silence_threshold_ms)
        self.locale = locale
        self.reconnect = reconnect or ReconnectPolicy()
        self.debug = debug_logger
        self.state = SessionState()
        self.error: Optional[Exception] = None
        self._restart_due_at: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.state.is_active

    # --- lifecycle ---

    def start(self) -> None:
        """
        Enter Listening with a fresh SessionState.

        Raises:
            NoMantraRecorded: The mantra index is empty
            RecognitionUnavailable: The speech source cannot be opened at all
        """
        if self.index.is_empty:
            raise NoMantraRecorded("Please record a mantra first.")

        self.stop()
        now = self.clock.now()
        self.error = None
        self.state = SessionState(is_active=True, started_at=now, last_valid_utterance_at=now)
        self.reconnect.reset()

        sink = self._sink()
        self.scheduler.every(ELAPSED_TICK_MS, Tick(kind="elapsed"), sink)
        self.scheduler.every(SILENCE_POLL_MS, Tick(kind="silence"), sink)

        if self.source is not None:
            try:
                self._open_source()
            except RecognitionUnavailable:
                self.stop()
                raise
        logger.info("Listening session started (silence gap %d ms)", self.silence_threshold_ms)

    def stop(self) -> None:
        """Leave Listening; safe to call when already idle."""
        self._advance_generation()
        self.scheduler.cancel_all()
        if self.source is not None:
            self.source.close()
        self._restart_due_at = None

        was_active = self.state.is_active
        self.state.is_active = False
        self.state.chant_elapsed_sec = 0
        self.state.live_interim_text = ""
        if was_active:
            logger.info("Listening session stopped after %d reminders", self.state.reminder_count)

    def run(self, on_update: Optional[Callable[[SessionState], Any]] = None, poll_interval_sec: float = 0.1) -> None:
        """
        Consume the inbox until the session stops.

        Args:
            on_update: Called with the state after every batch of handled messages
            poll_interval_sec: Maximum time to block waiting for a message

        Raises:
            RecognitionTransientError: The source kept failing and the session was stopped
            RecognitionUnavailable: The source disappeared during a restart
        """
        while self.state.is_active:
            if self.wait(poll_interval_sec) and on_update is not None:
                on_update(self.state)
        if self.error is not None:
            raise self.error

    # --- message handling ---

    def handle(self, message: Any) -> None:
        if not self.state.is_active:
            return
        if isinstance(message, Fragment):
            self.on_fragment(message)
        elif isinstance(message, Tick):
            if message.kind == "elapsed":
                self.on_tick()
            else:
                self.on_silence_check()
        elif isinstance(message, SourceEvent):
            self.on_source_event(message)
        else:
            raise TypeError(f"Unsupported session message: {message!r}")

    def on_fragment(self, fragment: Fragment) -> None:
        """Update transcripts and timers for one recognition result."""
        if not self.state.is_active:
            return
        if not fragment.is_final and fragment.confidence < INTERIM_MIN_CONFIDENCE:
            return
        self.reconnect.heard()

        now = self.clock.now()
        state = self.state
        text = fragment.text.strip()

        if fragment.is_final:
            if text:
                state.live_final_text = trim_transcript(f"{state.live_final_text} {text}")
            state.live_interim_text = ""
        else:
            state.live_interim_text = text

        if not text:
            return

        matched = is_match(text, self.index)
        flagged = False
        if matched:
            state.last_valid_utterance_at = now
            # Interim matches only refresh the silence window; the cooldown
            # is cleared by confirmed (final) chanting alone.
            if fragment.is_final:
                state.last_mismatch_reminder_at = None
        elif fragment.is_final and is_mismatch_worth_flagging(text, fragment.confidence, self.index):
            flagged = True
            if self._cooldown_elapsed(now):
                self._fire_reminder("mismatch", now)

        if self.debug is not None:
            self.debug.log_fragment(now, fragment, matched, flagged)

    def on_tick(self) -> None:
        """Elapsed-time tick: one more second since the last reminder."""
        if not self.state.is_active:
            return
        self.state.chant_elapsed_sec += 1
        self._restart_if_due()

    def on_silence_check(self) -> None:
        """Silence poll: remind, and restart the window, once the gap is reached."""
        if not self.state.is_active:
            return
        now = self.clock.now()
        self._restart_if_due()
        if not self.state.is_active:
            return
        if now - self.state.last_valid_utterance_at >= self.silence_threshold_ms:
            self._fire_reminder("silence", now)

    def on_source_event(self, event: SourceEvent) -> None:
        """The recognizer ended or errored; reopen it under the reconnect policy."""
        if event.kind == "errored":
            logger.warning("Speech recognition error: %s", event.detail)
        else:
            logger.debug("Speech recognition ended; reopening")
        self._source_failed(event)

    # --- internals ---

    def _cooldown_elapsed(self, now: float) -> bool:
        last = self.state.last_mismatch_reminder_at
        return last is None or now - last > MISMATCH_COOLDOWN_MS

    def _fire_reminder(self, reason: str, now: float) -> None:
        try:
            self.emitter.emit()
        except Exception as e:
            logger.warning("Reminder output failed: %s", e)

        state = self.state
        state.chant_elapsed_sec = 0
        state.last_valid_utterance_at = now
        if reason == "mismatch":
            state.last_mismatch_reminder_at = now
        state.reminder_count += 1
        state.last_reminder_reason = reason
        logger.debug("Reminder fired (%s)", reason)
        if self.debug is not None:
            self.debug.log_reminder(now, reason, state)

    def _open_source(self) -> None:
        self._restart_due_at = None
        self.reconnect.opened(self.clock.now())
        try:
            self.source.open(self._sink(), self.locale)
        except RecognitionTransientError as e:
            logger.warning("Could not open speech recognition: %s", e)
            self._source_failed(SourceEvent(kind="errored", detail=str(e)))

    def _source_failed(self, event: SourceEvent) -> None:
        if self.source is None:
            return
        now = self.clock.now()
        self.source.close()
        delay = self.reconnect.next_delay(now)
        if self.debug is not None:
            self.debug.log_source_event(now, event, delay)

        if delay is None:
            detail = f": {event.detail}" if event.detail else ""
            self.error = RecognitionTransientError(f"Speech recognition failed {self.reconnect.max_attempts} times in a row{detail}")
            logger.error("%s", self.error)
            self.stop()
        elif delay <= 0:
            self._reopen()
        else:
            logger.info("Reopening speech recognition in %.0f ms", delay)
            self._restart_due_at = now + delay

    def _restart_if_due(self) -> None:
        if self._restart_due_at is not None and self.clock.now() >= self._restart_due_at:
            self._reopen()

    def _reopen(self) -> None:
        try:
            self._open_source()
        except RecognitionUnavailable as e:
            self.error = e
            logger.error("Speech recognition is no longer available: %s", e)
            self.stop()
