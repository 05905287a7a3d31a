"""
Reminder emitters: the audible cue fired on silence or a wrong chant.
"""

from typing import Any, List, Optional, Protocol

import numpy as np

# Soft beep tone
BEEP_FREQ_HZ = 440.0
BEEP_GAIN = 0.2
BEEP_DURATION_MS = 1500
BEEP_ATTACK_MS = 100
OUTPUT_SAMPLE_RATE = 24000


class ReminderError(Exception):
    """Raised when the audio output cannot be used."""

    pass


class ReminderEmitter(Protocol):
    def emit(self) -> None: ...


def generate_cue(
    frequency: float = BEEP_FREQ_HZ,
    duration_ms: int = BEEP_DURATION_MS,
    gain: float = BEEP_GAIN,
    attack_ms: int = BEEP_ATTACK_MS,
    sample_rate: int = OUTPUT_SAMPLE_RATE,
) -> np.ndarray:
    """
    Generate the reminder tone: a sine that ramps up to gain over attack_ms
    and then decays linearly to silence at duration_ms.
    """
    count = int(sample_rate * duration_ms / 1000)
    t = np.arange(count, dtype=np.float64) / sample_rate
    envelope = np.interp(t, [0.0, attack_ms / 1000.0, duration_ms / 1000.0], [0.0, gain, 0.0])
    return (np.sin(2 * np.pi * frequency * t) * envelope).astype(np.float32)


class ToneReminder:
    """
    Plays the cue on the default output device without blocking.

    sounddevice.play() replaces whatever is still playing, so rapid
    successive reminders never queue up overlapping tones.
    """

    def __init__(self, sample_rate: int = OUTPUT_SAMPLE_RATE, **cue_options: Any):
        self.sample_rate = sample_rate
        self.cue = generate_cue(sample_rate=sample_rate, **cue_options)
        self._sd: Any = None

    def _device(self) -> Any:
        if self._sd is None:
            try:
                import sounddevice as sd
            except (ImportError, OSError) as e:
                raise ReminderError(f"Audio output is not available: {e}")
            self._sd = sd
        return self._sd

    def open(self) -> None:
        """
        Check that audio output can be used before a session starts.

        Raises:
            ReminderError: sounddevice or the PortAudio library is missing
        """
        self._device()

    def emit(self) -> None:
        self._device().play(self.cue, self.sample_rate)

    def close(self) -> None:
        if self._sd is not None:
            self._sd.stop()


class ConsoleReminder:
    """
    Prints a bell line instead of playing audio; used by simulations.

    Records the clock time of every reminder when a clock is given.
    """

    def __init__(self, console: Any = None, clock: Any = None):
        self.console = console
        self.clock = clock
        self.emitted_at: List[Optional[float]] = []

    def emit(self) -> None:
        at = self.clock.now() if self.clock is not None else None
        self.emitted_at.append(at)
        if self.console is not None:
            stamp = f" at {at / 1000:.2f}s" if at is not None else ""
            self.console.print(f"[yellow]🔔 reminder{stamp}[/yellow]")
