from typing import List, Optional

import pytest

from chant_reminder.core.config import get_client, load_config
from chant_reminder.core.speech import RecognitionTransientError, RecognitionUnavailable

PREFERENCE_ENV_VARS = (
    "CHANT_MANTRA",
    "CHANT_SILENCE_SEC",
    "CHANT_LANGUAGE",
    "CHANT_WINDOW_SEC",
    "CHANT_MIN_RMS",
    "CHANT_MAX_RESTARTS",
    "CR_ENV_FILE",
    "CR_PROJECT_ROOT",
    "CR_DEBUG",
)


class FakeEmitter:
    """Records the clock time of every reminder."""

    def __init__(self, clock=None, fail: bool = False):
        self.clock = clock
        self.fail = fail
        self.times: List[Optional[float]] = []

    def emit(self) -> None:
        self.times.append(self.clock.now() if self.clock is not None else None)
        if self.fail:
            raise RuntimeError("speaker unplugged")


class FakeSource:
    """Speech source driven by the test; keeps the last sink for late deliveries."""

    def __init__(self, fail_opens: int = 0, unavailable: bool = False):
        self.fail_opens = fail_opens
        self.unavailable = unavailable
        self.sink = None
        self.last_sink = None
        self.open_count = 0
        self.close_count = 0
        self.locales: List[str] = []

    def open(self, sink, locale: str) -> None:
        self.open_count += 1
        self.locales.append(locale)
        if self.unavailable:
            raise RecognitionUnavailable("no microphone")
        if self.fail_opens > 0:
            self.fail_opens -= 1
            raise RecognitionTransientError("device busy")
        self.sink = sink
        self.last_sink = sink

    def close(self) -> None:
        self.close_count += 1
        self.sink = None

    def push(self, message) -> None:
        self.sink(message)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """Keep preferences from the developer's environment out of the tests."""
    for name in PREFERENCE_ENV_VARS:
        # setenv first so values written by save_preference are undone too
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    load_config.cache_clear()
    get_client.cache_clear()
    yield
    load_config.cache_clear()
    get_client.cache_clear()
