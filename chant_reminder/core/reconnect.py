"""
Supervised reconnect policy for speech sources.

Recognizers end on their own (timeouts, network hiccups) and must be reopened
to keep listening. Restarting immediately and forever would spin on a source
that fails persistently, so consecutive failures are backed off and capped.
"""

from typing import Optional

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY_MS = 500
DEFAULT_MAX_DELAY_MS = 8000
DEFAULT_STABLE_AFTER_MS = 5000


class ReconnectPolicy:
    """
    Bounded exponential backoff over consecutive source failures.

    A failure is consecutive when the connection delivered no fragment and
    stayed open for less than stable_after_ms. The first consecutive failure
    restarts at once; later ones wait base_delay_ms * 2^(n-2), capped at
    max_delay_ms. After max_attempts consecutive failures the policy gives up.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
        stable_after_ms: int = DEFAULT_STABLE_AFTER_MS,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.stable_after_ms = stable_after_ms
        self.failures = 0
        self._opened_at: Optional[float] = None
        self._heard_since_open = False

    def reset(self) -> None:
        """Forget all failures (new session)."""
        self.failures = 0
        self._opened_at = None
        self._heard_since_open = False

    def opened(self, now: float) -> None:
        """Record that the source connection was (re)opened."""
        self._opened_at = now
        self._heard_since_open = False

    def heard(self) -> None:
        """Record that the current connection delivered a fragment."""
        self._heard_since_open = True
        self.failures = 0

    def next_delay(self, now: float) -> Optional[float]:
        """
        Register a failure and return the restart delay.

        Args:
            now: Current monotonic time in milliseconds

        Returns:
            Delay in milliseconds before reopening, or None when exhausted
        """
        stable = self._opened_at is not None and now - self._opened_at >= self.stable_after_ms
        if self._heard_since_open or stable:
            self.failures = 0

        self.failures += 1
        self._heard_since_open = False
        if self.failures > self.max_attempts:
            return None
        if self.failures == 1:
            return 0.0
        return float(min(self.base_delay_ms * 2 ** (self.failures - 2), self.max_delay_ms))
