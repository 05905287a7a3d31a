"""
Single inbound message channel shared by the session and recording controllers.

Speech sources and schedulers run on their own threads but only post
messages here. The owning controller consumes them one at a time, so all
state mutation happens serially on one thread. Every posted message is
stamped with the controller's generation; advancing the generation on
start/stop turns late messages from an old connection into no-ops.
"""

import queue
from typing import Any, Callable, Tuple

Sink = Callable[[Any], None]


class MessagePump:
    """Inbox plus serial dispatch; subclasses implement handle()."""

    def __init__(self):
        self._inbox: "queue.Queue[Tuple[int, Any]]" = queue.Queue()
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def _advance_generation(self) -> None:
        self._generation += 1

    def _sink(self) -> Sink:
        """Return a poster bound to the current generation."""
        generation = self._generation

        def post(message: Any) -> None:
            self._inbox.put((generation, message))

        return post

    def post(self, message: Any) -> None:
        """Post a message stamped with the current generation."""
        self._inbox.put((self._generation, message))

    def _dispatch(self, generation: int, message: Any) -> bool:
        if generation != self._generation:
            return False
        self.handle(message)
        return True

    def pump(self) -> int:
        """
        Handle every queued message without blocking.

        Returns:
            Number of messages handled (stale ones excluded)
        """
        handled = 0
        while True:
            try:
                generation, message = self._inbox.get_nowait()
            except queue.Empty:
                return handled
            if self._dispatch(generation, message):
                handled += 1

    def wait(self, timeout_sec: float) -> int:
        """
        Block up to timeout_sec for one message, then drain the rest.

        Returns:
            Number of messages handled
        """
        try:
            generation, message = self._inbox.get(timeout=timeout_sec)
        except queue.Empty:
            return 0
        handled = 1 if self._dispatch(generation, message) else 0
        return handled + self.pump()

    def handle(self, message: Any) -> None:
        raise NotImplementedError
