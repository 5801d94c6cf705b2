"""Per-session cancellation signal."""

import threading


class CancellationToken:
    """
    One-way cancellation flag shared between a runner and the engine driving
    a single session.

    Tokens are never shared across sessions, so aborting one run cannot
    touch the invocations of another.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Idempotent; the first reason given wins."""
        if self.reason is None:
            self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout; returns the cancelled flag."""
        return self._event.wait(timeout)
