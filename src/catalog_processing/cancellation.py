"""Cooperative cancellation token passed into every long-running crawl and validation call."""

import threading
from typing import Optional


class CancellationToken:
    """Thread-safe flag checked at defined poll points (queue pop, page fetch, per-URL validation).

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout elapses; returns the flag."""
        return self._event.wait(timeout)


def is_cancelled(token: Optional[CancellationToken]) -> bool:
    return token is not None and token.is_cancelled()
