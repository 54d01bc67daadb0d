"""Cooperative cancellation token shared between a request and its client call."""

import threading
from typing import Optional


class CancellationToken:
    """
    One-shot cancellation flag.

    Holders poll `is_cancelled` at checkpoints and use `wait()` for sleeps
    that must end early when the token fires.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Sleep up to `timeout` seconds.

        Returns:
            True if the token was cancelled before or during the wait.
        """
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"
