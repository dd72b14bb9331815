"""
Cancellation support for long-running resolution and routing work.

A dispatcher action can supersede a route that is still being planned. The
token lets the caller abandon that work between upstream requests instead of
spending geocoder quota on a result nobody will read.
"""

import threading
from typing import Optional


class OperationCancelledError(Exception):
    """Raised when work is abandoned because its cancellation token fired."""
    pass


class CancellationToken:
    """Thread-safe, one-way cancellation flag."""

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "Operation cancelled") -> None:
        """Mark the token as cancelled. Later calls keep the first reason."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            OperationCancelledError: If cancel() has been called
        """
        if self._event.is_set():
            raise OperationCancelledError(self._reason or "Operation cancelled")

    def wait(self, timeout: float) -> bool:
        """
        Sleep for up to `timeout` seconds, waking early on cancellation.

        Returns:
            True if the token was cancelled during (or before) the wait
        """
        return self._event.wait(timeout)


def check_cancelled(cancel_token: Optional[CancellationToken]) -> None:
    """Raise OperationCancelledError if an optional token has fired."""
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()
