"""Cooperative cancellation shared by the browser service and the installer."""

from __future__ import annotations

import threading


class OperationCancelledError(RuntimeError):
    """Raised when work stops because its cancellation token was set."""


class CancellationToken:
    """Thread-safe flag checked by long-running operations between steps."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; return the flag."""

        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self._reason or "Operation cancelled")


def raise_if_cancelled(token: CancellationToken | None) -> None:
    """Convenience wrapper accepting an optional token."""

    if token is not None:
        token.raise_if_cancelled()


__all__ = ["CancellationToken", "OperationCancelledError", "raise_if_cancelled"]
