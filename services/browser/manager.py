"""Lifecycle management for the shared headless browser process."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from services.browser.models import (
    BrowserHandle,
    Launcher,
    ResourceCloseError,
    ResourceLaunchError,
    ResourceLaunchTimeoutError,
    ResourceState,
)
from shared.cancellation import CancellationToken


logger = logging.getLogger(__name__)

# Waiters with a cancellation token re-check it at this interval.
_CANCEL_POLL_INTERVAL = 0.1

_UNSET = object()


class _LaunchAttempt:
    """Outcome of one launch, published once to every waiting caller."""

    def __init__(self) -> None:
        self._settled = threading.Event()
        self.handle: Optional[BrowserHandle] = None
        self.error: Optional[BaseException] = None

    def settle(
        self, *, handle: Optional[BrowserHandle] = None, error: Optional[BaseException] = None
    ) -> None:
        self.handle = handle
        self.error = error
        self._settled.set()

    def wait(
        self, timeout: Optional[float], cancel_token: Optional[CancellationToken]
    ) -> BrowserHandle:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._settled.is_set():
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            if deadline is None:
                interval = _CANCEL_POLL_INTERVAL if cancel_token is not None else None
            else:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ResourceLaunchTimeoutError(
                        f"Browser launch did not finish within {timeout:.1f}s"
                    )
                interval = (
                    min(remaining, _CANCEL_POLL_INTERVAL) if cancel_token is not None else remaining
                )
            self._settled.wait(interval)

        if self.error is not None:
            raise self.error
        assert self.handle is not None
        return self.handle


class SharedResourceManager:
    """Hand out one warm browser process to any number of callers.

    The process is launched lazily by the first caller.  Callers arriving while
    that launch is in flight wait for it and observe the same handle or the
    same exception; only one launch ever runs at a time.  When the process
    disconnects the manager forgets it, so the next caller launches a new one.
    """

    def __init__(
        self,
        launcher: Launcher,
        *,
        acquire_timeout: Optional[float] = None,
        close_timeout: Optional[float] = 5.0,
    ) -> None:
        self._launcher = launcher
        self._acquire_timeout = acquire_timeout
        self._close_timeout = close_timeout
        self._lock = threading.Lock()

        # The following state variables are protected by self._lock
        self._state = ResourceState.UNINITIALIZED
        self._handle: Optional[BrowserHandle] = None
        self._attempt: Optional[_LaunchAttempt] = None
        self._launch_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def state(self) -> ResourceState:
        with self._lock:
            if self._state is ResourceState.READY and not self._handle_connected_locked():
                return ResourceState.DISCONNECTED
            return self._state

    @property
    def launch_count(self) -> int:
        with self._lock:
            return self._launch_count

    def current(self) -> Optional[BrowserHandle]:
        """Return the connected handle without launching, or ``None``."""

        with self._lock:
            if self._state is ResourceState.READY and self._handle_connected_locked():
                return self._handle
            return None

    def acquire(
        self,
        timeout: Optional[float] | object = _UNSET,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BrowserHandle:
        """Return the shared handle, launching the process if necessary.

        ``timeout`` bounds how long a caller waits for a launch started by
        another caller; it defaults to the manager's ``acquire_timeout``.
        """

        wait_timeout = self._acquire_timeout if timeout is _UNSET else timeout
        with self._lock:
            if self._state is ResourceState.READY:
                if self._handle_connected_locked():
                    assert self._handle is not None
                    return self._handle
                logger.info("Discarding disconnected browser handle")
                self._handle = None
                self._state = ResourceState.UNINITIALIZED

            if self._state is ResourceState.LAUNCHING:
                assert self._attempt is not None
                attempt = self._attempt
                initiator = False
            else:
                attempt = _LaunchAttempt()
                self._attempt = attempt
                self._state = ResourceState.LAUNCHING
                self._launch_count += 1
                initiator = True

        if not initiator:
            logger.debug("Waiting for in-flight browser launch")
            return attempt.wait(wait_timeout, cancel_token)  # type: ignore[arg-type]
        return self._launch(attempt)

    def is_ready(self) -> bool:
        """Return whether the launch prerequisite is installed; never launches."""

        try:
            return bool(self._launcher.is_available())
        except Exception:
            logger.warning("Browser prerequisite probe failed", exc_info=True)
            return False

    def release(self) -> None:
        """Close the current process, logging rather than raising failures."""

        with self._lock:
            handle = self._handle
            self._handle = None
            if self._state is ResourceState.READY:
                self._state = ResourceState.UNINITIALIZED

        if handle is None:
            return
        try:
            handle.close(self._close_timeout)
        except Exception as exc:
            error = ResourceCloseError(f"Error closing browser: {exc}")
            logger.error("%s", error, exc_info=True)
        else:
            logger.info("Browser closed")

    def shutdown(self) -> None:
        self.release()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _launch(self, attempt: _LaunchAttempt) -> BrowserHandle:
        logger.info("Launching browser")
        try:
            handle = self._launcher.launch()
        except ResourceLaunchError as exc:
            self._fail_launch(attempt, exc)
            raise
        except Exception as exc:
            error = ResourceLaunchError(f"Failed to launch browser: {exc}")
            self._fail_launch(attempt, error)
            raise error from exc
        except BaseException:
            self._fail_launch(attempt, ResourceLaunchError("Browser launch was interrupted"))
            raise

        # A process that dies before the handle is published is caught by the
        # connectivity check in acquire().
        handle.add_disconnect_listener(self._on_disconnected)
        with self._lock:
            self._handle = handle
            self._state = ResourceState.READY
            self._attempt = None
            attempt.settle(handle=handle)
        logger.info("Browser launched successfully")
        return handle

    def _fail_launch(self, attempt: _LaunchAttempt, error: BaseException) -> None:
        with self._lock:
            self._handle = None
            self._state = ResourceState.UNINITIALIZED
            self._attempt = None
            attempt.settle(error=error)
        logger.error("Browser launch failed: %s", error)

    def _on_disconnected(self, handle: BrowserHandle) -> None:
        with self._lock:
            if self._handle is not handle:
                return
            self._handle = None
            self._state = ResourceState.UNINITIALIZED
        logger.info("Browser disconnected")

    def _handle_connected_locked(self) -> bool:
        # This helper must be called with the lock held.
        handle = self._handle
        if handle is None:
            return False
        try:
            return bool(handle.is_connected())
        except Exception:
            logger.warning("Browser connectivity probe failed", exc_info=True)
            return False


__all__ = ["SharedResourceManager"]
