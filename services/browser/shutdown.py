"""Close the shared browser when the host is asked to stop."""

from __future__ import annotations

import atexit
import logging
import signal
import sys
from typing import Any, Callable, Iterable

from services.browser.manager import SharedResourceManager


logger = logging.getLogger(__name__)

_DEFAULT_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_shutdown_handlers(
    manager: SharedResourceManager,
    *,
    exit_func: Callable[[int], Any] = sys.exit,
    signals: Iterable[int] = _DEFAULT_SIGNALS,
    register_atexit: bool = True,
) -> dict[int, Any]:
    """Close the browser then exit on ``signals``; return the previous handlers.

    Must be called from the main thread.
    """

    def handle_signal(signum: int, frame: Any) -> None:
        logger.info("Received signal %s; closing browser before exit", signum)
        manager.shutdown()
        exit_func(0)

    previous: dict[int, Any] = {}
    for signum in signals:
        previous[signum] = signal.signal(signum, handle_signal)

    if register_atexit:
        atexit.register(manager.shutdown)
    return previous


def restore_signal_handlers(previous: dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


__all__ = ["install_shutdown_handlers", "restore_signal_handlers"]
