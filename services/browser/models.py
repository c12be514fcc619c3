"""States, protocols and errors shared by the browser service."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Protocol


class ResourceState(str, Enum):
    """Lifecycle of the shared worker process."""

    UNINITIALIZED = "uninitialized"
    LAUNCHING = "launching"
    READY = "ready"
    DISCONNECTED = "disconnected"


class BrowserHandle(Protocol):
    """Running worker process as seen by the manager and its callers."""

    def is_connected(self) -> bool:
        """Return ``True`` while the process is alive and reachable."""

    def add_disconnect_listener(self, callback: Callable[["BrowserHandle"], None]) -> None:
        """Call ``callback`` once when the process goes away."""

    def close(self, timeout: float | None = None) -> None:
        """Stop the process and release its resources."""


class Launcher(Protocol):
    """Start worker processes and report whether they can be started."""

    def launch(self) -> BrowserHandle:
        """Start a new worker and return its handle once it is usable."""

    def is_available(self) -> bool:
        """Return ``True`` when the launch prerequisite is present on disk."""


class ResourceError(RuntimeError):
    """Base class for shared worker failures."""


class ResourceLaunchError(ResourceError):
    """Raised when the worker process cannot be started."""


class ResourceLaunchTimeoutError(ResourceLaunchError):
    """Raised when a launch does not settle before the caller's deadline."""


class ResourceCloseError(ResourceError):
    """Describes a failed close; logged by the manager and never raised."""


__all__ = [
    "BrowserHandle",
    "Launcher",
    "ResourceCloseError",
    "ResourceError",
    "ResourceLaunchError",
    "ResourceLaunchTimeoutError",
    "ResourceState",
]
