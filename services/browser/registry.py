"""Named capabilities exposed to flow functions through a shared context."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable

from services.browser.manager import SharedResourceManager
from services.browser.models import BrowserHandle


logger = logging.getLogger(__name__)

BROWSER_CAPABILITY = "getBrowser"


class CapabilityRegistry:
    """Thread-safe mapping from capability names to provider callables."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._providers: dict[str, Callable[..., Any]] = {}

    def register(self, name: str, provider: Callable[..., Any]) -> None:
        if not name:
            raise ValueError("Capability name must not be empty")
        with self._lock:
            if name in self._providers:
                raise ValueError(f"Capability already registered: {name}")
            self._providers[name] = provider
        logger.debug("Registered capability %s", name)

    def unregister(self, name: str) -> None:
        with self._lock:
            self._providers.pop(name, None)

    def get(self, name: str) -> Callable[..., Any]:
        with self._lock:
            try:
                return self._providers[name]
            except KeyError:
                raise KeyError(f"Unknown capability: {name}") from None

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._providers)

    def as_context(self) -> dict[str, Callable[..., Any]]:
        """Snapshot suitable for seeding a flow engine's global context."""

        with self._lock:
            return dict(self._providers)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._providers


def register_browser_capability(
    registry: CapabilityRegistry,
    manager: SharedResourceManager,
    name: str = BROWSER_CAPABILITY,
) -> Callable[[], "Future[BrowserHandle]"]:
    """Expose ``manager`` as a capability returning a future of the handle."""

    def get_browser() -> "Future[BrowserHandle]":
        future: Future[BrowserHandle] = Future()
        ready = manager.current()
        if ready is not None:
            future.set_result(ready)
            return future

        def resolve() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(manager.acquire())
            except Exception as exc:
                future.set_exception(exc)

        threading.Thread(target=resolve, name="agentos-get-browser", daemon=True).start()
        return future

    registry.register(name, get_browser)
    return get_browser


__all__ = ["BROWSER_CAPABILITY", "CapabilityRegistry", "register_browser_capability"]
