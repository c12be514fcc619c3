"""Helpers for constructing the browser service from host configuration."""

from __future__ import annotations

import logging

from app.config import BrowserConfig, get_browser_config
from services.browser.chromium import ChromiumLauncher
from services.browser.manager import SharedResourceManager
from services.browser.registry import CapabilityRegistry, register_browser_capability


_LOGGER = logging.getLogger(__name__)


def build_browser_manager(config: BrowserConfig | None = None) -> SharedResourceManager:
    """Create the process-wide manager; call once and pass it to consumers."""

    config = config or get_browser_config()
    launcher = ChromiumLauncher(
        config.executable,
        args=config.args,
        launch_timeout=config.launch_timeout_s,
        viewport=(config.viewport_width, config.viewport_height),
    )
    manager = SharedResourceManager(
        launcher,
        acquire_timeout=config.acquire_timeout_s,
        close_timeout=config.close_timeout_s,
    )
    if not manager.is_ready():
        _LOGGER.warning("Chromium is not installed; browser services are unavailable")
    return manager


def build_function_context(manager: SharedResourceManager) -> CapabilityRegistry:
    """Return the registry handed to flow functions as their global context."""

    registry = CapabilityRegistry()
    register_browser_capability(registry, manager)
    return registry


__all__ = ["build_browser_manager", "build_function_context"]
