"""Public API for the shared browser service package."""

from __future__ import annotations

from services.browser.builder import build_browser_manager, build_function_context
from services.browser.chromium import (
    CHROMIUM_PATH_ENV,
    ChromiumHandle,
    ChromiumLauncher,
    find_chromium_executable,
    parse_devtools_endpoint,
)
from services.browser.manager import SharedResourceManager
from services.browser.models import (
    BrowserHandle,
    Launcher,
    ResourceCloseError,
    ResourceError,
    ResourceLaunchError,
    ResourceLaunchTimeoutError,
    ResourceState,
)
from services.browser.registry import (
    BROWSER_CAPABILITY,
    CapabilityRegistry,
    register_browser_capability,
)
from services.browser.shutdown import install_shutdown_handlers, restore_signal_handlers

__all__ = [
    "BROWSER_CAPABILITY",
    "CHROMIUM_PATH_ENV",
    "BrowserHandle",
    "CapabilityRegistry",
    "ChromiumHandle",
    "ChromiumLauncher",
    "Launcher",
    "ResourceCloseError",
    "ResourceError",
    "ResourceLaunchError",
    "ResourceLaunchTimeoutError",
    "ResourceState",
    "SharedResourceManager",
    "build_browser_manager",
    "build_function_context",
    "find_chromium_executable",
    "install_shutdown_handlers",
    "parse_devtools_endpoint",
    "register_browser_capability",
    "restore_signal_handlers",
]
