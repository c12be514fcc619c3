"""Helpers for constructing and scheduling the companion installer."""

from __future__ import annotations

import logging
import os
import sys
import threading
from pathlib import Path

from app.config import CompanionConfig, get_companion_config
from app.version import build_user_agent
from services.companion.constants import FORCE_PLATFORM_ENV, LOCAL_RELEASE_ENV
from services.companion.disk_image import DiskImageTool
from services.companion.installer import BundleInstaller
from services.companion.models import ReleaseInfo
from services.companion.providers import (
    GitHubReleaseResolver,
    LocalFolderReleaseResolver,
    ReleaseResolver,
)
from services.companion.service import CompletionCallback, InstallOrchestrator
from services.companion.transfer import ProgressCallback, Transferer
from shared.cancellation import CancellationToken


_LOGGER = logging.getLogger(__name__)


def _build_resolver(config: CompanionConfig) -> ReleaseResolver:
    local_dir = os.environ.get(LOCAL_RELEASE_ENV)
    if local_dir:
        folder = Path(local_dir).expanduser()
        if folder.exists():
            _LOGGER.info("Using local companion release source at %s", folder)
            return LocalFolderReleaseResolver(folder)
        _LOGGER.warning("Configured local release directory does not exist: %s", folder)
    return GitHubReleaseResolver(
        config.feed_url,
        asset_suffix=config.asset_suffix,
        user_agent=build_user_agent(config.user_agent),
        timeout=config.request_timeout_s,
    )


def _platform_supported() -> bool:
    if os.environ.get(FORCE_PLATFORM_ENV):
        return True
    return sys.platform == "darwin"


def build_install_orchestrator(
    config: CompanionConfig | None = None,
    *,
    disk_image_tool: DiskImageTool | None = None,
) -> InstallOrchestrator | None:
    """Construct an :class:`InstallOrchestrator` for the current environment."""

    if not _platform_supported():
        _LOGGER.debug("Skipping companion installer on unsupported platform: %s", sys.platform)
        return None

    config = config or get_companion_config()
    transferer = Transferer(
        user_agent=build_user_agent(config.user_agent),
        max_redirects=config.max_redirects,
        chunk_size=config.chunk_size,
        timeout=config.request_timeout_s,
    )
    installer = BundleInstaller(disk_image_tool or DiskImageTool(), config.install_dir)
    return InstallOrchestrator(
        _build_resolver(config),
        transferer,
        installer,
        staging_dir=config.staging_dir,
        feed_url=config.feed_url,
    )


def _run_install(
    orchestrator: InstallOrchestrator,
    release: ReleaseInfo | None,
    on_progress: ProgressCallback | None,
    on_complete: CompletionCallback | None,
    cancel_token: CancellationToken | None,
) -> None:
    try:
        orchestrator.run(
            on_progress,
            on_complete,
            release=release,
            cancel_token=cancel_token,
        )
    except Exception as exc:
        _LOGGER.exception("Unexpected error while installing the companion app")
        if on_complete is not None:
            on_complete(exc, None)  # type: ignore[arg-type]


def schedule_companion_install(
    orchestrator: InstallOrchestrator,
    *,
    release: ReleaseInfo | None = None,
    on_progress: ProgressCallback | None = None,
    on_complete: CompletionCallback | None = None,
    cancel_token: CancellationToken | None = None,
) -> threading.Thread:
    """Run the install pipeline on a background thread and return it."""

    thread = threading.Thread(
        target=_run_install,
        args=(orchestrator, release, on_progress, on_complete, cancel_token),
        name="agentos-companion-install",
        daemon=True,
    )
    thread.start()
    return thread


__all__ = ["build_install_orchestrator", "schedule_companion_install"]
