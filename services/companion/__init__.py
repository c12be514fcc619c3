"""Public API for the companion installer package."""

from __future__ import annotations

from services.companion.builder import build_install_orchestrator, schedule_companion_install
from services.companion.bundle import installed_version, is_installed, launch_bundle
from services.companion.constants import (
    API_URL,
    BUNDLE_EXTENSION,
    DISK_IMAGE_EXTENSION,
    GITHUB_REPO,
    LOCAL_RELEASE_ENV,
    VOLUME_ROOT,
)
from services.companion.disk_image import DiskImageTool, parse_attach_output
from services.companion.installer import BundleInstaller, Installer
from services.companion.models import (
    BundleNotFoundError,
    CompanionError,
    DigestMismatchError,
    DownloadError,
    DownloadState,
    InstallCopyError,
    InstallOutcome,
    MountError,
    MountPoint,
    NetworkError,
    ParseError,
    ReleaseAsset,
    ReleaseInfo,
    TooManyRedirectsError,
)
from services.companion.providers import (
    GitHubReleaseResolver,
    LocalFolderReleaseResolver,
    ReleaseResolver,
)
from services.companion.service import InstallOrchestrator, describe_failure, describe_progress
from services.companion.transfer import Transferer

__all__ = [
    "API_URL",
    "BUNDLE_EXTENSION",
    "DISK_IMAGE_EXTENSION",
    "GITHUB_REPO",
    "LOCAL_RELEASE_ENV",
    "VOLUME_ROOT",
    "BundleInstaller",
    "BundleNotFoundError",
    "CompanionError",
    "DigestMismatchError",
    "DiskImageTool",
    "DownloadError",
    "DownloadState",
    "GitHubReleaseResolver",
    "InstallCopyError",
    "InstallOrchestrator",
    "InstallOutcome",
    "Installer",
    "LocalFolderReleaseResolver",
    "MountError",
    "MountPoint",
    "NetworkError",
    "ParseError",
    "ReleaseAsset",
    "ReleaseInfo",
    "ReleaseResolver",
    "TooManyRedirectsError",
    "Transferer",
    "build_install_orchestrator",
    "describe_failure",
    "describe_progress",
    "installed_version",
    "is_installed",
    "launch_bundle",
    "parse_attach_output",
    "schedule_companion_install",
]
