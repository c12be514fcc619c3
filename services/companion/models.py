"""Data models and errors used by the companion installer."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from services.companion.constants import STAGE_CHECK, STAGE_DOWNLOAD, STAGE_INSTALL


@dataclass(frozen=True)
class ReleaseAsset:
    """Downloadable disk image attached to a release."""

    name: str
    size_bytes: int
    url: str
    digest: str | None = None


@dataclass(frozen=True)
class ReleaseInfo:
    """Latest release metadata; ``asset`` is ``None`` when nothing fits this machine."""

    version: str
    asset: ReleaseAsset | None = None
    release_notes: str | None = None


@dataclass
class DownloadState:
    """Progress of a single transfer, updated as chunks are written."""

    dest_path: Path
    bytes_downloaded: int = 0
    total_bytes: int = 0

    @property
    def total_known(self) -> bool:
        return self.total_bytes > 0


@dataclass(frozen=True)
class MountPoint:
    """Volume produced by attaching a disk image."""

    volume_path: Path


@dataclass(frozen=True)
class InstallOutcome:
    """Successful result of one orchestration run."""

    version: str
    destination_path: Path


class CompanionError(RuntimeError):
    """Base class for failures in the companion installer pipeline."""

    stage = STAGE_CHECK


class NetworkError(CompanionError):
    """Raised when the release feed or a download cannot be reached."""

    def __init__(self, message: str, *, stage: str = STAGE_CHECK) -> None:
        super().__init__(message)
        self.stage = stage


class ParseError(CompanionError):
    """Raised when the release feed returns an unreadable document."""


class DownloadError(CompanionError):
    """Raised when a download ends on a non-success HTTP status."""

    stage = STAGE_DOWNLOAD

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TooManyRedirectsError(DownloadError):
    """Raised when a download keeps redirecting past the configured limit."""


class DigestMismatchError(CompanionError):
    """Raised when a downloaded image does not match its published digest."""

    stage = STAGE_DOWNLOAD


class MountError(CompanionError):
    """Raised when a disk image cannot be attached or yields no volume."""

    stage = STAGE_INSTALL


class BundleNotFoundError(CompanionError):
    """Raised when the mounted volume holds no application bundle."""

    stage = STAGE_INSTALL


class InstallCopyError(CompanionError):
    """Raised when copying the bundle into the install directory fails."""

    stage = STAGE_INSTALL


__all__ = [
    "BundleNotFoundError",
    "CompanionError",
    "DigestMismatchError",
    "DownloadError",
    "DownloadState",
    "InstallCopyError",
    "InstallOutcome",
    "MountError",
    "MountPoint",
    "NetworkError",
    "ParseError",
    "ReleaseAsset",
    "ReleaseInfo",
    "TooManyRedirectsError",
]
