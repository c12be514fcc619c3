"""Coordinate release discovery, download and installation of the companion app."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Union

from services.companion.constants import STAGE_CHECK, STAGE_DOWNLOAD, STAGE_INSTALL
from services.companion.hashing import verify_sha256
from services.companion.installer import Installer
from services.companion.models import CompanionError, DownloadError, InstallOutcome, ReleaseInfo
from services.companion.providers import ReleaseResolver
from services.companion.transfer import ProgressCallback, Transferer
from services.companion.versioning import is_update_available
from shared.cancellation import CancellationToken, OperationCancelledError, raise_if_cancelled
from shared.result import Result


_LOGGER = logging.getLogger(__name__)

PipelineError = Union[CompanionError, OperationCancelledError]
CompletionCallback = Callable[[PipelineError | None, Path | None], None]


class InstallOrchestrator:
    """Run the resolve, download and install stages as one flow.

    Runs are serialized: a second caller waits until the first run has
    finished, because every run stages its download at the same location.
    """

    def __init__(
        self,
        resolver: ReleaseResolver,
        transferer: Transferer,
        installer: Installer,
        *,
        staging_dir: Path,
        feed_url: str | None = None,
    ) -> None:
        self._resolver = resolver
        self._transferer = transferer
        self._installer = installer
        self._staging_dir = Path(staging_dir)
        self._feed_url = feed_url
        self._lock = threading.Lock()

    @property
    def staging_dir(self) -> Path:
        return self._staging_dir

    def get_latest_release(self) -> ReleaseInfo:
        return self._resolver.get_latest(self._feed_url)

    def check_for_update(
        self,
        installed_version: str | None = None,
        *,
        release: ReleaseInfo | None = None,
    ) -> ReleaseInfo | None:
        """Return the latest release when it is installable and newer.

        ``release`` skips the feed lookup when the caller already holds it.
        """

        if release is None:
            release = self.get_latest_release()
        if release.asset is None:
            _LOGGER.warning("No compatible disk image found in release %s", release.version)
            return None
        if not is_update_available(installed_version, release.version):
            _LOGGER.info(
                "Installed version %s is up to date with %s", installed_version, release.version
            )
            return None
        _LOGGER.info("Companion update available: %s -> %s", installed_version, release.version)
        return release

    def run(
        self,
        on_progress: ProgressCallback | None = None,
        on_complete: CompletionCallback | None = None,
        *,
        release: ReleaseInfo | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Result[InstallOutcome, PipelineError]:
        """Execute the pipeline once and report through ``on_complete``.

        A release without a compatible asset is not an error: the result is
        successful with no value and ``on_complete`` receives ``(None, None)``.
        """

        with self._lock:
            try:
                outcome = self._run_pipeline(release, on_progress, cancel_token)
            except (CompanionError, OperationCancelledError) as exc:
                _LOGGER.error("Companion installation failed: %s", exc)
                result: Result[InstallOutcome, PipelineError] = Result.err(exc)
            else:
                result = Result.ok(outcome)

        destination = result.value.destination_path if result.value is not None else None
        _notify_complete(on_complete, result.error, destination)
        return result

    def _run_pipeline(
        self,
        release: ReleaseInfo | None,
        on_progress: ProgressCallback | None,
        cancel_token: CancellationToken | None,
    ) -> InstallOutcome | None:
        raise_if_cancelled(cancel_token)
        if release is None:
            release = self.get_latest_release()

        asset = release.asset
        if asset is None:
            _LOGGER.warning("No compatible disk image found in release %s", release.version)
            return None

        raise_if_cancelled(cancel_token)
        staged_path = self._staging_dir / _staged_file_name(asset.name)
        _LOGGER.info("Preparing installation of %s (%s)", asset.name, release.version)
        try:
            self._transferer.fetch(asset.url, staged_path, on_progress, cancel_token=cancel_token)
            if asset.digest:
                verify_sha256(staged_path, asset.digest)
                _LOGGER.info("Verified disk image digest for %s", release.version)
            raise_if_cancelled(cancel_token)
            destination = self._installer.install(staged_path)
        finally:
            _discard_staged(staged_path)

        return InstallOutcome(version=release.version, destination_path=destination)


def describe_failure(error: BaseException, app_name: str = "Agent Grid") -> str:
    """Return the single human-readable message shown for a failed stage."""

    if isinstance(error, OperationCancelledError):
        return f"{app_name} installation was cancelled."
    stage = getattr(error, "stage", STAGE_CHECK)
    if stage == STAGE_DOWNLOAD:
        return f"Could not download {app_name}: {error}"
    if stage == STAGE_INSTALL:
        return f"Could not install {app_name}: {error}"
    return f"Could not check for {app_name} releases: {error}"


def describe_progress(downloaded: int, total: int) -> str:
    """Format progress as ``"42% (21.0 / 50.0 MB)"``."""

    if total <= 0:
        return f"{downloaded / (1024 * 1024):.1f} MB"
    percent = round(downloaded / total * 100)
    return f"{percent}% ({downloaded / (1024 * 1024):.1f} / {total / (1024 * 1024):.1f} MB)"


def _staged_file_name(asset_name: str) -> str:
    """Reduce a published asset name to a file name inside the staging directory."""

    name = Path(asset_name).name
    if name in {"", ".", ".."}:
        raise DownloadError(f"Release asset name {asset_name!r} is not a valid file name")
    return name


def _discard_staged(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError:
        _LOGGER.warning("Unable to remove staged disk image %s", path, exc_info=True)
    else:
        _LOGGER.debug("Removed staged disk image %s", path)


def _notify_complete(
    callback: CompletionCallback | None,
    error: PipelineError | None,
    destination: Path | None,
) -> None:
    if callback is None:
        return
    try:
        callback(error, destination)
    except Exception:
        _LOGGER.warning("Install completion callback failed", exc_info=True)


__all__ = ["InstallOrchestrator", "describe_failure", "describe_progress"]
