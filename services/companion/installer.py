"""Install an application bundle from a disk image."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Protocol

from services.companion.constants import BUNDLE_EXTENSION
from services.companion.disk_image import DiskImageTool
from services.companion.models import BundleNotFoundError, InstallCopyError, MountError


_LOGGER = logging.getLogger(__name__)


class Installer(Protocol):
    """Protocol describing the installation step of the pipeline."""

    def install(self, image_path: Path) -> Path:
        """Install the bundle contained in ``image_path`` and return its path."""


class BundleInstaller:
    """Mount a disk image, copy its application bundle and unmount it again."""

    def __init__(
        self,
        disk_image_tool: DiskImageTool,
        install_dir: Path,
        *,
        bundle_extension: str = BUNDLE_EXTENSION,
    ) -> None:
        self._tool = disk_image_tool
        self._install_dir = Path(install_dir)
        self._bundle_extension = bundle_extension

    @property
    def install_dir(self) -> Path:
        return self._install_dir

    def install(self, image_path: Path) -> Path:
        image_path = Path(image_path)
        _LOGGER.info("Installing bundle from %s", image_path)
        with self._tool.mounted(image_path) as mount:
            source = self._find_bundle(mount.volume_path)
            destination = self._install_dir / source.name
            self._replace_bundle(source, destination)
        _LOGGER.info("Installed %s to %s", source.name, destination)
        return destination

    def _find_bundle(self, volume: Path) -> Path:
        try:
            entries = sorted(os.listdir(volume))
        except OSError as exc:
            raise MountError(f"Unable to read mounted volume {volume}: {exc}") from exc
        for name in entries:
            if name.endswith(self._bundle_extension):
                return volume / name
        raise BundleNotFoundError(f"No {self._bundle_extension} bundle found in {volume}")

    def _replace_bundle(self, source: Path, destination: Path) -> None:
        """Copy ``source`` over ``destination``.

        An existing bundle is moved out of the destination path before the
        copy starts and only restored if the copy fails.
        """

        previous = self._move_aside(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(source, destination, symlinks=True)
        except (OSError, shutil.Error) as exc:
            _remove_tree(destination)
            if previous is not None:
                self._restore(previous, destination)
            raise InstallCopyError(
                f"Failed to copy {source.name} to {destination.parent}: {exc}"
            ) from exc

        if previous is not None:
            _remove_tree(previous)

    def _move_aside(self, destination: Path) -> Path | None:
        if not (destination.exists() or destination.is_symlink()):
            return None
        previous = destination.with_name(f".{destination.name}.previous")
        _remove_tree(previous)
        try:
            os.replace(destination, previous)
        except OSError as exc:
            raise InstallCopyError(
                f"Unable to remove existing installation at {destination}: {exc}"
            ) from exc
        _LOGGER.info("Removed existing installation at %s", destination)
        return previous

    def _restore(self, previous: Path, destination: Path) -> None:
        try:
            os.replace(previous, destination)
        except OSError:
            _LOGGER.error(
                "Unable to restore previous installation from %s", previous, exc_info=True
            )
        else:
            _LOGGER.warning("Restored previous installation at %s", destination)


def _remove_tree(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        try:
            path.unlink()
        except OSError:
            _LOGGER.warning("Unable to remove %s", path, exc_info=True)
        return
    if path.exists():
        shutil.rmtree(path, ignore_errors=True)


__all__ = ["BundleInstaller", "Installer"]
