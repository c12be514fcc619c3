"""Attach and detach disk images with the system disk-image tool."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from services.companion.constants import DISK_IMAGE_TOOL, VOLUME_ROOT
from services.companion.models import MountError, MountPoint
from shared.command import CommandRunner, run_command


_LOGGER = logging.getLogger(__name__)


def parse_attach_output(output: str, volume_root: str = VOLUME_ROOT) -> Path | None:
    """Return the volume path reported by ``hdiutil attach``.

    Matching lines are tab separated with the mount point in the last field,
    e.g. ``/dev/disk4s1\\tApple_HFS\\t/Volumes/Agent Grid``.  Every line is
    scanned and the last match wins.
    """

    volume: str | None = None
    for line in output.splitlines():
        fields = line.split("\t")
        candidate = fields[-1].strip()
        if candidate.startswith(volume_root):
            volume = candidate
    return Path(volume) if volume is not None else None


class DiskImageTool:
    """Run ``hdiutil`` to attach images read-only and detach their volumes."""

    def __init__(
        self,
        *,
        executable: str = DISK_IMAGE_TOOL,
        runner: CommandRunner = run_command,
        volume_root: str = VOLUME_ROOT,
    ) -> None:
        self._executable = executable
        self._runner = runner
        self._volume_root = volume_root

    def attach(self, image_path: Path) -> MountPoint:
        try:
            result = self._runner(
                [self._executable, "attach", str(image_path), "-readonly", "-nobrowse", "-quiet"]
            )
        except OSError as exc:
            raise MountError(f"Failed to mount disk image {image_path.name}: {exc}") from exc
        if not result.ok:
            detail = result.stderr.strip() or f"exit status {result.returncode}"
            raise MountError(f"Failed to mount disk image {image_path.name}: {detail}")

        volume = parse_attach_output(result.stdout, self._volume_root)
        if volume is None:
            raise MountError(f"Could not find mount point for disk image {image_path.name}")
        _LOGGER.info("Mounted %s at %s", image_path.name, volume)
        return MountPoint(volume_path=volume)

    def detach(self, mount: MountPoint) -> bool:
        """Detach ``mount``; failures are logged and reported as ``False``."""

        try:
            result = self._runner([self._executable, "detach", str(mount.volume_path), "-quiet"])
        except OSError:
            _LOGGER.warning("Unable to detach %s", mount.volume_path, exc_info=True)
            return False
        if not result.ok:
            _LOGGER.warning(
                "Detaching %s failed with status %d: %s",
                mount.volume_path,
                result.returncode,
                result.stderr.strip(),
            )
            return False
        _LOGGER.debug("Detached %s", mount.volume_path)
        return True

    @contextmanager
    def mounted(self, image_path: Path) -> Iterator[MountPoint]:
        """Attach ``image_path`` for the duration of the block.

        Exactly one detach follows a successful attach, whether the block
        completes or raises.  Nothing is detached if the attach fails.
        """

        mount = self.attach(image_path)
        try:
            yield mount
        finally:
            self.detach(mount)


__all__ = ["DiskImageTool", "parse_attach_output"]
