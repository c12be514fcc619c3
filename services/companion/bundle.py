"""Inspect and launch the installed companion bundle."""

from __future__ import annotations

import logging
import plistlib
from pathlib import Path

from shared.command import CommandRunner, run_command


_LOGGER = logging.getLogger(__name__)

_VERSION_KEYS = ("CFBundleShortVersionString", "CFBundleVersion")


def is_installed(bundle_path: Path) -> bool:
    return Path(bundle_path).exists()


def installed_version(bundle_path: Path) -> str | None:
    """Return the version recorded in the bundle's ``Info.plist``."""

    plist_path = Path(bundle_path) / "Contents" / "Info.plist"
    try:
        with plist_path.open("rb") as handle:
            info = plistlib.load(handle)
    except FileNotFoundError:
        return None
    except (OSError, plistlib.InvalidFileException, ValueError):
        _LOGGER.debug("Unable to read bundle metadata from %s", plist_path, exc_info=True)
        return None

    if not isinstance(info, dict):
        return None
    for key in _VERSION_KEYS:
        value = info.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def launch_bundle(bundle_path: Path, *, runner: CommandRunner = run_command) -> bool:
    """Open the installed bundle; failures are logged and reported as ``False``."""

    bundle_path = Path(bundle_path)
    if not is_installed(bundle_path):
        _LOGGER.warning("Cannot launch %s: bundle is not installed", bundle_path)
        return False
    result = runner(["open", "-a", str(bundle_path)])
    if not result.ok:
        _LOGGER.error(
            "Failed to launch %s: %s", bundle_path.name, result.stderr.strip() or result.returncode
        )
        return False
    _LOGGER.info("Launched %s", bundle_path.name)
    return True


__all__ = ["installed_version", "is_installed", "launch_bundle"]
